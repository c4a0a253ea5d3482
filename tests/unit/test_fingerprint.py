"""Tests for fingerprint construction."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from kubesentry.classify.fingerprint import (
    event_fingerprint,
    fingerprint_from_meta,
    involved_object_fingerprint,
    mangle_name,
    termination_fingerprint,
)
from kubesentry.models.notifications import Notification, NotificationKind, ObjectRef, OwnerReference

_names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=40)


def _meta(
    name: str = "my-app-7b4f8c6d-x2kj",
    namespace: str = "default",
    generate_name: str = "",
    owners: tuple[OwnerReference, ...] = (),
) -> ObjectRef:
    return ObjectRef(
        api_version="v1",
        kind="Pod",
        namespace=namespace,
        name=name,
        generate_name=generate_name,
        owner_references=owners,
    )


def _owner(name: str = "my-app-7b4f8c6d", controller: bool = True, kind: str = "ReplicaSet") -> OwnerReference:
    return OwnerReference(api_version="apps/v1", kind=kind, name=name, controller=controller)


class TestMangleName:
    def test_strips_two_trailing_segments(self) -> None:
        assert mangle_name("my-app-7b4f8c6d-x2kj") == "my-app"

    def test_three_segments_keeps_first(self) -> None:
        assert mangle_name("web-7b4f8c6d-x2kj") == "web"

    def test_two_segments_keeps_first(self) -> None:
        assert mangle_name("etcd-0") == "etcd"

    def test_single_segment_unchanged(self) -> None:
        assert mangle_name("coredns") == "coredns"


class TestFingerprintFromMeta:
    def test_controller_owner_wins(self) -> None:
        meta = _meta(owners=(_owner("other", controller=False, kind="Foo"), _owner()))
        assert fingerprint_from_meta(meta) == ("apps/v1", "ReplicaSet", "my-app-7b4f8c6d")

    def test_non_controller_owner_ignored(self) -> None:
        meta = _meta(owners=(_owner(controller=False),))
        assert fingerprint_from_meta(meta) == ("default", "my-app")

    def test_generate_name_used_verbatim(self) -> None:
        meta = _meta(name="job-run-abcde", generate_name="job-run-")
        assert fingerprint_from_meta(meta) == ("default", "job-run-")

    def test_plain_name_is_mangled(self) -> None:
        assert fingerprint_from_meta(_meta(name="standalone")) == ("default", "standalone")

    @given(first=_names, second=_names)
    def test_same_owner_same_fingerprint(self, first: str, second: str) -> None:
        a = _meta(name=first, owners=(_owner(),))
        b = _meta(name=second, namespace="elsewhere", owners=(_owner(),))
        assert fingerprint_from_meta(a) == fingerprint_from_meta(b)

    @given(name=_names, generate_name=st.sampled_from(["", "gen-"]))
    def test_deterministic(self, name: str, generate_name: str) -> None:
        meta = _meta(name=name, generate_name=generate_name)
        assert fingerprint_from_meta(meta) == fingerprint_from_meta(meta)


class TestEventFingerprint:
    def test_prefixes_component_level_reason(self) -> None:
        notification = Notification(
            kind=NotificationKind.EVENT,
            involved_object=_meta(),
            namespace="default",
            level="Warning",
            reason="BackOff",
            message="",
            component="kubelet",
        )
        assert event_fingerprint(notification, ("a", "b")) == ("kubelet", "Warning", "BackOff", "a", "b")

    def test_involved_object_fingerprint(self) -> None:
        ref = ObjectRef(
            api_version="v1",
            kind="Pod",
            namespace="default",
            name="my-app-7b4f8c6d-x2kj",
            field_path="spec.containers{app}",
        )
        assert involved_object_fingerprint(ref) == ("v1", "Pod", "default", "my-app", "spec.containers{app}")

    def test_termination_fingerprint(self) -> None:
        meta = _meta(owners=(_owner(),))
        assert termination_fingerprint("OOMKilled", meta) == ("OOMKilled", "apps/v1", "ReplicaSet", "my-app-7b4f8c6d")
