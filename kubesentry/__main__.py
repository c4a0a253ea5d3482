"""Entry point for `python -m kubesentry`.

Usage:
    python -m kubesentry
    SENTRY_DSN=... KUBESENTRY_NAMESPACES=default,payments python -m kubesentry
"""

from __future__ import annotations

from kubesentry.app import run

run()
