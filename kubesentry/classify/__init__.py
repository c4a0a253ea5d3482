"""Classification and deduplication core.

Submodules:
    skip         -- Skip-rule parsing, namespace rule sets, suppression decision.
    fingerprint  -- Grouping keys derived from object metadata and owners.
    recency      -- Bounded LRU cache and container termination tracker.
    enrichment   -- (apiVersion, kind) handler registry with default fallback.
    assembler    -- Report composition for events and container terminations.
"""

from kubesentry.classify.enrichment import DefaultHandler, HandlerRegistry, PodHandler
from kubesentry.classify.recency import RecencyCache, TerminationKey, TerminationTracker
from kubesentry.classify.skip import RuleSet, SkipCriteria, SkipRule, SkipRuleStore, should_skip

__all__ = [
    "DefaultHandler",
    "HandlerRegistry",
    "PodHandler",
    "RecencyCache",
    "RuleSet",
    "SkipCriteria",
    "SkipRule",
    "SkipRuleStore",
    "TerminationKey",
    "TerminationTracker",
    "should_skip",
]
