"""Query archetype router."""

from .router import RouterThresholds, classify_query_type

__all__ = ["RouterThresholds", "classify_query_type"]
