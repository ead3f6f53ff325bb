"""Query rewriter producing the per-question directive."""

from .rewriter import parse_rewrite, rewrite_query

__all__ = ["parse_rewrite", "rewrite_query"]
