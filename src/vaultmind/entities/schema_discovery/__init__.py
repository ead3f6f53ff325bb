"""Schema digest construction and parsing."""

from .digest import build_schema_digest, discover_schema

__all__ = ["build_schema_digest", "discover_schema"]
