"""Read-only SQL policy."""

from .policy import validate_sql

__all__ = ["validate_sql"]
