"""Column-role resolution for template SQL.

A role is a semantic slot a template needs filled (time, amount,
dimension, ...). Sources answer role queries uniformly: the user's field
mapping is consulted first, then schema heuristics that match candidate
substrings against the table's real column names.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Literal, Protocol, runtime_checkable

from vaultmind.entities.schema_discovery.digest import column_names_from_digest
from vaultmind.models import FieldMapping, TableSkillConfig

logger = logging.getLogger(__name__)

ColumnRole = Literal["time", "amount", "dimension", "order_id", "user_id"]

TIME_CANDIDATES: tuple[str, ...] = (
    "下单时间",
    "支付时间",
    "创建时间",
    "order_time",
    "created_at",
    "create_at",
    "timestamp",
    "date",
)
AMOUNT_CANDIDATES: tuple[str, ...] = ("实付金额", "支付金额", "订单金额", "amount", "price", "total")
DIMENSION_CANDIDATES: tuple[str, ...] = ("渠道", "地区", "类目", "category", "channel", "region")

DEFAULT_CANDIDATES: Mapping[str, Sequence[str]] = {
    "time": TIME_CANDIDATES,
    "amount": AMOUNT_CANDIDATES,
    "dimension": DIMENSION_CANDIDATES,
}

_MAPPING_FIELDS: Mapping[str, str] = {
    "time": "time_column",
    "amount": "amount_column",
    "order_id": "order_id_column",
    "user_id": "user_id_column",
}


@runtime_checkable
class ColumnRoleSource(Protocol):
    """Anything that can name the column playing a role."""

    def resolve(self, role: ColumnRole) -> str | None:
        """Return the column for ``role``, or ``None`` if unknown."""
        ...


class FieldMappingSource:
    """Roles declared explicitly in the user's field mapping."""

    def __init__(self, mapping: FieldMapping | None) -> None:
        self._mapping = mapping

    def resolve(self, role: ColumnRole) -> str | None:
        field_name = _MAPPING_FIELDS.get(role)
        if self._mapping is None or field_name is None:
            return None
        return getattr(self._mapping, field_name)


class SchemaHeuristicSource:
    """Roles guessed from column names.

    Candidates are tried in priority order; the first candidate found as a
    case-insensitive substring of some column wins and that column's real
    name is returned.

    Args:
        columns: Column names of the table.
        candidates: Role to ordered candidate substrings.
    """

    def __init__(
        self,
        columns: Sequence[str],
        candidates: Mapping[str, Sequence[str]] = DEFAULT_CANDIDATES,
    ) -> None:
        self._columns = list(columns)
        self._candidates = candidates

    @classmethod
    def from_digest(cls, schema_digest: str, table_name: str | None = None) -> SchemaHeuristicSource:
        """Build from a schema digest, preferring ``table_name``'s columns."""
        columns = column_names_from_digest(schema_digest, table_name) if table_name else []
        if not columns:
            columns = column_names_from_digest(schema_digest)
        return cls(columns)

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    def resolve(self, role: ColumnRole) -> str | None:
        for candidate in self._candidates.get(role, ()):
            needle = candidate.lower()
            for column in self._columns:
                if needle in column.lower():
                    return column
        return None


class ColumnResolver:
    """Chain of sources; the first one that knows a role answers it."""

    def __init__(self, *sources: ColumnRoleSource) -> None:
        self._sources = sources

    @classmethod
    def for_table(
        cls,
        schema_digest: str,
        table_name: str | None,
        table_config: TableSkillConfig | None = None,
    ) -> ColumnResolver:
        """Field mapping first, then heuristics over the digest."""
        mapping = table_config.field_mapping if table_config is not None else None
        return cls(
            FieldMappingSource(mapping),
            SchemaHeuristicSource.from_digest(schema_digest, table_name),
        )

    def resolve(self, role: ColumnRole) -> str | None:
        for source in self._sources:
            column = source.resolve(role)
            if column:
                logger.debug("Role %s resolved to %s by %s", role, column, type(source).__name__)
                return column
        return None
