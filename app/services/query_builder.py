from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Collection, Mapping

from sqlalchemy import Table, and_, or_
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.sql.elements import ColumnElement

from app.core.logger import module_logger
from app.schemas.query import Operator, ParsedQuery

_LOG = module_logger("query")

# Checked in order; the first matching suffix wins.
FILTER_SUFFIXES: tuple[tuple[str, Operator], ...] = (
    ("_like", Operator.like),
    ("_gte", Operator.gte),
    ("_lte", Operator.lte),
    ("_gt", Operator.gt),
    ("_lt", Operator.lt),
)

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


@dataclass(frozen=True)
class BuiltQuery:
    where: ColumnElement | None
    order_by: ColumnElement | None
    offset: int
    limit: int

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1


@lru_cache(maxsize=None)
def column_map(table) -> Mapping[str, Any]:
    """Column attribute name -> column handle, for a `Table` or a mapped class."""
    if isinstance(table, Table):
        columns = {column.key: column for column in table.columns}
    else:
        mapper = sa_inspect(table)
        columns = {attr.key: getattr(table, attr.key) for attr in mapper.column_attrs}
    return MappingProxyType(columns)


def parse_filter_key(key: str) -> tuple[str, Operator]:
    for suffix, op in FILTER_SUFFIXES:
        if key.endswith(suffix):
            return key[: -len(suffix)], op
    return key, Operator.eq


def _python_type(column):
    try:
        return column.type.python_type
    except (AttributeError, NotImplementedError):
        return None


def _coerce_datetime(text: str, column) -> datetime:
    if "T" not in text and " " not in text and len(text) == 10:
        parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
    else:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None and getattr(column.type, "timezone", False):
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_value(column, raw: str) -> Any:
    """Best-effort conversion of a filter string to the column's Python type.

    Values that do not convert are handed to the store unchanged.
    """
    python_type = _python_type(column)
    text = raw.strip()
    try:
        if python_type is bool:
            lowered = text.lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            return raw
        if python_type is int:
            return int(text)
        if python_type is float:
            return float(text.replace(",", "."))
        if python_type is Decimal:
            return Decimal(text.replace(",", "."))
        if python_type is datetime:
            return _coerce_datetime(text, column)
        if python_type is date:
            if "T" in text or " " in text:
                return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            return date.fromisoformat(text)
        if python_type is uuid.UUID:
            return uuid.UUID(text)
    except (ValueError, TypeError, InvalidOperation):
        return raw
    return raw


def _condition(column, op: Operator, raw: str) -> ColumnElement:
    if op is Operator.like:
        return column.ilike(f"%{raw}%")
    value = _coerce_value(column, raw)
    if op is Operator.gt:
        return column > value
    if op is Operator.gte:
        return column >= value
    if op is Operator.lt:
        return column < value
    if op is Operator.lte:
        return column <= value
    return column == value


def _any_of(conditions: list[ColumnElement]) -> ColumnElement:
    if len(conditions) == 1:
        return conditions[0]
    return or_(*conditions)


def build_query(
    table,
    query: ParsedQuery,
    *,
    searchable: Collection[str] = (),
    filterable: Collection[str] = (),
    sortable: Collection[str] = (),
    strict_filters: bool = True,
) -> BuiltQuery:
    """Translate a `ParsedQuery` into a predicate, an ordering and a page window.

    Filters, search and sort are honoured only for whitelisted columns that
    exist on `table`; anything else is dropped without error. Values listed
    for one filter key are OR-ed, distinct keys are AND-ed.
    """
    columns = column_map(table)
    parts: list[ColumnElement] = []

    for raw_key, raw_value in query.filters.items():
        base_key, op = parse_filter_key(raw_key)
        if strict_filters and base_key not in filterable:
            _LOG.debug("query:filter-dropped key=%s reason=not-filterable", raw_key)
            continue
        column = columns.get(base_key)
        if column is None:
            _LOG.debug("query:filter-dropped key=%s reason=unknown-column", raw_key)
            continue
        values = raw_value if isinstance(raw_value, list) else [raw_value]
        if not values:
            continue
        parts.append(_any_of([_condition(column, op, value) for value in values]))

    if query.search and searchable:
        term = f"%{query.search}%"
        matches = [columns[key].ilike(term) for key in searchable if key in columns]
        if matches:
            parts.append(_any_of(matches))

    where = None
    if len(parts) == 1:
        where = parts[0]
    elif parts:
        where = and_(*parts)

    order_by = None
    if query.sort and query.sort in sortable and query.sort in columns:
        column = columns[query.sort]
        order_by = column.desc() if query.order == "desc" else column.asc()

    return BuiltQuery(
        where=where,
        order_by=order_by,
        offset=(query.page - 1) * query.limit,
        limit=query.limit,
    )
