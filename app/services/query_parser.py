from __future__ import annotations

import math
from typing import Any, Mapping

from app.schemas.query import MAX_LIMIT, RESERVED_KEYS, FilterValue, ParsedQuery

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
DEFAULT_ORDER = "asc"


def _number(value: Any) -> float | None:
    if isinstance(value, (list, tuple)):
        # `?page=2&page=3` is ambiguous; a single repeated value is not.
        if len(value) != 1:
            return None
        value = value[0]
    if isinstance(value, str):
        value = value.strip()
        # float() accepts digit grouping ("1_000"); query strings do not.
        if not value or "_" in value:
            return None
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _positive_int(value: Any, fallback: int) -> int:
    number = _number(value)
    if number is None:
        return fallback
    whole = math.floor(number)
    return whole if whole >= 1 else fallback


def _clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filter_value(value: Any) -> FilterValue:
    if isinstance(value, (list, tuple)):
        return [_stringify(item) for item in value]
    return _stringify(value)


def parse_query(raw: Mapping[str, Any], defaults: Mapping[str, Any] | None = None) -> ParsedQuery:
    """Normalize untyped query parameters into a `ParsedQuery`.

    Never raises on malformed input: bad values fall back to `defaults`
    (keys `page`, `limit`, `order`) and then to the module defaults. Filter
    keys are not checked against any table here.
    """
    defaults = defaults or {}
    page_fallback = max(1, int(defaults.get("page") or DEFAULT_PAGE))
    limit_fallback = DEFAULT_LIMIT if defaults.get("limit") is None else int(defaults["limit"])

    page = _positive_int(raw.get("page"), page_fallback)
    limit = _clamp(_positive_int(raw.get("limit"), limit_fallback), 1, MAX_LIMIT)

    order = raw.get("order")
    if order not in ("asc", "desc"):
        order = defaults.get("order") if defaults.get("order") in ("asc", "desc") else DEFAULT_ORDER

    filters: dict[str, FilterValue] = {}
    for key, value in raw.items():
        if key in RESERVED_KEYS or value is None:
            continue
        filters[str(key)] = _filter_value(value)

    return ParsedQuery(
        page=page,
        limit=limit,
        search=_text(raw.get("search")),
        sort=_text(raw.get("sort")),
        order=order,
        filters=filters,
    )
