from __future__ import annotations

import inspect
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Collection, Literal, Mapping, Sequence

from sqlalchemy import Table, and_, func, select
from sqlalchemy.engine import Result
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from app.core.logger import module_logger
from app.schemas.query import PaginatedResult, ParsedQuery
from app.services.query_builder import BuiltQuery, build_query, column_map
from app.services.query_parser import parse_query

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

_LOG = module_logger("pagination")

RowsHook = Callable[[list[Any]], Any]


@dataclass(frozen=True)
class SortSpec:
    column: str
    direction: Literal["asc", "desc"] = "asc"


@dataclass(frozen=True)
class _Plan:
    built: BuiltQuery
    where: ColumnElement | None
    order_by: ColumnElement | None


def _plan(
    table,
    parsed: ParsedQuery,
    *,
    searchable: Collection[str],
    filterable: Collection[str],
    sortable: Collection[str],
    where: ColumnElement | None,
    default_sort: SortSpec | None,
) -> _Plan:
    built = build_query(
        table,
        parsed,
        searchable=searchable,
        filterable=filterable,
        sortable=sortable,
    )

    order_by = built.order_by
    if order_by is None and default_sort is not None:
        column = column_map(table).get(default_sort.column)
        if column is not None:
            order_by = column.desc() if default_sort.direction == "desc" else column.asc()

    final_where = built.where
    if built.where is not None and where is not None:
        final_where = and_(built.where, where)
    elif where is not None:
        final_where = where

    return _Plan(built=built, where=final_where, order_by=order_by)


def _returns_entities(table, columns: Sequence[Any] | None) -> bool:
    return not columns and not isinstance(table, Table)


def _count_statement(table, plan: _Plan):
    stmt = select(func.count()).select_from(table)
    if plan.where is not None:
        stmt = stmt.where(plan.where)
    return stmt


def _data_statement(table, plan: _Plan, columns: Sequence[Any] | None):
    stmt = select(*columns).select_from(table) if columns else select(table)
    if plan.where is not None:
        stmt = stmt.where(plan.where)
    if plan.order_by is not None:
        stmt = stmt.order_by(plan.order_by)
    return stmt.limit(plan.built.limit).offset(plan.built.offset)


def _rows(result: Result, entities: bool) -> list[Any]:
    if entities:
        return list(result.scalars().all())
    return [dict(row) for row in result.mappings().all()]


def _envelope(rows: list[Any], parsed: ParsedQuery, total: int) -> PaginatedResult:
    return PaginatedResult(
        data=rows,
        page=parsed.page,
        limit=parsed.limit,
        total=total,
        total_pages=max(1, math.ceil(total / parsed.limit)),
    )


def paginate_table(
    db: Session,
    table,
    parsed: ParsedQuery,
    *,
    searchable: Collection[str] = (),
    filterable: Collection[str] = (),
    sortable: Collection[str] = (),
    where: ColumnElement | None = None,
    columns: Sequence[Any] | None = None,
    hook: RowsHook | None = None,
    default_sort: SortSpec | None = None,
) -> PaginatedResult:
    """Run the count and page queries for `parsed` against `table`.

    `where` is AND-ed with the predicate built from the query (soft-delete
    or ownership scopes go there). `default_sort` applies only when the
    query named no whitelisted sort column. The two queries run one after
    the other without a transaction of their own. Store errors propagate.
    """
    plan = _plan(
        table,
        parsed,
        searchable=searchable,
        filterable=filterable,
        sortable=sortable,
        where=where,
        default_sort=default_sort,
    )
    total = int(db.execute(_count_statement(table, plan)).scalar_one())
    rows = _rows(db.execute(_data_statement(table, plan, columns)), _returns_entities(table, columns))
    if hook is not None:
        rows = hook(rows)
        if inspect.isawaitable(rows):
            # Close the coroutine so it is not reported as never awaited.
            if hasattr(rows, "close"):
                rows.close()
            raise TypeError("paginate_table needs a synchronous hook; use apaginate_table for async hooks")
    _LOG.debug("pagination:page page=%s limit=%s total=%s", parsed.page, parsed.limit, total)
    return _envelope(list(rows), parsed, total)


async def apaginate_table(
    db: AsyncSession,
    table,
    parsed: ParsedQuery,
    *,
    searchable: Collection[str] = (),
    filterable: Collection[str] = (),
    sortable: Collection[str] = (),
    where: ColumnElement | None = None,
    columns: Sequence[Any] | None = None,
    hook: RowsHook | None = None,
    default_sort: SortSpec | None = None,
) -> PaginatedResult:
    """`paginate_table` over an async session; `hook` may be a coroutine function."""
    plan = _plan(
        table,
        parsed,
        searchable=searchable,
        filterable=filterable,
        sortable=sortable,
        where=where,
        default_sort=default_sort,
    )
    total = int((await db.execute(_count_statement(table, plan))).scalar_one())
    result = await db.execute(_data_statement(table, plan, columns))
    rows = _rows(result, _returns_entities(table, columns))
    if hook is not None:
        rows = hook(rows)
        if inspect.isawaitable(rows):
            rows = await rows
    _LOG.debug("pagination:page page=%s limit=%s total=%s", parsed.page, parsed.limit, total)
    return _envelope(list(rows), parsed, total)


def paginate_from_raw(db: Session, table, raw: Mapping[str, Any], **options: Any) -> PaginatedResult:
    return paginate_table(db, table, parse_query(raw), **options)


async def apaginate_from_raw(db: AsyncSession, table, raw: Mapping[str, Any], **options: Any) -> PaginatedResult:
    return await apaginate_table(db, table, parse_query(raw), **options)
