"""Indexed query compilation and cursor pagination.

This module translates QueryOptions into parameterized SQL against the
artifact index and turns fetched rows into pages. Cursors are the
stringified timestamp of the last row of the previous page; ties in
timestamp are not broken, so rows sharing a timestamp across a page
boundary may be skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from core.constants import SUPPORTED_SORT_FIELDS, SUPPORTED_SORT_ORDERS
from core.errors import QueryFailure
from core.timestamps import iso_to_millis
from core.types import ArtifactRecord, ArtifactTags, QueryFilters, QueryOptions, QueryPage

SELECT_COLUMNS = "id, timestamp, tags, receipt, created_at"
TABLE_NAME = "artifacts"

# Filter attribute -> (tag-bag JSON key, ArtifactTags attribute).
TAG_FILTER_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("dataset_name", "datasetName", "dataset_name"),
    ("split", "split", "split"),
    ("version", "version", "version"),
    ("content_type", "contentType", "content_type"),
    ("app", "app", "app"),
    ("owner", "owner", "owner"),
)
SORT_COLUMNS = {"timestamp": "timestamp", "createdAt": "created_at"}


@dataclass(frozen=True)
class CompiledQuery:
    """SQL statement ready for execution.

    Attributes:
        sql: Parameterized SELECT statement.
        params: Positional parameters.
        page_limit: Requested page size, ``None`` when unlimited.
    """

    sql: str
    params: tuple[object, ...]
    page_limit: int | None


@dataclass(frozen=True)
class TimeBounds:
    """Inclusive timestamp range in epoch milliseconds."""

    start_millis: int | None = None
    end_millis: int | None = None


def compile_query(options: QueryOptions) -> CompiledQuery:
    """Compile query options into SQL.

    Args:
        options: Filter, sort, and pagination request.

    Returns:
        Compiled statement that fetches one row beyond the page limit.

    Raises:
        QueryFailure: If any option is invalid.
    """
    page_limit = validate_options(options)
    sort_column = SORT_COLUMNS[options.sort_by]
    sort_direction = options.sort_order.upper()
    where_clauses: list[str] = []
    params: list[object] = []
    for filter_attr, tag_key, _ in TAG_FILTER_FIELDS:
        value = getattr(options.filters, filter_attr)
        if value:
            where_clauses.append(f"json_extract(tags, '$.{tag_key}') = ?")
            params.append(value)
    bounds = resolve_time_bounds(options.filters)
    if bounds.start_millis is not None:
        where_clauses.append("timestamp >= ?")
        params.append(bounds.start_millis)
    if bounds.end_millis is not None:
        where_clauses.append("timestamp <= ?")
        params.append(bounds.end_millis)
    if options.cursor:
        where_clauses.append("timestamp < ?" if sort_direction == "DESC" else "timestamp > ?")
        params.append(parse_cursor(options.cursor))
    sql = f"SELECT {SELECT_COLUMNS} FROM {TABLE_NAME}"
    if where_clauses:
        sql += " WHERE " + " AND ".join(where_clauses)
    sql += f" ORDER BY {sort_column} {sort_direction}"
    if page_limit is not None:
        sql += " LIMIT ?"
        params.append(page_limit + 1)
    return CompiledQuery(sql=sql, params=tuple(params), page_limit=page_limit)


def validate_options(options: QueryOptions) -> int | None:
    """Validate sort and limit options shared by local and remote queries.

    Args:
        options: Query request.

    Returns:
        Page limit, ``None`` when unlimited.

    Raises:
        QueryFailure: If sort field, sort order, or limit is invalid.
    """
    _sort_column(options.sort_by)
    _sort_direction(options.sort_order)
    return _validate_limit(options.limit)


def paginate(records: Sequence[ArtifactRecord], page_limit: int | None) -> QueryPage:
    """Trim fetched rows to one page and derive the next cursor.

    Args:
        records: Rows fetched with one extra look-ahead row.
        page_limit: Requested page size, ``None`` when unlimited.

    Returns:
        Page with ``next_cursor`` set only when more rows exist.
    """
    if page_limit is None or len(records) <= page_limit:
        return QueryPage(results=tuple(records), next_cursor=None)
    page = tuple(records[:page_limit])
    next_cursor = str(page[-1].timestamp) if page else None
    return QueryPage(results=page, next_cursor=next_cursor)


def resolve_time_bounds(filters: QueryFilters) -> TimeBounds:
    """Convert ISO-8601 filter bounds to epoch milliseconds.

    Raises:
        QueryFailure: If a bound is not a valid ISO-8601 string.
    """
    return TimeBounds(
        start_millis=_parse_bound("start_time", filters.start_time),
        end_millis=_parse_bound("end_time", filters.end_time),
    )


def parse_cursor(cursor: str) -> int:
    """Parse a pagination cursor into a timestamp.

    Raises:
        QueryFailure: If the cursor is not an integer timestamp.
    """
    try:
        return int(cursor)
    except ValueError as error:
        raise QueryFailure(
            f"Invalid pagination cursor '{cursor}': expected an integer timestamp. "
            "Pass the next_cursor value returned by the previous page."
        ) from error


def record_matches(record: ArtifactRecord, filters: QueryFilters) -> bool:
    """Evaluate the conjunctive filter predicate against one record.

    Args:
        record: Candidate record.
        filters: Filter constraints.

    Returns:
        Whether the record satisfies every present constraint.
    """
    for filter_attr, _, tags_attr in TAG_FILTER_FIELDS:
        expected = getattr(filters, filter_attr)
        if expected and _tag_value(record.tags, tags_attr) != expected:
            return False
    bounds = resolve_time_bounds(filters)
    if bounds.start_millis is not None and record.timestamp < bounds.start_millis:
        return False
    if bounds.end_millis is not None and record.timestamp > bounds.end_millis:
        return False
    return True


def _tag_value(tags: ArtifactTags, tags_attr: str) -> str:
    return str(getattr(tags, tags_attr))


def _parse_bound(name: str, value: str | None) -> int | None:
    if not value:
        return None
    try:
        return iso_to_millis(value)
    except ValueError as error:
        raise QueryFailure(
            f"Invalid {name} filter '{value}': expected an ISO-8601 timestamp, "
            "e.g. 2024-01-31T12:00:00Z."
        ) from error


def _sort_column(sort_by: str) -> str:
    if sort_by not in SUPPORTED_SORT_FIELDS:
        raise QueryFailure(
            f"Unsupported sort field '{sort_by}'. "
            f"Use one of: {', '.join(SUPPORTED_SORT_FIELDS)}."
        )
    return SORT_COLUMNS[sort_by]


def _sort_direction(sort_order: str) -> str:
    if sort_order not in SUPPORTED_SORT_ORDERS:
        raise QueryFailure(
            f"Unsupported sort order '{sort_order}'. "
            f"Use one of: {', '.join(SUPPORTED_SORT_ORDERS)}."
        )
    return sort_order.upper()


def _validate_limit(limit: int | None) -> int | None:
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise QueryFailure(
            f"Invalid query limit {limit!r}: expected a positive integer, "
            "or None for all matching records."
        )
    return limit
