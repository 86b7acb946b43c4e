"""Unit tests for query compilation and pagination."""

from __future__ import annotations

import pytest

from core.errors import QueryFailure
from core.types import ArtifactRecord, QueryFilters, QueryOptions, build_tags
from store.query_engine import compile_query, paginate, record_matches


def _record(timestamp: int, split: str = "train") -> ArtifactRecord:
    tags = build_tags(
        dataset_name="mnist",
        split=split,
        version=f"v{timestamp}",
        owner="alice",
        created_at="2024-01-01T00:00:00Z",
        app="vision-lab",
    )
    return ArtifactRecord(id=f"id-{timestamp}", timestamp=timestamp, tags=tags)


def test_compile_query_fetches_one_row_beyond_limit() -> None:
    """The look-ahead row decides whether another page exists."""
    compiled = compile_query(QueryOptions(limit=5))

    assert compiled.params[-1] == 6 and compiled.sql.endswith("LIMIT ?")


def test_compile_query_skips_limit_when_unlimited() -> None:
    """A None limit should return every match."""
    compiled = compile_query(QueryOptions(limit=None))

    assert "LIMIT" not in compiled.sql and compiled.page_limit is None


def test_compile_query_combines_filters_with_and() -> None:
    """Every present filter should become one conjunctive condition."""
    options = QueryOptions(filters=QueryFilters(dataset_name="mnist", split="train"))

    compiled = compile_query(options)

    assert " AND " in compiled.sql and compiled.params[:2] == ("mnist", "train")


def test_compile_query_ignores_empty_string_filters() -> None:
    """Empty filter values should behave as absent."""
    compiled = compile_query(QueryOptions(filters=QueryFilters(dataset_name="")))

    assert "WHERE" not in compiled.sql


def test_compile_query_uses_cursor_direction() -> None:
    """Ascending pages continue after the cursor, descending before it."""
    ascending = compile_query(QueryOptions(sort_order="asc", cursor="2000"))
    descending = compile_query(QueryOptions(sort_order="desc", cursor="2000"))

    assert "timestamp > ?" in ascending.sql
    assert "timestamp < ?" in descending.sql


@pytest.mark.parametrize(
    "options",
    [
        QueryOptions(limit=0),
        QueryOptions(limit=-3),
        QueryOptions(sort_by="version"),  # type: ignore[arg-type]
        QueryOptions(sort_order="sideways"),  # type: ignore[arg-type]
        QueryOptions(cursor="not-a-timestamp"),
        QueryOptions(filters=QueryFilters(start_time="yesterday")),
    ],
)
def test_compile_query_rejects_invalid_options(options: QueryOptions) -> None:
    """Invalid requests should fail before touching the store."""
    with pytest.raises(QueryFailure):
        compile_query(options)


def test_paginate_sets_cursor_to_last_returned_timestamp() -> None:
    """The cursor should point at the last row of the returned page."""
    page = paginate([_record(3000), _record(2000), _record(1000)], page_limit=2)

    assert [record.timestamp for record in page.results] == [3000, 2000]
    assert page.next_cursor == "2000"


def test_paginate_omits_cursor_on_final_page() -> None:
    """No cursor should be returned when nothing remains."""
    page = paginate([_record(3000), _record(2000)], page_limit=2)

    assert page.next_cursor is None


def test_record_matches_applies_time_bounds_inclusively() -> None:
    """Both time bounds are inclusive."""
    filters = QueryFilters(start_time="1970-01-01T00:00:01Z", end_time="1970-01-01T00:00:02Z")

    matches = [record_matches(_record(ts), filters) for ts in (999, 1000, 2000, 2001)]

    assert matches == [False, True, True, False]


def test_record_matches_requires_every_filter() -> None:
    """A record must satisfy all filters, not any."""
    filters = QueryFilters(dataset_name="mnist", split="test")

    assert not record_matches(_record(1000, split="train"), filters)
