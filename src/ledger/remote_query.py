"""Remote ledger query gateway client.

This module queries the ledger's own GraphQL index with the same filter
vocabulary as the local index. It is a fallback read path for records
the local index has not observed. Cursors on this path are the
gateway's opaque edge cursors.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx

from core.constants import DEFAULT_REMOTE_QUERY_TIMEOUT_SECONDS
from core.errors import QueryFailure
from core.logging_config import get_logger
from core.types import ArtifactRecord, QueryFilters, QueryOptions, QueryPage
from ledger.wire_tags import FILTER_WIRE_NAMES, tags_from_wire
from store.query_engine import record_matches, resolve_time_bounds, validate_options

_LOGGER = get_logger(__name__)
REMOTE_PAGE_SIZE = 100

TRANSACTIONS_QUERY = """
query Transactions(
  $tags: [TagFilter!]
  $order: SortOrder
  $first: Int
  $after: String
  $timestamp: TimestampFilter
) {
  transactions(
    tags: $tags
    order: $order
    first: $first
    after: $after
    timestamp: $timestamp
  ) {
    edges {
      cursor
      node {
        id
        timestamp
        tags {
          name
          value
        }
        receipt {
          signature
        }
      }
    }
    pageInfo {
      hasNextPage
    }
  }
}
"""


class RemoteQueryClient:
    """GraphQL client for the remote ledger query gateway."""

    def __init__(
        self,
        gateway_url: str,
        client: httpx.Client | None = None,
        timeout_seconds: float = DEFAULT_REMOTE_QUERY_TIMEOUT_SECONDS,
    ) -> None:
        """Create a gateway client.

        Args:
            gateway_url: Gateway base URL; ``/graphql`` is appended.
            client: Optional preconfigured httpx client.
            timeout_seconds: Request timeout for the owned client.
        """
        self._endpoint = f"{gateway_url.rstrip('/')}/graphql"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def query(self, options: QueryOptions) -> QueryPage:
        """Query the gateway and return one page of records.

        An unlimited request follows gateway pages until exhausted.

        Args:
            options: Filter, sort, and pagination request.

        Returns:
            Page of records that satisfy every filter constraint.

        Raises:
            QueryFailure: If the request is invalid or the gateway fails.
        """
        page_limit = validate_options(options)
        if page_limit is not None:
            records, next_cursor = self._fetch_page(options, page_limit, options.cursor)
            return QueryPage(results=tuple(records), next_cursor=next_cursor)
        collected: list[ArtifactRecord] = []
        cursor = options.cursor
        while True:
            records, cursor = self._fetch_page(options, REMOTE_PAGE_SIZE, cursor)
            collected.extend(records)
            if cursor is None:
                return QueryPage(results=tuple(collected), next_cursor=None)

    def close(self) -> None:
        """Close the underlying HTTP client when owned."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RemoteQueryClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _fetch_page(
        self,
        options: QueryOptions,
        first: int,
        after: str | None,
    ) -> tuple[list[ArtifactRecord], str | None]:
        variables = build_query_variables(options, first, after)
        body = self._post({"query": TRANSACTIONS_QUERY, "variables": variables})
        try:
            transactions = body["data"]["transactions"]
            edges = list(transactions["edges"])
            has_next_page = bool(transactions["pageInfo"]["hasNextPage"])
            records = [_record_from_node(edge["node"]) for edge in edges]
        except (KeyError, TypeError, ValueError) as error:
            raise QueryFailure(
                f"Unexpected response shape from {self._endpoint}: {error!r}. "
                "Check the gateway URL and API version."
            ) from error
        matching = [record for record in records if record_matches(record, options.filters)]
        next_cursor = str(edges[-1]["cursor"]) if has_next_page and edges else None
        _LOGGER.debug(
            "remote_query_page",
            endpoint=self._endpoint,
            returned=len(records),
            matching=len(matching),
            has_next_page=has_next_page,
        )
        return matching, next_cursor

    def _post(self, request_body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(self._endpoint, json=request_body)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as error:
            raise QueryFailure(
                f"Remote query to {self._endpoint} failed: {error}. "
                "Check network connectivity and the gateway URL."
            ) from error
        except ValueError as error:
            raise QueryFailure(
                f"Remote query to {self._endpoint} returned invalid JSON: {error}."
            ) from error
        if not isinstance(body, dict):
            raise QueryFailure(f"Remote query to {self._endpoint} returned a non-object body.")
        errors = body.get("errors")
        if errors:
            messages = "; ".join(str(item.get("message", item)) for item in errors)
            raise QueryFailure(f"Remote query to {self._endpoint} was rejected: {messages}.")
        return body


def build_query_variables(
    options: QueryOptions,
    first: int,
    after: str | None,
) -> dict[str, object]:
    """Translate query options into GraphQL variables.

    Tag constraints are sent as separate entries, which the gateway
    combines with AND.

    Args:
        options: Query request.
        first: Page size to request.
        after: Optional gateway cursor.

    Returns:
        GraphQL variables mapping.
    """
    variables: dict[str, object] = {
        "order": options.sort_order.upper(),
        "first": first,
    }
    tag_filters = _build_tag_filters(options.filters)
    if tag_filters:
        variables["tags"] = tag_filters
    if after:
        variables["after"] = after
    bounds = resolve_time_bounds(options.filters)
    timestamp_filter: dict[str, int] = {}
    if bounds.start_millis is not None:
        timestamp_filter["from"] = bounds.start_millis
    if bounds.end_millis is not None:
        timestamp_filter["to"] = bounds.end_millis
    if timestamp_filter:
        variables["timestamp"] = timestamp_filter
    return variables


def _build_tag_filters(filters: QueryFilters) -> list[dict[str, object]]:
    tag_filters: list[dict[str, object]] = []
    for filter_attr, wire_name in FILTER_WIRE_NAMES.items():
        value = getattr(filters, filter_attr)
        if value:
            tag_filters.append({"name": wire_name, "values": [value]})
    return tag_filters


def _record_from_node(node: dict[str, Any]) -> ArtifactRecord:
    receipt_payload = node.get("receipt") or {}
    signature = receipt_payload.get("signature")
    return ArtifactRecord(
        id=str(node["id"]),
        timestamp=int(node.get("timestamp") or 0),
        tags=tags_from_wire((str(tag["name"]), str(tag["value"])) for tag in node["tags"]),
        receipt=str(signature) if signature else None,
        created_at=None,
    )
