"""Tagledger CLI entry points.
This module exposes upload, query, and version-lookup commands.
It maps argparse commands onto repository calls and prints JSON lines.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import Any, Sequence

from core.config import TagLedgerConfig
from core.constants import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_QUERY_LIMIT,
    SUPPORTED_SORT_FIELDS,
    SUPPORTED_SORT_ORDERS,
)
from core.errors import IndexingFailure, TagLedgerError
from core.timestamps import utc_now_iso
from core.types import BatchItemResult, QueryFilters, QueryOptions, build_tags
from ledger.local_ledger import LocalLedger
from ledger.wire_tags import tags_from_wire
from repository.artifact_repository import ArtifactRepository
from repository.batch_manifest import ManifestEntry, load_batch_manifest, read_manifest_items
from store.record_payload import record_to_dict


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="tagledger", description="Tagledger artifact CLI")
    parser.add_argument("--data-root", help="Override TAGLEDGER_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_upload_command(subparsers)
    _add_batch_command(subparsers)
    _add_query_command(subparsers)
    _add_latest_command(subparsers)
    _add_versions_command(subparsers)
    _add_reindex_command(subparsers)
    subparsers.add_parser("balance", help="Show ledger account balance")
    price_parser = subparsers.add_parser("price", help="Quote ledger price for a payload size")
    price_parser.add_argument("size", type=int, help="Payload size in bytes")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Tagledger CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args.data_root)
        with ArtifactRepository.from_config(config) as repository:
            return _dispatch(repository, config, args)
    except IndexingFailure as error:
        print(f"error: {error}", file=sys.stderr)
        print(f"hint: run 'tagledger reindex {error.artifact_id}' to repair", file=sys.stderr)
        return 1
    except TagLedgerError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1


def _dispatch(
    repository: ArtifactRepository,
    config: TagLedgerConfig,
    args: argparse.Namespace,
) -> int:
    if args.command == "upload":
        return _run_upload_command(repository, config, args)
    if args.command == "batch":
        return _run_batch_command(repository, config, args)
    if args.command == "query":
        return _run_query_command(repository, args)
    if args.command == "latest":
        record = repository.latest_version(args.dataset, args.split)
        _print_json(record_to_dict(record) if record else None)
        return 0 if record else 1
    if args.command == "versions":
        for record in repository.all_versions(args.dataset, args.split):
            _print_json(record_to_dict(record))
        return 0
    if args.command == "reindex":
        return _run_reindex_command(repository, config, args)
    if args.command == "balance":
        _print_json({"balance": repository.get_balance()})
        return 0
    if args.command == "price":
        _print_json({"size": args.size, "price": repository.get_price(args.size)})
        return 0
    raise TagLedgerError(f"Unsupported command: {args.command}")


def _build_config(data_root: str | None) -> TagLedgerConfig:
    """Build config with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Runtime config.
    """
    config = TagLedgerConfig.from_env()
    if data_root:
        config = config.with_data_root(Path(data_root))
    return config


def _run_upload_command(
    repository: ArtifactRepository,
    config: TagLedgerConfig,
    args: argparse.Namespace,
) -> int:
    """Handle upload command.

    One file uploads directly; several files go through the batch path.

    Args:
        repository: Repository coordinator.
        config: Runtime config.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    tags = build_tags(
        dataset_name=args.dataset,
        split=args.split,
        version=args.version,
        owner=args.owner,
        created_at=args.created_at or utc_now_iso(),
        app=args.app or config.app_name,
        content_type=args.content_type,
    )
    paths = [Path(path) for path in args.files]
    if len(paths) == 1:
        result = repository.upload_file(paths[0], tags, want_receipt=args.receipt)
        _print_json({"id": result.id, "receipt": result.receipt, "source": str(paths[0])})
        return 0
    items = read_manifest_items([ManifestEntry(path=path, tags=tags) for path in paths])
    results = repository.upload_batch(items, want_receipt=args.receipt, batch_size=args.batch_size)
    return _print_batch_results(results)


def _run_batch_command(
    repository: ArtifactRepository,
    config: TagLedgerConfig,
    args: argparse.Namespace,
) -> int:
    """Handle batch command from a YAML manifest."""
    entries = load_batch_manifest(args.manifest, default_app=config.app_name)
    items = read_manifest_items(entries)
    results = repository.upload_batch(items, want_receipt=args.receipt, batch_size=args.batch_size)
    return _print_batch_results(results)


def _run_query_command(repository: ArtifactRepository, args: argparse.Namespace) -> int:
    """Handle query command.

    Args:
        repository: Repository coordinator.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    options = QueryOptions(
        filters=QueryFilters(
            dataset_name=args.dataset,
            split=args.split,
            version=args.version,
            content_type=args.content_type,
            app=args.app,
            owner=args.owner,
            start_time=args.start_time,
            end_time=args.end_time,
        ),
        sort_by=args.sort_by,
        sort_order=args.sort_order,
        limit=None if args.all else args.limit,
        cursor=args.cursor,
    )
    page = repository.query_remote(options) if args.remote else repository.query(options)
    for record in page.results:
        _print_json(record_to_dict(record))
    if page.next_cursor is not None:
        _print_json({"nextCursor": page.next_cursor})
    return 0


def _run_reindex_command(
    repository: ArtifactRepository,
    config: TagLedgerConfig,
    args: argparse.Namespace,
) -> int:
    """Re-index a transaction already present on the local ledger."""
    transaction = LocalLedger(config.ledger_root).read_transaction(args.transaction_id)
    record = repository.index_uploaded(
        transaction.id,
        tags_from_wire(transaction.tags),
        receipt=args.receipt,
    )
    _print_json(record_to_dict(record))
    return 0


def _print_batch_results(results: list[BatchItemResult]) -> int:
    for result in results:
        _print_json(
            {
                "source": result.source_ref,
                "state": result.state,
                "id": result.id,
                "receipt": result.receipt,
                "error": str(result.error) if result.error else None,
            }
        )
    return 0 if all(result.succeeded for result in results) else 1


def _print_json(payload: object) -> None:
    print(json.dumps(payload, sort_keys=True))


def _add_upload_command(subparsers: Any) -> None:
    """Register upload subcommand."""
    parser = subparsers.add_parser("upload", help="Upload one or more files and index them")
    parser.add_argument("files", nargs="+", help="Files to upload")
    parser.add_argument("--dataset", required=True, help="Dataset name")
    parser.add_argument("--split", required=True, help="Dataset split, e.g. train")
    parser.add_argument("--version", required=True, help="Version label")
    parser.add_argument("--owner", required=True, help="Owner identifier")
    parser.add_argument("--app", help="App tag, defaults to TAGLEDGER_APP_NAME")
    parser.add_argument("--content-type", default=DEFAULT_CONTENT_TYPE, help="Payload MIME type")
    parser.add_argument("--created-at", help="ISO-8601 creation time, defaults to now")
    parser.add_argument("--receipt", action="store_true", help="Keep the ledger receipt")
    parser.add_argument("--batch-size", type=int, help="Concurrent uploads per batch")


def _add_batch_command(subparsers: Any) -> None:
    """Register batch subcommand."""
    parser = subparsers.add_parser("batch", help="Upload files listed in a YAML manifest")
    parser.add_argument("manifest", help="Path to YAML batch manifest")
    parser.add_argument("--receipt", action="store_true", help="Keep ledger receipts")
    parser.add_argument("--batch-size", type=int, help="Concurrent uploads per batch")


def _add_query_command(subparsers: Any) -> None:
    """Register query subcommand."""
    parser = subparsers.add_parser("query", help="Query indexed artifacts")
    parser.add_argument("--dataset", help="Dataset name filter")
    parser.add_argument("--split", help="Split filter")
    parser.add_argument("--version", help="Version label filter")
    parser.add_argument("--content-type", help="Content type filter")
    parser.add_argument("--app", help="App filter")
    parser.add_argument("--owner", help="Owner filter")
    parser.add_argument("--start-time", help="Inclusive ISO-8601 lower time bound")
    parser.add_argument("--end-time", help="Inclusive ISO-8601 upper time bound")
    parser.add_argument("--sort-by", default="timestamp", choices=SUPPORTED_SORT_FIELDS)
    parser.add_argument("--sort-order", default="desc", choices=SUPPORTED_SORT_ORDERS)
    parser.add_argument("--limit", type=int, default=DEFAULT_QUERY_LIMIT, help="Page size")
    parser.add_argument("--all", action="store_true", help="Return every match in one page")
    parser.add_argument("--cursor", help="Cursor from a previous page")
    parser.add_argument("--remote", action="store_true", help="Query the remote gateway")


def _add_latest_command(subparsers: Any) -> None:
    """Register latest subcommand."""
    parser = subparsers.add_parser("latest", help="Show the latest version of a dataset")
    parser.add_argument("--dataset", required=True, help="Dataset name")
    parser.add_argument("--split", help="Optional split")


def _add_versions_command(subparsers: Any) -> None:
    """Register versions subcommand."""
    parser = subparsers.add_parser("versions", help="List every version of a dataset")
    parser.add_argument("--dataset", required=True, help="Dataset name")
    parser.add_argument("--split", help="Optional split")


def _add_reindex_command(subparsers: Any) -> None:
    """Register reindex subcommand."""
    parser = subparsers.add_parser(
        "reindex",
        help="Index a ledger transaction that is missing from the local index",
    )
    parser.add_argument("transaction_id", help="Ledger transaction id")
    parser.add_argument("--receipt", help="Optional receipt to store with the record")
