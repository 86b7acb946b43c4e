"""Typed batch upload manifest parsing.

This module loads YAML manifests that list files to upload with their
tags. Root ``defaults`` apply to every item; item keys override them.

Example::

    version: 1
    defaults:
      app: vision-lab
      owner: alice
      dataset_name: mnist
    items:
      - path: train.bin
        split: train
        version: "1.0.0"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, cast

import yaml

from core.constants import DEFAULT_CONTENT_TYPE
from core.errors import TagLedgerManifestError
from core.timestamps import utc_now_iso
from core.types import ArtifactTags, BatchUploadItem

TAG_KEYS = ("app", "content_type", "dataset_name", "split", "version", "owner", "created_at")
ITEM_KEYS = frozenset(TAG_KEYS + ("path", "extra"))
ROOT_KEYS = frozenset(("version", "defaults", "items"))


@dataclass(frozen=True)
class ManifestEntry:
    """One file listed in a batch manifest."""

    path: Path
    tags: ArtifactTags


def load_batch_manifest(
    manifest_path: str,
    default_app: str | None = None,
) -> tuple[ManifestEntry, ...]:
    """Load and validate a YAML batch manifest.

    Args:
        manifest_path: Path to the YAML manifest.
        default_app: ``App`` tag used when neither defaults nor item set one.

    Returns:
        Manifest entries in file order. Relative paths resolve against the
        manifest's directory.

    Raises:
        TagLedgerManifestError: If the file is unreadable or invalid.
    """
    manifest_file = Path(manifest_path).expanduser().resolve()
    payload = _load_yaml_payload(manifest_file)
    root_mapping = _expect_mapping(payload, "batch manifest root")
    unknown_keys = sorted(set(root_mapping) - ROOT_KEYS)
    if unknown_keys:
        raise TagLedgerManifestError(
            f"Batch manifest contains unknown root fields: {', '.join(unknown_keys)}."
        )
    if root_mapping.get("version") != 1:
        raise TagLedgerManifestError("Batch manifest field 'version' must be 1. Set version: 1.")
    defaults = _parse_defaults(root_mapping.get("defaults"), default_app)
    raw_items = root_mapping.get("items")
    if raw_items is None:
        raise TagLedgerManifestError(
            "Batch manifest missing required field 'items'. Add a non-empty list of files."
        )
    item_rows = _expect_sequence(raw_items, "batch manifest items")
    if len(item_rows) == 0:
        raise TagLedgerManifestError("Batch manifest field 'items' must include at least one item.")
    return tuple(
        _parse_item(item_value, index, defaults, manifest_file.parent)
        for index, item_value in enumerate(item_rows)
    )


def read_manifest_items(entries: Sequence[ManifestEntry]) -> list[BatchUploadItem]:
    """Read manifest files into batch upload items.

    Raises:
        TagLedgerManifestError: If a listed file cannot be read.
    """
    items: list[BatchUploadItem] = []
    for entry in entries:
        try:
            payload = entry.path.read_bytes()
        except OSError as error:
            raise TagLedgerManifestError(
                f"Failed to read manifest item {entry.path}: {error}. "
                "Fix the path in the manifest and retry."
            ) from error
        items.append(BatchUploadItem(source_ref=str(entry.path), payload=payload, tags=entry.tags))
    return items


def _load_yaml_payload(manifest_file: Path) -> object:
    if not manifest_file.exists():
        raise TagLedgerManifestError(
            f"Batch manifest does not exist at {manifest_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(manifest_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise TagLedgerManifestError(
            f"Failed to read batch manifest at {manifest_file}: {error}."
        ) from error
    except yaml.YAMLError as error:
        raise TagLedgerManifestError(
            f"Failed to parse YAML batch manifest at {manifest_file}: {error}. Fix YAML syntax."
        ) from error
    if payload is None:
        raise TagLedgerManifestError(
            f"Batch manifest at {manifest_file} is empty. Define 'version' and 'items'."
        )
    return payload


def _parse_defaults(raw_defaults: object, default_app: str | None) -> dict[str, str]:
    defaults: dict[str, str] = {"content_type": DEFAULT_CONTENT_TYPE}
    if default_app:
        defaults["app"] = default_app
    if raw_defaults is None:
        return defaults
    defaults_mapping = _expect_mapping(raw_defaults, "batch manifest defaults")
    unknown_keys = sorted(set(defaults_mapping) - set(TAG_KEYS))
    if unknown_keys:
        raise TagLedgerManifestError(
            f"Batch manifest defaults contain unknown fields: {', '.join(unknown_keys)}."
        )
    for key, value in defaults_mapping.items():
        defaults[key] = _scalar_string(value, f"defaults.{key}")
    return defaults


def _parse_item(
    item_value: object,
    item_index: int,
    defaults: Mapping[str, str],
    base_dir: Path,
) -> ManifestEntry:
    context = f"batch manifest item #{item_index + 1}"
    item_mapping = _expect_mapping(item_value, context)
    unknown_keys = sorted(set(item_mapping) - ITEM_KEYS)
    if unknown_keys:
        raise TagLedgerManifestError(
            f"Invalid {context}: unknown fields {', '.join(unknown_keys)}."
        )
    raw_path = item_mapping.get("path")
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise TagLedgerManifestError(f"Invalid {context}: field 'path' must be a non-empty string.")
    values = dict(defaults)
    for key in TAG_KEYS:
        if key in item_mapping:
            values[key] = _scalar_string(item_mapping[key], f"{context}.{key}")
    missing = [key for key in TAG_KEYS if key != "created_at" and not values.get(key)]
    if missing:
        raise TagLedgerManifestError(
            f"Invalid {context}: missing tag fields {', '.join(missing)}. "
            "Set them on the item or under 'defaults'."
        )
    extra_fields = {}
    if "extra" in item_mapping:
        extra_mapping = _expect_mapping(item_mapping["extra"], f"{context} extra")
        extra_fields = {
            key: _scalar_string(value, f"{context}.extra.{key}")
            for key, value in extra_mapping.items()
        }
    item_path = Path(raw_path).expanduser()
    if not item_path.is_absolute():
        item_path = base_dir / item_path
    tags = ArtifactTags(
        app=values["app"],
        content_type=values["content_type"],
        dataset_name=values["dataset_name"],
        split=values["split"],
        version=values["version"],
        owner=values["owner"],
        created_at=values.get("created_at") or utc_now_iso(),
        extra_fields=extra_fields,
    )
    return ManifestEntry(path=item_path, tags=tags)


def _scalar_string(value: object, context: str) -> str:
    # YAML reads unquoted 1.0 as a float; version labels stay opaque strings.
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise TagLedgerManifestError(f"Manifest field '{context}' must be a string.")
    return str(value).strip()


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise TagLedgerManifestError(
                    f"Invalid {context}: expected string keys, got {type(key).__name__}."
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise TagLedgerManifestError(
        f"Invalid {context}: expected object mapping, got {type(value).__name__}."
    )


def _expect_sequence(value: object, context: str) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise TagLedgerManifestError(f"Invalid {context}: expected list, got {type(value).__name__}.")
