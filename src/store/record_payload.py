"""Artifact tag and record serialization helpers.

This module converts between typed artifact models and the JSON tag bag
stored in the index. Decoding is tolerant: the store accepts any JSON
object as an opaque tag bag.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from core.constants import TAG_FIELD_KEYS
from core.errors import StorageFailure
from core.types import ArtifactRecord, ArtifactTags


def tags_to_payload(tags: ArtifactTags) -> dict[str, str]:
    """Serialize an ArtifactTags value to its JSON tag bag.

    Args:
        tags: Typed tag bag.

    Returns:
        Dictionary keyed by camelCase tag names plus extra fields.
    """
    payload = {
        key: value
        for key, value in tags.extra_fields.items()
        if key not in TAG_FIELD_KEYS
    }
    payload.update(
        {
            "app": tags.app,
            "contentType": tags.content_type,
            "datasetName": tags.dataset_name,
            "split": tags.split,
            "version": tags.version,
            "owner": tags.owner,
            "createdAt": tags.created_at,
        }
    )
    return payload


def tags_from_payload(payload: Mapping[str, Any]) -> ArtifactTags:
    """Deserialize a JSON tag bag into ArtifactTags.

    Args:
        payload: Tag bag mapping.

    Returns:
        Typed tags; missing required fields become empty strings.
    """
    return ArtifactTags(
        app=str(payload.get("app", "")),
        content_type=str(payload.get("contentType", "")),
        dataset_name=str(payload.get("datasetName", "")),
        split=str(payload.get("split", "")),
        version=str(payload.get("version", "")),
        owner=str(payload.get("owner", "")),
        created_at=str(payload.get("createdAt", "")),
        extra_fields={
            str(key): str(value) for key, value in payload.items() if key not in TAG_FIELD_KEYS
        },
    )


def encode_tags(tags: ArtifactTags) -> str:
    """Encode tags as the JSON text stored in the index."""
    return json.dumps(tags_to_payload(tags), sort_keys=True)


def decode_tags(raw_tags: str, record_id: str) -> ArtifactTags:
    """Decode stored JSON tag text.

    Args:
        raw_tags: JSON text from the ``tags`` column.
        record_id: Owning record id for error context.

    Returns:
        Typed tags.

    Raises:
        StorageFailure: If the stored JSON is corrupt.
    """
    try:
        payload = json.loads(raw_tags)
    except json.JSONDecodeError as error:
        raise StorageFailure(
            f"Corrupt tag payload for record '{record_id}': {error.msg}. "
            "Re-index the artifact from the remote ledger."
        ) from error
    if not isinstance(payload, dict):
        raise StorageFailure(
            f"Corrupt tag payload for record '{record_id}': expected a JSON object. "
            "Re-index the artifact from the remote ledger."
        )
    return tags_from_payload(payload)


def record_from_row(row: Mapping[str, Any]) -> ArtifactRecord:
    """Build an ArtifactRecord from one index row."""
    record_id = str(row["id"])
    return ArtifactRecord(
        id=record_id,
        timestamp=int(row["timestamp"]),
        tags=decode_tags(str(row["tags"]), record_id),
        receipt=row["receipt"],
        created_at=row["created_at"] or None,
    )


def record_to_dict(record: ArtifactRecord) -> dict[str, object]:
    """Serialize a record to a JSON-safe dictionary for output."""
    payload: dict[str, object] = {
        "id": record.id,
        "timestamp": record.timestamp,
        "tags": tags_to_payload(record.tags),
    }
    if record.receipt is not None:
        payload["receipt"] = record.receipt
    if record.created_at is not None:
        payload["createdAt"] = record.created_at
    return payload
