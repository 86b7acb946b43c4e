"""Remote ledger tag vocabulary.

The ledger stores tags as a flat list of name/value pairs with
capitalized, hyphenated names. The seven required names are emitted
first and in a fixed order; extra fields follow unchanged.
"""

from __future__ import annotations

from typing import Iterable

from core.constants import TAG_FIELD_KEYS, WIRE_TAG_NAMES
from core.types import ArtifactTags
from ledger.ledger_client import WireTag
from store.record_payload import tags_from_payload, tags_to_payload

WIRE_NAME_BY_KEY = dict(zip(TAG_FIELD_KEYS, WIRE_TAG_NAMES))
KEY_BY_WIRE_NAME = dict(zip(WIRE_TAG_NAMES, TAG_FIELD_KEYS))
FILTER_WIRE_NAMES = {
    "dataset_name": "Dataset-Name",
    "split": "Split",
    "version": "Version",
    "content_type": "Content-Type",
    "app": "App",
    "owner": "Owner",
}


def build_wire_tags(tags: ArtifactTags) -> list[WireTag]:
    """Flatten artifact tags into ledger wire tags.

    Args:
        tags: Typed tag bag.

    Returns:
        Ordered ``(name, value)`` pairs, required tags first.
    """
    payload = tags_to_payload(tags)
    wire_tags = [(WIRE_NAME_BY_KEY[key], payload[key]) for key in TAG_FIELD_KEYS]
    for key in sorted(tags.extra_fields):
        if key not in WIRE_NAME_BY_KEY and key not in KEY_BY_WIRE_NAME:
            wire_tags.append((key, tags.extra_fields[key]))
    return wire_tags


def tags_from_wire(pairs: Iterable[WireTag]) -> ArtifactTags:
    """Rebuild artifact tags from ledger wire tags.

    Unknown names are kept as extra fields; the first occurrence of a
    repeated name wins.
    """
    payload: dict[str, str] = {}
    for name, value in pairs:
        key = KEY_BY_WIRE_NAME.get(name, name)
        payload.setdefault(key, value)
    return tags_from_payload(payload)
