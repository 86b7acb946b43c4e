"""Unit tests for tag bag serialization."""

from __future__ import annotations

import pytest

from core.errors import StorageFailure
from core.types import ArtifactRecord, build_tags
from store.record_payload import decode_tags, encode_tags, record_to_dict, tags_from_payload


def _sample_tags():
    return build_tags(
        dataset_name="mnist",
        split="train",
        version="1.0.0",
        owner="alice",
        created_at="2024-01-01T00:00:00Z",
        app="vision-lab",
        extra_fields={"license": "cc-by"},
    )


def test_encode_tags_uses_camel_case_keys() -> None:
    """Stored tag bags should use the camelCase vocabulary."""
    payload = encode_tags(_sample_tags())

    assert '"datasetName": "mnist"' in payload and '"contentType"' in payload


def test_decode_tags_preserves_extra_fields() -> None:
    """Extra fields should survive the JSON tag bag."""
    tags = decode_tags(encode_tags(_sample_tags()), "id-1")

    assert tags.extra_fields == {"license": "cc-by"}


def test_extra_fields_cannot_shadow_required_keys() -> None:
    """An extra field named like a required key should be ignored."""
    tags = build_tags(
        dataset_name="mnist",
        split="train",
        version="1",
        owner="alice",
        created_at="2024-01-01T00:00:00Z",
        app="vision-lab",
        extra_fields={"datasetName": "spoofed"},
    )

    assert decode_tags(encode_tags(tags), "id-1").dataset_name == "mnist"


def test_tags_from_payload_tolerates_missing_fields() -> None:
    """The store accepts arbitrary tag bags; missing fields become empty."""
    tags = tags_from_payload({"datasetName": "mnist"})

    assert tags.split == "" and tags.dataset_name == "mnist"


def test_decode_tags_raises_for_corrupt_json() -> None:
    """Corrupt stored JSON should surface as a storage failure."""
    with pytest.raises(StorageFailure):
        decode_tags("{not json", "id-1")


def test_decode_tags_raises_for_non_object() -> None:
    """A JSON array is not a tag bag."""
    with pytest.raises(StorageFailure):
        decode_tags("[1, 2]", "id-1")


def test_record_to_dict_omits_absent_receipt() -> None:
    """Output dictionaries should only carry receipts that were requested."""
    record = ArtifactRecord(id="id-1", timestamp=1000, tags=_sample_tags())

    payload = record_to_dict(record)

    assert "receipt" not in payload and payload["timestamp"] == 1000
