"""Upload tag validation.

The store accepts any tag bag, so required-field checks happen here,
before anything is written to the remote ledger.
"""

from __future__ import annotations

from typing import Mapping

from core.errors import TagValidationError
from core.types import ArtifactTags

REQUIRED_TAG_ATTRIBUTES = (
    "app",
    "content_type",
    "dataset_name",
    "split",
    "version",
    "owner",
    "created_at",
)


def validate_tags(tags: ArtifactTags) -> None:
    """Reject tags with missing or blank required fields.

    Args:
        tags: Tags supplied for an upload.

    Raises:
        TagValidationError: If a required field is blank or an extra
            field is not a string.
    """
    missing = [
        attribute
        for attribute in REQUIRED_TAG_ATTRIBUTES
        if not isinstance(getattr(tags, attribute), str) or not getattr(tags, attribute).strip()
    ]
    if missing:
        raise TagValidationError(
            f"Upload tags are missing required fields: {', '.join(missing)}. "
            "Provide a non-empty value for every required tag."
        )
    if not isinstance(tags.extra_fields, Mapping):
        raise TagValidationError(
            "Upload tag extra_fields must be a mapping of strings, "
            f"got {type(tags.extra_fields).__name__}. Pass an empty dict for no extras."
        )
    for key, value in tags.extra_fields.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise TagValidationError(
                f"Extra tag {key!r} must map a string name to a string value, "
                f"got {type(value).__name__}."
            )
