"""Base model for authority payloads.

Every authority response model inherits from :class:`GsdsBaseModel` which
provides:

* ``extra="ignore"`` so fields added by newer server code never break parsing.
* A ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GsdsBaseModel(BaseModel):
    """Base for authority response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop ``None`` values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
