"""Base model and shared coercions for fleet entities.

Every stored entity inherits from :class:`Entity`, which provides:

* ``alias_generator=to_camel`` so the camelCase keys written by the
  dashboard map onto snake_case fields.
* ``extra="allow"`` so attributes a form added later survive a
  round trip untouched; the sync layer never depends on them.
* Tolerant timestamp parsing: the database holds ISO-8601 strings for
  most records but epoch milliseconds for records written by the generic
  ``push`` helper.
* Numeric coercion for form values that were stored as strings.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def iso_timestamp(moment: datetime) -> str:
    """Format *moment* the way browsers' ``toISOString`` does (ms precision, ``Z``)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an ISO-8601 string or epoch seconds/milliseconds to a UTC datetime.

    Returns ``None`` for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings or epoch numbers to UTC datetimes."""

FlexFloat = Annotated[float | None, BeforeValidator(safe_float)]
"""Float field that tolerates numeric strings and blanks."""

FlexInt = Annotated[int | None, BeforeValidator(safe_int)]
"""Integer field that tolerates numeric strings and blanks."""


class FleetBaseModel(BaseModel):
    """Base for every model persisted in the realtime database."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize back to the camelCase JSON shape stored remotely."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Entity(FleetBaseModel):
    """One record with a unique ``id`` within its collection."""

    id: str = Field(..., min_length=1)
    created_at: Timestamp = None
    updated_at: Timestamp = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Numeric keys come back as ints when the collection is stored as an array.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value
