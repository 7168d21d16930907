# riverflow/api/schemas.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from riverflow.core.errors import ReadingValidationError

# fractions of 1 to 6 digits, Z or offset (fromisoformat on 3.10 takes only 3 or 6)
_DATETIME: TypeAdapter = TypeAdapter(datetime)


# ─────────────────────────────────────────────────────────────────────────────
# Inbound reading
# ─────────────────────────────────────────────────────────────────────────────
class ReadingIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    node_id: str = Field(alias="nodeId", min_length=1)
    water_level: float = Field(alias="waterLevel", allow_inf_nan=False)
    timestamp: Optional[str] = None

    @field_validator("water_level", mode="before")
    @classmethod
    def _no_bool(cls, v: Any) -> Any:
        # JSON true/false would otherwise pass as 1.0/0.0
        if isinstance(v, bool):
            raise ValueError("waterLevel must be a number")
        return v

    @field_validator("timestamp")
    @classmethod
    def _iso_utc(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        try:
            dt = _DATETIME.validate_python(v)
        except ValidationError:
            raise ValueError("timestamp must be ISO-8601")
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_reading(body: Any) -> ReadingIn:
    """Validate a POST /reading body; every failure is a ReadingValidationError."""
    if not isinstance(body, dict):
        raise ReadingValidationError("Body must be a JSON object")
    if body.get("nodeId") in (None, "") or body.get("waterLevel") is None:
        raise ReadingValidationError("Missing nodeId or waterLevel")
    try:
        return ReadingIn.model_validate(body)
    except ValidationError as e:
        err = e.errors()[0]
        where = ".".join(str(p) for p in err.get("loc", ()))
        raise ReadingValidationError(f"Invalid {where}: {err.get('msg')}") from e


# ─────────────────────────────────────────────────────────────────────────────
# Nodes
# ─────────────────────────────────────────────────────────────────────────────
class NodeCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=128)
    latitude: float = Field(allow_inf_nan=False)
    longitude: float = Field(allow_inf_nan=False)
    threshold: float = Field(ge=0, allow_inf_nan=False)


class NodeUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    latitude: Optional[float] = Field(default=None, allow_inf_nan=False)
    longitude: Optional[float] = Field(default=None, allow_inf_nan=False)
    threshold: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)
