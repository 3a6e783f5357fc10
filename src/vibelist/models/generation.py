from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from vibelist.utils.errors import ValidationError

DEFAULT_SONG_COUNT = 20
MAX_SONG_COUNT = 100


# ========== POST /api/generate body ==========
class GenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    artists: List[str] = Field(min_length=1)
    song_count: int = Field(default=DEFAULT_SONG_COUNT, ge=1, le=MAX_SONG_COUNT, alias="songCount")
    start_year: Optional[int] = Field(default=None, alias="startYear")
    end_year: Optional[int] = Field(default=None, alias="endYear")

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("artists")
    @classmethod
    def _no_blank_artists(cls, v: List[str]) -> List[str]:
        cleaned = [a.strip() for a in v]
        if any(not a for a in cleaned):
            raise ValueError("artist names must not be blank")
        return cleaned

    @field_validator("song_count", mode="before")
    @classmethod
    def _default_when_null(cls, v):
        return DEFAULT_SONG_COUNT if v is None else v

    @property
    def year_filter(self) -> str:
        if self.start_year is not None and self.end_year is not None:
            return f" year:{self.start_year}-{self.end_year}"
        return ""


def _describe(err: PydanticValidationError) -> str:
    first = err.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    field = {"song_count": "songCount", "start_year": "startYear", "end_year": "endYear"}.get(loc, loc)
    if field == "songCount":
        return f"Song count must be between 1 and {MAX_SONG_COUNT}"
    if field.split(".")[0] in ("name", "artists"):
        return "Invalid request: name and artists are required"
    return f"Invalid request: {field}: {first.get('msg')}"


def parse_generation_request(payload: Any) -> GenerationRequest:
    """Validate a decoded JSON body; raises ValidationError (HTTP 400) on any problem."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request: expected a JSON object")
    try:
        return GenerationRequest.model_validate(payload)
    except PydanticValidationError as ve:
        raise ValidationError(_describe(ve)) from ve
