"""
Plain records exchanged with collaborators.

- ResponseRecord: one learner response from the session layer
- CandidateObject: a learning object offered by the content layer

Records are validated with pydantic before any engine state is touched;
validation failures surface as InputValidationError.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    field_validator,
    model_validator,
)

from logos.core.clock import as_utc
from logos.core.components import ComponentType
from logos.core.errors import InputValidationError


class ResponseRecord(BaseModel):
    """A single learner response, as ingested from the session layer."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    object_id: str = Field(..., min_length=1, description="Learning object identifier")
    component: ComponentType = Field(..., description="Linguistic component exercised")
    correct: StrictBool = Field(..., description="Whether the response was correct")
    cue_level: int = Field(..., ge=0, le=3, description="0 = cue-free, 3 = full cues")
    response_time_ms: int = Field(..., ge=0, description="Time to answer in milliseconds")
    timestamp: datetime = Field(..., description="When the response was given")
    session_id: str | None = Field(None, description="Session the response belongs to")
    content: str = Field("", description="Surface form the learner worked on, used for error patterns")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def cue_free(self) -> bool:
        return self.cue_level == 0


class CandidateObject(BaseModel):
    """A learning object the content layer offers for scheduling."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    object_id: str = Field(..., min_length=1)
    content: str = Field("", description="Surface form, used for collocation lookups")
    component: ComponentType = Field(ComponentType.LEX)
    frequency: float | None = Field(None, ge=0.0, le=1.0, description="Normalized corpus frequency")
    frequency_rank: int | None = Field(None, ge=1, description="1 = most frequent")
    domain_tags: tuple[str, ...] = Field(default_factory=tuple)
    base_difficulty: float = Field(0.0, ge=-6.0, le=6.0, description="IRT difficulty (logit)")
    relational_density: float | None = Field(None, ge=0.0, le=1.0)
    contextual_relevance: float | None = Field(None, ge=0.0, le=1.0)
    related_object_ids: tuple[str, ...] = Field(default_factory=tuple)

    @model_validator(mode="before")
    @classmethod
    def _derive_frequency(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("frequency") is not None:
            return data
        rank = data.get("frequency_rank")
        if isinstance(rank, int) and not isinstance(rank, bool) and rank >= 1:
            # Zipf-style decay: rank 1 -> 1.0
            data = {**data, "frequency": 1.0 / (1.0 + math.log(rank))}
        return data

    @property
    def normalized_frequency(self) -> float:
        return self.frequency if self.frequency is not None else 0.0


def _raise_validation(kind: str, exc: ValidationError) -> None:
    errors = exc.errors(include_url=False)
    names = ", ".join(".".join(str(p) for p in err["loc"]) or kind for err in errors)
    raise InputValidationError(f"Malformed {kind} record: {names}", errors=errors) from exc


def parse_response(data: dict[str, Any] | ResponseRecord) -> ResponseRecord:
    """
    Validate a raw response record.

    Raises:
        InputValidationError: missing field, cue level out of range,
            negative response time, or wrong types.
    """
    if isinstance(data, ResponseRecord):
        return data
    try:
        return ResponseRecord.model_validate(data)
    except ValidationError as exc:
        _raise_validation("response", exc)
        raise  # unreachable


def parse_candidate(data: dict[str, Any] | CandidateObject) -> CandidateObject:
    """Validate a raw candidate record."""
    if isinstance(data, CandidateObject):
        return data
    try:
        return CandidateObject.model_validate(data)
    except ValidationError as exc:
        _raise_validation("candidate", exc)
        raise  # unreachable
