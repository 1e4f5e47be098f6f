"""
Input schemas for the exposed operations.
Validation failures surface as InputInvalid so callers get one error kind.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from rostercore.errors import InputInvalid
from rostercore.models import TriggerType


def utcnow() -> datetime:
    """Naive UTC now. Every timestamp stored or compared here is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _clean_id(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class CandidateAssignment(BaseModel):
    org_id: str
    student_id: str
    instructor_id: Optional[str] = None
    aircraft_id: Optional[str] = None
    lesson_id: Optional[str] = None
    airport_icao: str
    start_at: datetime
    end_at: datetime
    # sortie this candidate would replace; excluded from the duty count
    replaces_assignment_id: Optional[str] = None

    @field_validator("instructor_id", "aircraft_id", "lesson_id",
                     "replaces_assignment_id", mode="before")
    @classmethod
    def optional_ids(cls, v):
        return _clean_id(v)

    @field_validator("org_id", "student_id")
    @classmethod
    def required_ids(cls, v):
        v = v.strip()
        assert v, "must not be empty"
        return v

    @field_validator("airport_icao")
    @classmethod
    def icao_code(cls, v):
        v = v.strip().upper()
        assert 3 <= len(v) <= 4 and v.isalnum(), f"Bad airport code: {v}"
        return v

    @field_validator("start_at", "end_at")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def window_order(self):
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self

    @property
    def duration(self):
        return self.end_at - self.start_at

    def as_payload(self) -> dict:
        """JSON-safe dict, used when a candidate is stored on an alternative."""
        return self.model_dump(mode="json", exclude={"replaces_assignment_id"})


class DisruptionEvent(BaseModel):
    org_id: str
    trigger_type: TriggerType
    affected_entity_id: Optional[str] = None
    airport_icao: Optional[str] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    payload: dict = Field(default_factory=dict)
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @field_validator("window_start", "window_end")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v) if v is not None else None

    @field_validator("airport_icao")
    @classmethod
    def upper_icao(cls, v):
        return v.strip().upper() if v else None

    @model_validator(mode="after")
    def trigger_inputs(self):
        t = self.trigger_type
        if t in (TriggerType.WEATHER, TriggerType.NOTAM) and not self.airport_icao:
            raise ValueError(f"{t.value} disruption needs airport_icao")
        if t in (TriggerType.AVAILABILITY, TriggerType.AIRCRAFT) and not self.affected_entity_id:
            raise ValueError(f"{t.value} disruption needs affected_entity_id")
        if t == TriggerType.AVAILABILITY and not (self.window_start and self.window_end):
            raise ValueError("availability disruption needs window_start and window_end")
        if self.window_start and self.window_end and self.window_end <= self.window_start:
            raise ValueError("window_end must be after window_start")
        return self


class SnapshotIn(BaseModel):
    captured_at: Optional[datetime] = None
    weather: dict[str, dict] = Field(default_factory=dict)
    notams: dict[str, list[str]] = Field(default_factory=dict)
    traffic: dict[str, dict] = Field(default_factory=dict)

    @field_validator("captured_at")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v) if v is not None else None

    @field_validator("weather", "notams", "traffic")
    @classmethod
    def upper_keys(cls, v):
        return {k.strip().upper(): val for k, val in v.items()}


class SlotIn(BaseModel):
    start_at: datetime
    end_at: datetime

    @field_validator("start_at", "end_at")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def window_order(self):
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


def parse(model: type[BaseModel], data):
    """Validate `data` into `model`; ValidationError → InputInvalid."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or model.__name__
        raise InputInvalid(f"{where}: {first.get('msg', 'invalid value')}") from e
