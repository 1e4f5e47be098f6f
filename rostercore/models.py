from sqlalchemy import (
    Column, String, Integer, Float, DateTime, JSON, ForeignKey, Text,
    Enum as SAEnum
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import enum

Base = declarative_base()


# ── Enums ────────────────────────────────────────────────────────────────────

class AssignmentStatus(str, enum.Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    PENDING_CONFIRM = "pending_confirm"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class AlternativeStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class TriggerType(str, enum.Enum):
    WEATHER = "weather"
    NOTAM = "notam"
    AVAILABILITY = "availability"
    AIRCRAFT = "aircraft"

class AircraftStatus(str, enum.Enum):
    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    GROUNDED = "grounded"

class BlockType(str, enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


# ── Reference data (written by external admin tooling) ───────────────────────

class Lesson(Base):
    __tablename__ = "lesson_catalog"

    id = Column(String, primary_key=True)              # e.g. "L-NAV-02"
    org_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    # {"instructor_req": ["CFI"], "aircraft_req": ["IFR"],
    #  "weather_minima": {...} | {"template": "VFR_DUAL"}, "prerequisites": ["M1"]}
    requirements = Column(JSON, nullable=False, default=dict)


class Aircraft(Base):
    __tablename__ = "aircraft"

    id = Column(String, primary_key=True)              # e.g. "AC02"
    org_id = Column(String, nullable=False, index=True)
    registration = Column(String, nullable=False)
    type = Column(String, nullable=False)              # e.g. "C172"
    status = Column(SAEnum(AircraftStatus), default=AircraftStatus.AVAILABLE)
    capabilities = Column(JSON, nullable=False, default=list)   # ["IFR", "NIGHT"]
    # {"takeoff_distance_ft": 1600, "landing_distance_ft": 1300,
    #  "max_density_altitude_ft": 8000}
    performance = Column(JSON, nullable=False, default=dict)
    total_hours = Column(Float, nullable=True)
    next_inspection_hours = Column(Float, nullable=True)  # airframe hours when due


class Instructor(Base):
    __tablename__ = "instructors"

    id = Column(String, primary_key=True)              # e.g. "I045"
    org_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    qualifications = Column(JSON, nullable=False, default=list)  # ["CFI", "CFII"]
    base_airport = Column(String, nullable=True)


class Student(Base):
    __tablename__ = "students"

    id = Column(String, primary_key=True)              # e.g. "S123"
    org_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    completed_milestones = Column(JSON, nullable=False, default=list)


class AvailabilityBlock(Base):
    __tablename__ = "availability_block"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(SAEnum(BlockType), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)


class Airport(Base):
    __tablename__ = "airports"

    icao = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)


# ── Policy + environment ─────────────────────────────────────────────────────

class ConstraintPolicy(Base):
    __tablename__ = "constraint_policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    policy_name = Column(String, nullable=False)       # "SchoolDuty", "ObjectiveWeights", ...
    rules = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class EnvironmentSnapshot(Base):
    __tablename__ = "environment_snapshot"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    captured_at = Column(DateTime, nullable=False)
    weather = Column(JSON, nullable=False, default=dict)   # {icao: {...}}
    notams = Column(JSON, nullable=False, default=dict)    # {icao: ["RWY 09 CLSD", ...]}
    traffic = Column(JSON, nullable=False, default=dict)   # {icao: {"density": "high"}}


# ── Roster ────────────────────────────────────────────────────────────────────

class RosterAssignment(Base):
    __tablename__ = "roster_assignment"

    id = Column(String, primary_key=True)
    org_id = Column(String, nullable=False, index=True)
    student_id = Column(String, nullable=False, index=True)
    instructor_id = Column(String, nullable=True, index=True)
    aircraft_id = Column(String, nullable=True, index=True)
    lesson_id = Column(String, nullable=True)
    airport_icao = Column(String, nullable=False)
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False)
    status = Column(SAEnum(AssignmentStatus), nullable=False,
                    default=AssignmentStatus.PROPOSED)
    total_score = Column(Float, nullable=True)
    score_breakdown = Column(JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class DisruptionEventRecord(Base):
    __tablename__ = "disruption_events"

    id = Column(String, primary_key=True)              # correlation id
    org_id = Column(String, nullable=False, index=True)
    trigger_type = Column(SAEnum(TriggerType), nullable=False)
    affected_entity_id = Column(String, nullable=True)
    airport_icao = Column(String, nullable=True)
    window_start = Column(DateTime, nullable=True)
    window_end = Column(DateTime, nullable=True)
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime, server_default=func.now())


class AlternativeSolution(Base):
    __tablename__ = "roster_alternative_solutions"

    id = Column(String, primary_key=True)
    org_id = Column(String, nullable=False, index=True)
    original_assignment_id = Column(String, ForeignKey("roster_assignment.id"),
                                    nullable=False, index=True)
    disruption_event_id = Column(String, ForeignKey("disruption_events.id"),
                                 nullable=False)
    trigger_type = Column(SAEnum(TriggerType), nullable=False)
    alternative_assignment = Column(JSON, nullable=False)
    score_breakdown = Column(JSON, nullable=False)
    total_score = Column(Float, nullable=False)
    status = Column(SAEnum(AlternativeStatus), nullable=False,
                    default=AlternativeStatus.PENDING)
    generated_at = Column(DateTime, server_default=func.now())
    resolved_at = Column(DateTime, nullable=True)


# ── Notifications + audit ─────────────────────────────────────────────────────

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, default="warning")
    created_at = Column(DateTime, server_default=func.now())


class EventLog(Base):
    __tablename__ = "event_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)              # "schedule_disruption_detected"
    category = Column(String, default="roster")
    message = Column(Text, nullable=False)
    event_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime, server_default=func.now())
