"""Pytest fixtures: a seeded, file-backed SQLite roster per test."""
import os

# must be set before rostercore.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOOKUP_TIMEOUT_SECONDS", "10")

from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import NullPool

from rostercore.database import init_db, make_session_factory
from rostercore.models import (
    Aircraft, Airport, AssignmentStatus, AvailabilityBlock, BlockType,
    ConstraintPolicy, EnvironmentSnapshot, Instructor, Lesson, RosterAssignment, Student,
)
from rostercore.service import RosterService

ORG = "org-1"
OTHER_ORG = "org-2"

# Monday 06:00 UTC; every fixture sortie is relative to this
NOW = datetime(2026, 7, 6, 6, 0)


@pytest.fixture
def session_factory(tmp_path):
    factory = make_session_factory(f"sqlite:///{tmp_path / 'roster.db'}", poolclass=NullPool)
    init_db(factory)
    return factory


class World:
    """Helpers for seeding rows straight into the database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._seq = 0

    def add(self, *rows):
        with self.session_factory() as db, db.begin():
            db.add_all(rows)

    def assignment(self, start: datetime, hours: float = 2, **fields) -> str:
        self._seq += 1
        data = dict(
            id=f"A{self._seq:03d}",
            org_id=ORG,
            student_id="S1",
            instructor_id="I1",
            aircraft_id="AC1",
            lesson_id="L1",
            airport_icao="VOBG",
            start_at=start,
            end_at=start + timedelta(hours=hours),
            status=AssignmentStatus.CONFIRMED,
        )
        data.update(fields)
        self.add(RosterAssignment(**data))
        return data["id"]

    def policy(self, name: str, rules: dict, org_id: str = ORG):
        self.add(ConstraintPolicy(org_id=org_id, policy_name=name, rules=rules))

    def snapshot(self, weather=None, notams=None, traffic=None, org_id: str = ORG):
        self.add(EnvironmentSnapshot(org_id=org_id, captured_at=NOW,
                                     weather=weather or {}, notams=notams or {},
                                     traffic=traffic or {}))

    def block(self, user_id: str, start: datetime, end: datetime,
              type: BlockType = BlockType.AVAILABLE):
        self.add(AvailabilityBlock(org_id=ORG, user_id=user_id, type=type,
                                   start_at=start, end_at=end))


@pytest.fixture
def world(session_factory):
    w = World(session_factory)
    w.add(
        Lesson(id="L1", org_id=ORG, name="Navigation 2",
               requirements={"instructor_req": ["CFI"], "aircraft_req": ["IFR"],
                             "prerequisites": ["M1"]}),
        Lesson(id="L0", org_id=ORG, name="Circuits", requirements={}),
        Instructor(id="I1", org_id=ORG, name="Asha Rao", qualifications=["CFI"],
                   base_airport="VOBG"),
        Instructor(id="I2", org_id=ORG, name="Dev Menon", qualifications=["CFI", "CFII"],
                   base_airport="VOBG"),
        Instructor(id="I3", org_id=ORG, name="Kiran Shah", qualifications=[],
                   base_airport="VOBG"),
        Instructor(id="IX", org_id=OTHER_ORG, name="Outside Instructor",
                   qualifications=["CFI"]),
        Student(id="S1", org_id=ORG, name="Student One", completed_milestones=["M1"]),
        Student(id="S2", org_id=ORG, name="Student Two", completed_milestones=[]),
        Student(id="S3", org_id=ORG, name="Student Three", completed_milestones=["M1"]),
        Aircraft(id="AC1", org_id=ORG, registration="VT-ABC", type="C172",
                 capabilities=["IFR", "NIGHT"], total_hours=1000, next_inspection_hours=1080,
                 performance={"takeoff_distance_ft": 1700, "landing_distance_ft": 1300,
                              "max_density_altitude_ft": 8000}),
        Aircraft(id="AC2", org_id=ORG, registration="VT-ABD", type="C172",
                 capabilities=["IFR"], total_hours=500, next_inspection_hours=650,
                 performance={"takeoff_distance_ft": 1700, "landing_distance_ft": 1300}),
        Aircraft(id="AC3", org_id=ORG, registration="VT-ABE", type="C152",
                 capabilities=["VFR"], total_hours=200, next_inspection_hours=220),
        Airport(icao="VOBG", name="Bangalore HAL", latitude=12.9500, longitude=77.6682),
        Airport(icao="VOBL", name="Bengaluru Intl", latitude=13.1986, longitude=77.7066),
    )
    # instructors are bookable all week
    for instructor in ("I1", "I2", "I3"):
        w.block(instructor, NOW - timedelta(days=1), NOW + timedelta(days=7))
    return w


@pytest.fixture
def service(session_factory, world):
    return RosterService(session_factory, clock=lambda: NOW)


def candidate(**overrides) -> dict:
    data = {
        "org_id": ORG,
        "student_id": "S1",
        "instructor_id": "I1",
        "aircraft_id": "AC1",
        "lesson_id": "L1",
        "airport_icao": "VOBG",
        "start_at": NOW + timedelta(hours=4),
        "end_at": NOW + timedelta(hours=6),
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_candidate():
    return candidate


@pytest.fixture
def now():
    return NOW
