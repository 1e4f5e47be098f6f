"""
Reference data the rules read: lessons, fleet, people, availability, airports.
Everything comes back as plain dicts so rules never touch ORM objects.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from rostercore.errors import DataUnavailable
from rostercore.models import (
    Aircraft, AircraftStatus, Airport, AvailabilityBlock, Instructor, Lesson, Student
)

logger = logging.getLogger(__name__)


def _to_dict(obj) -> Optional[dict]:
    """Convert SQLAlchemy model to dict."""
    if obj is None:
        return None
    return {c.name: getattr(obj, c.name) for c in obj.__table__.columns}


class CatalogStore(ABC):

    @abstractmethod
    def get_lesson(self, lesson_id: str) -> Optional[dict]: ...

    @abstractmethod
    def get_aircraft(self, aircraft_id: str) -> Optional[dict]: ...

    @abstractmethod
    def get_instructor(self, instructor_id: str) -> Optional[dict]: ...

    @abstractmethod
    def get_student(self, student_id: str) -> Optional[dict]: ...

    @abstractmethod
    def get_airport(self, icao: str) -> Optional[dict]: ...

    @abstractmethod
    def list_availability_blocks(self, user_id: str,
                                 start: datetime, end: datetime) -> list[dict]:
        """Blocks of the user that overlap [start, end)."""

    @abstractmethod
    def list_instructors(self, org_id: str, exclude_id: Optional[str] = None,
                         limit: int = 5) -> list[dict]: ...

    @abstractmethod
    def list_available_aircraft(self, org_id: str, exclude_id: Optional[str] = None,
                                limit: int = 5) -> list[dict]: ...


class SqlCatalogStore(CatalogStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _read(self, what: str):
        try:
            with self._session_factory() as db:
                yield db
        except SQLAlchemyError as e:
            logger.warning("catalog read failed (%s): %s", what, e)
            raise DataUnavailable(f"Could not load {what}") from e

    def _get(self, model, key):
        with self._read(model.__name__.lower()) as db:
            return _to_dict(db.get(model, key))

    def get_lesson(self, lesson_id):
        return self._get(Lesson, lesson_id)

    def get_aircraft(self, aircraft_id):
        return self._get(Aircraft, aircraft_id)

    def get_instructor(self, instructor_id):
        return self._get(Instructor, instructor_id)

    def get_student(self, student_id):
        return self._get(Student, student_id)

    def get_airport(self, icao):
        return self._get(Airport, icao.upper())

    def list_availability_blocks(self, user_id, start, end):
        with self._read("availability blocks") as db:
            rows = (
                db.query(AvailabilityBlock)
                .filter(AvailabilityBlock.user_id == user_id,
                        AvailabilityBlock.start_at < end,
                        AvailabilityBlock.end_at > start)
                .order_by(AvailabilityBlock.start_at)
                .all()
            )
            return [_to_dict(r) for r in rows]

    def list_instructors(self, org_id, exclude_id=None, limit=5):
        with self._read("instructors") as db:
            q = db.query(Instructor).filter(Instructor.org_id == org_id)
            if exclude_id:
                q = q.filter(Instructor.id != exclude_id)
            return [_to_dict(r) for r in q.order_by(Instructor.id).limit(limit).all()]

    def list_available_aircraft(self, org_id, exclude_id=None, limit=5):
        with self._read("aircraft") as db:
            q = db.query(Aircraft).filter(Aircraft.org_id == org_id,
                                          Aircraft.status == AircraftStatus.AVAILABLE)
            if exclude_id:
                q = q.filter(Aircraft.id != exclude_id)
            return [_to_dict(r) for r in q.order_by(Aircraft.id).limit(limit).all()]
