"""
Assignment store — the only writer of sorties and their alternatives.

Sorties are never deleted; cancellation is a status transition. Every write
runs in its own transaction and SQLAlchemy failures surface as
PersistenceFailure with a caller-safe message.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from rostercore.errors import NotFound, PersistenceFailure
from rostercore.models import (
    AlternativeSolution, AlternativeStatus, AssignmentStatus,
    DisruptionEventRecord, RosterAssignment,
)
from rostercore.scheduling import status as lifecycle
from rostercore.scheduling.availability import day_bounds
from rostercore.schemas import CandidateAssignment, utcnow

logger = logging.getLogger(__name__)

# fields an accepted alternative may overwrite on the original sortie
_REPLACEABLE = ("instructor_id", "aircraft_id", "lesson_id", "airport_icao",
                "start_at", "end_at")


@dataclass
class AssignmentFilter:
    org_id: Optional[str] = None
    student_id: Optional[str] = None
    instructor_id: Optional[str] = None
    aircraft_id: Optional[str] = None
    person_id: Optional[str] = None          # instructor OR student
    airport_icao: Optional[str] = None
    statuses: Optional[Iterable[AssignmentStatus]] = None
    exclude_statuses: Optional[Iterable[AssignmentStatus]] = None
    start_from: Optional[datetime] = None    # start_at >= start_from
    start_to: Optional[datetime] = None      # start_at <= start_to
    start_before: Optional[datetime] = None  # start_at < start_before
    overlaps_start: Optional[datetime] = None
    overlaps_end: Optional[datetime] = None
    newest_first: bool = False
    limit: Optional[int] = None


def assignment_to_dict(row: RosterAssignment) -> dict:
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}


def alternative_to_dict(row: AlternativeSolution) -> dict:
    return {
        "id": row.id,
        "org_id": row.org_id,
        "original_assignment_id": row.original_assignment_id,
        "disruption_event_id": row.disruption_event_id,
        "trigger_type": row.trigger_type,
        "assignment": dict(row.alternative_assignment),
        "score_breakdown": dict(row.score_breakdown),
        "total_score": row.total_score,
        "status": row.status,
        "generated_at": row.generated_at,
        "resolved_at": row.resolved_at,
    }


def candidate_from_assignment(assignment: dict, **changes) -> CandidateAssignment:
    """Candidate describing an existing sortie, optionally with fields swapped."""
    data = {k: assignment.get(k) for k in (
        "org_id", "student_id", "instructor_id", "aircraft_id", "lesson_id",
        "airport_icao", "start_at", "end_at")}
    data["replaces_assignment_id"] = assignment["id"]
    data.update(changes)
    return CandidateAssignment(**data)


class AssignmentStore(ABC):

    @abstractmethod
    def get(self, assignment_id: str) -> Optional[dict]: ...

    @abstractmethod
    def query(self, flt: AssignmentFilter) -> list[dict]: ...

    @abstractmethod
    def list_by_instructor_and_day(self, instructor_id: str, day: date) -> list[dict]: ...

    @abstractmethod
    def create(self, candidate: CandidateAssignment, score: Optional[dict] = None) -> dict: ...

    @abstractmethod
    def save(self, assignment: dict) -> dict:
        """Persist field changes (not status) of an existing sortie."""

    @abstractmethod
    def confirm(self, assignment_id: str) -> dict: ...

    @abstractmethod
    def cancel(self, assignment_id: str) -> dict: ...

    @abstractmethod
    def complete(self, assignment_id: str) -> dict: ...

    @abstractmethod
    def record_disruption(self, event) -> str: ...

    @abstractmethod
    def mark_pending_with_alternatives(self, assignment_id: str, event_id: str,
                                       trigger_type, alternatives: list[dict]) -> list[dict]:
        """Atomically store alternatives and move the sortie to pending_confirm."""

    @abstractmethod
    def list_alternatives(self, assignment_id: str,
                          status: Optional[AlternativeStatus] = None) -> list[dict]: ...

    @abstractmethod
    def get_alternative(self, alternative_id: str) -> Optional[dict]: ...

    @abstractmethod
    def accept_alternative(self, alternative_id: str) -> dict: ...

    @abstractmethod
    def reject_alternative(self, alternative_id: str) -> dict: ...


class SqlAssignmentStore(AssignmentStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _write(self):
        try:
            with self._session_factory() as db, db.begin():
                yield db
        except SQLAlchemyError as e:
            logger.error("roster write failed: %s", e)
            raise PersistenceFailure("Could not persist roster changes") from e

    def _load(self, db, assignment_id: str) -> RosterAssignment:
        row = db.get(RosterAssignment, assignment_id)
        if row is None:
            raise NotFound(f"Assignment {assignment_id} not found")
        return row

    def _load_alternative(self, db, alternative_id: str) -> AlternativeSolution:
        row = db.get(AlternativeSolution, alternative_id)
        if row is None:
            raise NotFound(f"Alternative {alternative_id} not found")
        return row

    # ── Reads ────────────────────────────────────────────────────────────────

    def get(self, assignment_id):
        with self._session_factory() as db:
            row = db.get(RosterAssignment, assignment_id)
            return assignment_to_dict(row) if row else None

    def query(self, flt: AssignmentFilter) -> list[dict]:
        A = RosterAssignment
        with self._session_factory() as db:
            q = db.query(A)
            if flt.org_id:
                q = q.filter(A.org_id == flt.org_id)
            if flt.student_id:
                q = q.filter(A.student_id == flt.student_id)
            if flt.instructor_id:
                q = q.filter(A.instructor_id == flt.instructor_id)
            if flt.aircraft_id:
                q = q.filter(A.aircraft_id == flt.aircraft_id)
            if flt.person_id:
                q = q.filter(or_(A.instructor_id == flt.person_id,
                                 A.student_id == flt.person_id))
            if flt.airport_icao:
                q = q.filter(A.airport_icao == flt.airport_icao.upper())
            if flt.statuses is not None:
                q = q.filter(A.status.in_(list(flt.statuses)))
            if flt.exclude_statuses:
                q = q.filter(A.status.not_in(list(flt.exclude_statuses)))
            if flt.start_from:
                q = q.filter(A.start_at >= flt.start_from)
            if flt.start_to:
                q = q.filter(A.start_at <= flt.start_to)
            if flt.start_before:
                q = q.filter(A.start_at < flt.start_before)
            if flt.overlaps_start and flt.overlaps_end:
                q = q.filter(A.start_at < flt.overlaps_end, A.end_at > flt.overlaps_start)
            order = A.start_at.desc() if flt.newest_first else A.start_at.asc()
            q = q.order_by(order, A.id)
            if flt.limit:
                q = q.limit(flt.limit)
            return [assignment_to_dict(r) for r in q.all()]

    def list_by_instructor_and_day(self, instructor_id, day):
        start, end = day_bounds(day)
        return self.query(AssignmentFilter(
            instructor_id=instructor_id,
            start_from=start,
            start_before=end,
            exclude_statuses=[AssignmentStatus.CANCELLED],
        ))

    # ── Writes ───────────────────────────────────────────────────────────────

    def create(self, candidate, score=None):
        with self._write() as db:
            row = RosterAssignment(
                id=str(uuid.uuid4()),
                org_id=candidate.org_id,
                student_id=candidate.student_id,
                instructor_id=candidate.instructor_id,
                aircraft_id=candidate.aircraft_id,
                lesson_id=candidate.lesson_id,
                airport_icao=candidate.airport_icao,
                start_at=candidate.start_at,
                end_at=candidate.end_at,
                status=AssignmentStatus.PROPOSED,
                total_score=score["total_score"] if score else None,
                score_breakdown=score,
            )
            db.add(row)
            db.flush()
            return assignment_to_dict(row)

    def save(self, assignment):
        with self._write() as db:
            row = self._load(db, assignment["id"])
            for field in _REPLACEABLE + ("student_id", "total_score", "score_breakdown"):
                if field in assignment:
                    setattr(row, field, assignment[field])
            row.updated_at = utcnow()
            return assignment_to_dict(row)

    def _transition(self, assignment_id, move):
        with self._write() as db:
            row = self._load(db, assignment_id)
            previous = row.status
            row.status = move(row.status)
            row.updated_at = utcnow()
            logger.info("assignment %s: %s → %s", assignment_id,
                        previous.value, row.status.value)
            return assignment_to_dict(row)

    def confirm(self, assignment_id):
        return self._transition(assignment_id, lifecycle.confirm)

    def cancel(self, assignment_id):
        return self._transition(assignment_id, lifecycle.cancel)

    def complete(self, assignment_id):
        return self._transition(assignment_id, lifecycle.complete)

    def record_disruption(self, event) -> str:
        with self._write() as db:
            db.add(DisruptionEventRecord(
                id=event.correlation_id,
                org_id=event.org_id,
                trigger_type=event.trigger_type,
                affected_entity_id=event.affected_entity_id,
                airport_icao=event.airport_icao,
                window_start=event.window_start,
                window_end=event.window_end,
                payload=event.payload,
            ))
        return event.correlation_id

    def mark_pending_with_alternatives(self, assignment_id, event_id,
                                       trigger_type, alternatives):
        """
        alternatives: [{"assignment": candidate payload, "score_breakdown": {...}}]
        Both the alternative rows and the status change commit together, so a
        reader never sees pending_confirm without its alternative list.
        """
        with self._write() as db:
            row = self._load(db, assignment_id)
            row.status = lifecycle.mark_pending_confirm(row.status)
            row.updated_at = utcnow()
            created = []
            for alt in alternatives:
                alt_row = AlternativeSolution(
                    id=str(uuid.uuid4()),
                    org_id=row.org_id,
                    original_assignment_id=row.id,
                    disruption_event_id=event_id,
                    trigger_type=trigger_type,
                    alternative_assignment=alt["assignment"],
                    score_breakdown=alt["score_breakdown"],
                    total_score=alt["score_breakdown"]["total_score"],
                    status=AlternativeStatus.PENDING,
                    generated_at=utcnow(),
                )
                db.add(alt_row)
                created.append(alt_row)
            db.flush()
            return [alternative_to_dict(a) for a in created]

    def list_alternatives(self, assignment_id, status=None):
        with self._session_factory() as db:
            q = db.query(AlternativeSolution).filter(
                AlternativeSolution.original_assignment_id == assignment_id)
            if status is not None:
                q = q.filter(AlternativeSolution.status == status)
            rows = q.order_by(AlternativeSolution.total_score.desc(),
                              AlternativeSolution.generated_at.desc()).all()
            return [alternative_to_dict(r) for r in rows]

    def get_alternative(self, alternative_id):
        with self._session_factory() as db:
            row = db.get(AlternativeSolution, alternative_id)
            return alternative_to_dict(row) if row else None

    def accept_alternative(self, alternative_id):
        """
        Apply the alternative to its original sortie, confirm it, and reject
        every sibling still pending. Returns the updated sortie.
        """
        with self._write() as db:
            alt = self._load_alternative(db, alternative_id)
            now = utcnow()
            alt.status = lifecycle.resolve_alternative(alt.status, accepted=True)
            alt.resolved_at = now

            row = self._load(db, alt.original_assignment_id)
            row.status = lifecycle.confirm(row.status, via_alternative=True)
            chosen = alt.alternative_assignment
            for field in _REPLACEABLE:
                value = chosen.get(field)
                if field in ("start_at", "end_at"):
                    value = datetime.fromisoformat(value)
                setattr(row, field, value)
            row.total_score = alt.total_score
            row.score_breakdown = alt.score_breakdown
            row.updated_at = now

            siblings = (
                db.query(AlternativeSolution)
                .filter(AlternativeSolution.original_assignment_id == row.id,
                        AlternativeSolution.id != alt.id,
                        AlternativeSolution.status == AlternativeStatus.PENDING)
                .all()
            )
            for sib in siblings:
                sib.status = AlternativeStatus.REJECTED
                sib.resolved_at = now
            logger.info("alternative %s accepted for %s; %d siblings rejected",
                        alt.id, row.id, len(siblings))
            return assignment_to_dict(row)

    def reject_alternative(self, alternative_id):
        with self._write() as db:
            alt = self._load_alternative(db, alternative_id)
            alt.status = lifecycle.resolve_alternative(alt.status, accepted=False)
            alt.resolved_at = utcnow()
            return alternative_to_dict(alt)
