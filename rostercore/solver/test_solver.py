"""
Roster solver over the seeded roster.

  pytest rostercore/solver
"""
from datetime import timedelta

import pytest

from rostercore.errors import InputInvalid
from rostercore.models import AssignmentStatus, EventLog
from rostercore.scheduling.availability import overlaps
from rostercore.schemas import CandidateAssignment
from rostercore.solver.state import BookingState


def _slot(now, hours_from_now, length=2):
    start = now + timedelta(hours=hours_from_now)
    return {"start_at": start, "end_at": start + timedelta(hours=length)}


def _solve(service, **request):
    request.setdefault("aircraft_ids", ["AC1", "AC2"])
    request.setdefault("airport_icao", "VOBG")
    return service.solve_roster("org-1", **request)


def test_batch_without_double_booking(service, now):
    result = _solve(service, student_ids=["S1", "S2", "S3"], instructor_ids=["I1", "I2"],
                    slots=[_slot(now, 4)],
                    lesson_by_student={"S1": "L1", "S2": "L1", "S3": "L1"})

    # S2 lacks the lesson prerequisite
    assert result["unassigned_students"] == ["S2"]
    assert result["assigned_count"] == 2
    made = result["assignments"]
    assert {a["student_id"] for a in made} == {"S1", "S3"}
    assert len({a["instructor_id"] for a in made}) == 2
    assert len({a["aircraft_id"] for a in made}) == 2
    assert all(a["status"] == AssignmentStatus.PROPOSED for a in made)
    assert 0.0 < result["average_score"] <= 1.0


def test_placements_are_persisted(service, now):
    result = _solve(service, student_ids=["S1"], instructor_ids=["I1"],
                    slots=[_slot(now, 4)], lesson_by_student={"S1": "L1"})
    (made,) = result["assignments"]
    stored = service.get_assignment("org-1", made["id"])
    assert stored["status"] == AssignmentStatus.PROPOSED
    assert stored["score_breakdown"]["total_score"] == made["total_score"]


def test_people_are_not_double_booked_across_slots(service, now):
    slots = [_slot(now, 4), _slot(now, 5), _slot(now, 8)]
    result = _solve(service, student_ids=["S1", "S3"], instructor_ids=["I1"], slots=slots)

    a, b = result["assignments"]
    assert not overlaps(a["start_at"], a["end_at"], b["start_at"], b["end_at"])


def test_batch_counts_toward_duty_limit(service, world, now):
    world.policy("SchoolDuty", {"max_sorties_per_day": 1})
    result = _solve(service, student_ids=["S1", "S3"], instructor_ids=["I1"],
                    slots=[_slot(now, 4), _slot(now, 8)])

    assert result["assigned_count"] == 1
    assert result["unassigned_students"] == ["S3"]


def test_unqualified_instructors_leave_students_unassigned(service, now):
    result = _solve(service, student_ids=["S1"], instructor_ids=["I3"],
                    slots=[_slot(now, 4)], lesson_by_student={"S1": "L1"})
    assert result["assignments"] == []
    assert result["average_score"] == 0.0


def test_solve_is_audited(service, session_factory, now):
    result = _solve(service, student_ids=["S1"], instructor_ids=["I1"], slots=[_slot(now, 4)])
    with session_factory() as db:
        (row,) = db.query(EventLog).filter_by(type="roster_solved").all()
        assert row.event_metadata["assignment_ids"] == [result["assignments"][0]["id"]]


@pytest.mark.parametrize("request_", [
    {"student_ids": [], "instructor_ids": ["I1"], "slots": [{"start_at": "2026-07-06T10:00"}]},
    {"student_ids": ["S1"], "instructor_ids": [], "slots": []},
    {"student_ids": ["S1"], "instructor_ids": ["I1"], "slots": []},
    {"student_ids": ["S1"], "instructor_ids": ["I1"],
     "slots": [{"start_at": "2026-07-06T10:00", "end_at": "2026-07-06T09:00"}]},
])
def test_bad_request(service, request_):
    with pytest.raises(InputInvalid):
        _solve(service, **request_)


# ── Booking state ─────────────────────────────────────────────────────────────

def test_booking_state_release(now):
    state = BookingState()
    c = CandidateAssignment(org_id="org-1", student_id="S1", instructor_id="I1",
                            aircraft_id="AC1", airport_icao="VOBG",
                            start_at=now, end_at=now + timedelta(hours=2))
    state.book_sortie(c)
    assert not state.fits(c.model_copy(update={"student_id": "S2", "aircraft_id": "AC2"}))
    assert state.sorties_on("I1", now.date()) == 1

    state.release_sortie(c)
    assert state.fits(c)
    assert state.sorties_on("I1", now.date()) == 0
