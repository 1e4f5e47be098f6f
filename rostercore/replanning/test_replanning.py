"""
Disruption → affected sorties → ranked alternatives → accept / reject.

  pytest rostercore/replanning
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from rostercore.errors import (
    DataUnavailable, InputInvalid, NotFound, PersistenceFailure, Unauthorized,
)
from rostercore.models import (
    Aircraft, AlternativeStatus, AssignmentStatus, BlockType, EventLog, Lesson, Notification,
)


def _events(session_factory, type):
    with session_factory() as db:
        return [dict(r.event_metadata) for r in db.query(EventLog).filter_by(type=type)]


def _notes(session_factory, user_id):
    with session_factory() as db:
        rows = db.query(Notification).filter_by(user_id=user_id).order_by(Notification.id)
        return [(r.title, r.message) for r in rows]


def _aircraft_event(aircraft_id="AC1", **extra):
    return {"trigger_type": "aircraft", "affected_entity_id": aircraft_id,
            "payload": {"reason": "unscheduled maintenance"}, **extra}


# ── Aircraft ──────────────────────────────────────────────────────────────────

def test_aircraft_disruption_only_touches_open_future_sorties(service, world, now):
    hit = world.assignment(now + timedelta(days=1))
    pending = world.assignment(now + timedelta(days=2), status=AssignmentStatus.PENDING_CONFIRM)
    past = world.assignment(now - timedelta(days=1))
    proposed = world.assignment(now + timedelta(days=3), status=AssignmentStatus.PROPOSED)
    cancelled = world.assignment(now + timedelta(days=4), status=AssignmentStatus.CANCELLED)
    other = world.assignment(now + timedelta(days=1), aircraft_id="AC2", student_id="S3")

    result = service.handle_disruption("org-1", _aircraft_event())

    assert result["affected_count"] == 2
    assert result["failed_assignment_ids"] == []
    get = service.assignments.get
    assert get(hit)["status"] == AssignmentStatus.PENDING_CONFIRM
    assert get(pending)["status"] == AssignmentStatus.PENDING_CONFIRM
    assert get(past)["status"] == AssignmentStatus.CONFIRMED
    assert get(proposed)["status"] == AssignmentStatus.PROPOSED
    assert get(cancelled)["status"] == AssignmentStatus.CANCELLED
    assert get(other)["status"] == AssignmentStatus.CONFIRMED


def test_alternatives_are_feasible_and_ranked(service, world, now):
    world.add(Aircraft(id="AC4", org_id="org-1", registration="VT-ABF", type="C172",
                       capabilities=["IFR"], total_hours=10, next_inspection_hours=300))
    a = world.assignment(now + timedelta(days=1))

    result = service.handle_disruption("org-1", _aircraft_event())
    alternatives = service.list_alternatives("org-1", a)

    # AC3 has no IFR capability, so only AC2 and AC4 survive
    assert result["alternatives_generated"] == 2
    assert [x["assignment"]["aircraft_id"] for x in alternatives] == ["AC2", "AC4"]
    scores = [x["total_score"] for x in alternatives]
    assert scores == sorted(scores, reverse=True)
    assert all(x["disruption_event_id"] == result["correlation_id"] for x in alternatives)
    assert all(x["status"] == AlternativeStatus.PENDING for x in alternatives)


def test_no_alternative_still_marks_pending_and_notifies(service, world, session_factory, now):
    world.add(Lesson(id="L9", org_id="org-1", name="Night circuits",
                     requirements={"aircraft_req": ["NIGHT"]}))
    a = world.assignment(now + timedelta(days=1), lesson_id="L9")

    result = service.handle_disruption("org-1", _aircraft_event())

    assert result["alternatives_generated"] == 0
    assert service.assignments.get(a)["status"] == AssignmentStatus.PENDING_CONFIRM
    assert service.list_alternatives("org-1", a) == []
    for user in ("S1", "I1"):
        title, message = _notes(session_factory, user)[-1]
        assert title == "Flight Schedule Update Required"
        assert "No automatic alternative was found" in message


def test_one_audit_event_per_disruption(service, world, session_factory, now):
    a = world.assignment(now + timedelta(days=1))
    b = world.assignment(now + timedelta(days=2))

    result = service.handle_disruption("org-1", _aircraft_event())

    (audit,) = _events(session_factory, "schedule_disruption_detected")
    assert audit["correlation_id"] == result["correlation_id"]
    assert audit["affected_assignments"] == [a, b]
    assert audit["trigger_type"] == "aircraft"
    assert audit["trigger_details"] == {"reason": "unscheduled maintenance"}


def test_one_failing_sortie_does_not_stop_the_rest(service, world, monkeypatch, now):
    a = world.assignment(now + timedelta(days=1))
    b = world.assignment(now + timedelta(days=2))
    store = service.assignments
    original = store.mark_pending_with_alternatives

    def flaky(assignment_id, *args):
        if assignment_id == a:
            raise PersistenceFailure("Could not persist roster changes")
        return original(assignment_id, *args)

    monkeypatch.setattr(store, "mark_pending_with_alternatives", flaky)
    result = service.handle_disruption("org-1", _aircraft_event())

    assert result["failed_assignment_ids"] == [a]
    assert result["affected_count"] == 2
    assert store.get(a)["status"] == AssignmentStatus.CONFIRMED
    assert store.get(b)["status"] == AssignmentStatus.PENDING_CONFIRM


def test_database_error_on_one_sortie_does_not_stop_the_rest(
        service, world, session_factory, monkeypatch, now):
    a = world.assignment(now + timedelta(days=1))
    b = world.assignment(now + timedelta(days=2))
    catalog = service.catalog
    original = catalog.list_available_aircraft
    calls = []

    def drops_first_connection(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise OperationalError("SELECT aircraft", {}, Exception("connection reset"))
        return original(*args, **kwargs)

    monkeypatch.setattr(catalog, "list_available_aircraft", drops_first_connection)
    result = service.handle_disruption("org-1", _aircraft_event())

    assert result["failed_assignment_ids"] == [a]
    assert service.assignments.get(a)["status"] == AssignmentStatus.CONFIRMED
    assert service.assignments.get(b)["status"] == AssignmentStatus.PENDING_CONFIRM
    (audit,) = _events(session_factory, "schedule_disruption_detected")
    assert audit["failed_assignment_ids"] == [a]


def test_unreadable_candidate_is_skipped(service, world, monkeypatch, now):
    world.add(Aircraft(id="AC4", org_id="org-1", registration="VT-ABF", type="C172",
                       capabilities=["IFR"], total_hours=10, next_inspection_hours=300))
    a = world.assignment(now + timedelta(days=1))
    checker = service.checker
    original = checker.check

    def ac4_lookup_down(candidate):
        if candidate.aircraft_id == "AC4":
            raise DataUnavailable("No constraint data could be loaded for this assignment")
        return original(candidate)

    monkeypatch.setattr(checker, "check", ac4_lookup_down)
    result = service.handle_disruption("org-1", _aircraft_event())

    assert result["failed_assignment_ids"] == []
    assert result["alternatives_generated"] == 1
    (alt,) = service.list_alternatives("org-1", a)
    assert alt["assignment"]["aircraft_id"] == "AC2"
    assert service.assignments.get(a)["status"] == AssignmentStatus.PENDING_CONFIRM


# ── Weather / availability ────────────────────────────────────────────────────

def test_weather_disruption_shifts_time(service, world, now):
    a = world.assignment(now + timedelta(hours=3))
    world.assignment(now + timedelta(days=3))                       # beyond the horizon
    world.assignment(now + timedelta(hours=5), airport_icao="VOBL", student_id="S3")

    result = service.handle_disruption("org-1", {
        "trigger_type": "weather", "airport_icao": "vobg",
        "payload": {"ceiling_ft": 600},
    })

    assert result["affected_count"] == 1
    assert result["alternatives_generated"] == 3
    starts = sorted(x["assignment"]["start_at"] for x in service.list_alternatives("org-1", a))
    expected = [now + timedelta(hours=3 + h) for h in (2, 4, 24)]
    assert starts == [t.isoformat() for t in expected]


def test_weather_with_no_feasible_shift_still_marks_pending(service, world, now):
    a = world.assignment(now + timedelta(hours=3))
    # I1 is out for every shifted slot (+2h, +4h, +24h)
    world.block("I1", now + timedelta(hours=5), now + timedelta(hours=30),
                type=BlockType.UNAVAILABLE)

    result = service.handle_disruption("org-1", {
        "trigger_type": "weather", "airport_icao": "VOBG",
        "payload": {"ceiling_ft": 600},
    })

    assert result["affected_count"] == 1
    assert result["alternatives_generated"] == 0
    assert service.assignments.get(a)["status"] == AssignmentStatus.PENDING_CONFIRM
    assert service.list_alternatives("org-1", a) == []


def test_instructor_unavailable_swaps_instructor(service, world, now):
    a = world.assignment(now + timedelta(days=1, hours=1))

    result = service.handle_disruption("org-1", {
        "trigger_type": "availability", "affected_entity_id": "I1",
        "window_start": now + timedelta(days=1), "window_end": now + timedelta(days=1, hours=4),
    })

    # I3 is not qualified for the lesson; IX belongs to another org
    assert result["alternatives_generated"] == 1
    (alt,) = service.list_alternatives("org-1", a)
    assert alt["assignment"]["instructor_id"] == "I2"


def test_student_unavailable_moves_past_window(service, world, now):
    a = world.assignment(now + timedelta(days=1, hours=1))
    window_end = now + timedelta(days=1, hours=4)

    result = service.handle_disruption("org-1", {
        "trigger_type": "availability", "affected_entity_id": "S1",
        "window_start": now + timedelta(days=1), "window_end": window_end,
    })

    # the +2h shift would still overlap the window
    assert result["alternatives_generated"] == 2
    for alt in service.list_alternatives("org-1", a):
        assert alt["assignment"]["start_at"] >= window_end.isoformat()


@pytest.mark.parametrize("event", [
    {"trigger_type": "weather"},
    {"trigger_type": "availability", "affected_entity_id": "I1"},
    {"trigger_type": "volcano", "airport_icao": "VOBG"},
])
def test_malformed_event(service, event):
    with pytest.raises(InputInvalid):
        service.handle_disruption("org-1", event)


def test_event_for_other_org_is_refused(service):
    with pytest.raises(Unauthorized):
        service.handle_disruption("org-1", _aircraft_event(org_id="org-2"))


# ── Accept / reject ───────────────────────────────────────────────────────────

def test_accept_confirms_and_rejects_siblings(service, world, session_factory, now):
    world.add(Aircraft(id="AC4", org_id="org-1", registration="VT-ABF", type="C172",
                       capabilities=["IFR"], total_hours=10, next_inspection_hours=300))
    a = world.assignment(now + timedelta(days=1))
    service.handle_disruption("org-1", _aircraft_event())
    best, runner_up = service.list_alternatives("org-1", a)

    updated = service.accept_alternative("org-1", best["id"])

    assert updated["status"] == AssignmentStatus.CONFIRMED
    assert updated["aircraft_id"] == "AC2"
    assert updated["total_score"] == best["total_score"]
    statuses = {x["id"]: x["status"] for x in service.list_alternatives("org-1", a)}
    assert statuses[runner_up["id"]] == AlternativeStatus.REJECTED
    assert [x["id"] for x in service.list_alternatives(
        "org-1", a, AlternativeStatus.ACCEPTED)] == [best["id"]]
    assert _notes(session_factory, "S1")[-1][0] == "Flight Rescheduled"
    (audit,) = _events(session_factory, "alternative_accepted")
    assert audit["assignment_id"] == a


def test_reject_keeps_sortie_pending(service, world, session_factory, now):
    a = world.assignment(now + timedelta(days=1))
    service.handle_disruption("org-1", _aircraft_event())
    (alt,) = service.list_alternatives("org-1", a)

    assert service.reject_alternative("org-1", alt["id"])["status"] == AlternativeStatus.REJECTED
    assert service.get_assignment("org-1", a)["status"] == AssignmentStatus.PENDING_CONFIRM
    assert len(_events(session_factory, "alternative_rejected")) == 1


def test_alternatives_are_org_scoped(service, world, now):
    a = world.assignment(now + timedelta(days=1))
    service.handle_disruption("org-1", _aircraft_event())
    (alt,) = service.list_alternatives("org-1", a)

    with pytest.raises(Unauthorized):
        service.list_alternatives("org-2", a)
    with pytest.raises(Unauthorized):
        service.accept_alternative("org-2", alt["id"])
    with pytest.raises(NotFound):
        service.reject_alternative("org-1", "missing")
