"""
Affected-sortie lookup and candidate generation, one strategy per trigger.

  weather / notam  → same crew and aircraft, later slot (+2h, +4h, +24h)
  availability     → another instructor, or a later slot when the student is out
  aircraft         → another available aircraft
"""
from datetime import datetime, timedelta

from rostercore.config import settings
from rostercore.models import TriggerType
from rostercore.scheduling.availability import overlaps
from rostercore.scheduling.status import DISRUPTABLE
from rostercore.schemas import CandidateAssignment, DisruptionEvent
from rostercore.stores.assignments import (
    AssignmentFilter, AssignmentStore, candidate_from_assignment,
)
from rostercore.stores.catalog import CatalogStore


def affected_filter(event: DisruptionEvent, now: datetime) -> AssignmentFilter:
    flt = AssignmentFilter(org_id=event.org_id, statuses=DISRUPTABLE)
    if event.trigger_type in (TriggerType.WEATHER, TriggerType.NOTAM):
        flt.airport_icao = event.airport_icao
        flt.start_from = now
        flt.start_to = now + timedelta(hours=settings.replan_horizon_hours)
    elif event.trigger_type == TriggerType.AVAILABILITY:
        flt.person_id = event.affected_entity_id
        flt.overlaps_start = event.window_start
        flt.overlaps_end = event.window_end
    elif event.trigger_type == TriggerType.AIRCRAFT:
        flt.aircraft_id = event.affected_entity_id
        flt.start_from = now
    return flt


def find_affected(store: AssignmentStore, event: DisruptionEvent, now: datetime) -> list[dict]:
    return store.query(affected_filter(event, now))


def time_shifts(assignment: dict, hours=None) -> list[CandidateAssignment]:
    hours = settings.time_shift_hours if hours is None else hours
    duration = assignment["end_at"] - assignment["start_at"]
    out = []
    for h in hours:
        start = assignment["start_at"] + timedelta(hours=h)
        out.append(candidate_from_assignment(assignment, start_at=start, end_at=start + duration))
    return out


def instructor_swaps(assignment: dict, catalog: CatalogStore) -> list[CandidateAssignment]:
    pool = catalog.list_instructors(assignment["org_id"],
                                    exclude_id=assignment.get("instructor_id"),
                                    limit=settings.swap_pool_size)
    return [candidate_from_assignment(assignment, instructor_id=i["id"]) for i in pool]


def aircraft_swaps(assignment: dict, catalog: CatalogStore) -> list[CandidateAssignment]:
    pool = catalog.list_available_aircraft(assignment["org_id"],
                                           exclude_id=assignment.get("aircraft_id"),
                                           limit=settings.swap_pool_size)
    return [candidate_from_assignment(assignment, aircraft_id=a["id"]) for a in pool]


def generate_candidates(assignment: dict, event: DisruptionEvent,
                        catalog: CatalogStore) -> list[CandidateAssignment]:
    trigger = event.trigger_type

    if trigger in (TriggerType.WEATHER, TriggerType.NOTAM):
        return time_shifts(assignment)

    if trigger == TriggerType.AVAILABILITY:
        if event.affected_entity_id == assignment.get("instructor_id"):
            return instructor_swaps(assignment, catalog)
        # the student is out: move the sortie past the unavailable window
        return [c for c in time_shifts(assignment)
                if not overlaps(c.start_at, c.end_at, event.window_start, event.window_end)]

    if trigger == TriggerType.AIRCRAFT:
        return aircraft_swaps(assignment, catalog)

    return []
