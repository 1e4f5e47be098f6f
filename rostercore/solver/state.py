"""
Tracks what's already booked during a solver run.
Acts as an in-memory double-booking check before anything is committed to DB.
"""
from dataclasses import dataclass, field
from datetime import date, datetime

from rostercore.scheduling.availability import overlaps


@dataclass
class BookingState:
    booked: dict = field(default_factory=dict)          # entity_id → [(start, end)]
    daily_sorties: dict = field(default_factory=dict)   # (instructor_id, date) → count

    def is_free(self, entity_id: str, start: datetime, end: datetime) -> bool:
        return not any(overlaps(s, e, start, end) for s, e in self.booked.get(entity_id, []))

    def book(self, entity_id: str, start: datetime, end: datetime):
        self.booked.setdefault(entity_id, []).append((start, end))

    def release(self, entity_id: str, start: datetime, end: datetime):
        self.booked.get(entity_id, []).remove((start, end))

    def sorties_on(self, instructor_id: str, d: date) -> int:
        return self.daily_sorties.get((instructor_id, d), 0)

    def log_sortie(self, instructor_id: str, d: date, delta: int = 1):
        key = (instructor_id, d)
        self.daily_sorties[key] = self.daily_sorties.get(key, 0) + delta

    def book_sortie(self, candidate):
        for entity in (candidate.student_id, candidate.instructor_id, candidate.aircraft_id):
            if entity:
                self.book(entity, candidate.start_at, candidate.end_at)
        if candidate.instructor_id:
            self.log_sortie(candidate.instructor_id, candidate.start_at.date())

    def release_sortie(self, candidate):
        for entity in (candidate.student_id, candidate.instructor_id, candidate.aircraft_id):
            if entity:
                self.release(entity, candidate.start_at, candidate.end_at)
        if candidate.instructor_id:
            self.log_sortie(candidate.instructor_id, candidate.start_at.date(), -1)

    def fits(self, candidate) -> bool:
        return all(self.is_free(entity, candidate.start_at, candidate.end_at)
                   for entity in (candidate.student_id, candidate.instructor_id,
                                  candidate.aircraft_id) if entity)
