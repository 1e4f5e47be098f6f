"""
Roster solver — proposes sorties for a batch of students.

Strategy (greedy, then local search):
  For each student (in the order given):
    1. Try every (slot, instructor, aircraft) combination still free in this batch
    2. Keep the feasible one with the best total score
    3. Book it so later students can't double-book the same people or aircraft
  Then swap instructors between pairs of sorties, keeping a swap only when
  both sorties stay feasible and the combined score goes up.
  Everything that survives is stored as a `proposed` sortie.
"""
import logging
from dataclasses import dataclass
from itertools import combinations, product
from typing import Optional

from rostercore.errors import DataUnavailable, InputInvalid
from rostercore.feasibility.checker import FeasibilityChecker
from rostercore.feasibility.report import DUTY_RULES
from rostercore.schemas import CandidateAssignment, SlotIn, parse
from rostercore.scoring.engine import ScoreBreakdown, ScoringEngine
from rostercore.solver.state import BookingState
from rostercore.stores.assignments import AssignmentStore

logger = logging.getLogger(__name__)


@dataclass
class Placement:
    candidate: CandidateAssignment
    score: ScoreBreakdown


class RosterSolver:

    def __init__(self, checker: FeasibilityChecker, scorer: ScoringEngine,
                 assignments: AssignmentStore):
        self.checker = checker
        self.scorer = scorer
        self.assignments = assignments

    def _evaluate(self, candidate: CandidateAssignment,
                  state: BookingState) -> Optional[ScoreBreakdown]:
        """Score when feasible (counting this batch's bookings), else None."""
        try:
            report = self.checker.check(candidate)
        except DataUnavailable as e:
            logger.warning("solver: skipping candidate, %s", e.message)
            return None
        if not report.feasible:
            return None
        duty = report.result_for(DUTY_RULES)
        if duty is not None and duty.details:
            batch = state.sorties_on(candidate.instructor_id, candidate.start_at.date())
            if duty.details["current_sorties"] + batch >= duty.details["max"]:
                return None
        return self.scorer.score(candidate)

    def _greedy(self, org_id, student_ids, instructor_ids, aircraft_ids, slots,
                airport_icao, lesson_by_student, state) -> tuple[list[Placement], list[str]]:
        placements, unassigned = [], []
        for student_id in student_ids:
            best: Optional[Placement] = None
            for slot, instructor_id, aircraft_id in product(slots, instructor_ids,
                                                            aircraft_ids or [None]):
                candidate = parse(CandidateAssignment, dict(
                    org_id=org_id, student_id=student_id,
                    instructor_id=instructor_id, aircraft_id=aircraft_id,
                    lesson_id=lesson_by_student.get(student_id),
                    airport_icao=airport_icao,
                    start_at=slot.start_at, end_at=slot.end_at,
                ))
                if not state.fits(candidate):
                    continue
                score = self._evaluate(candidate, state)
                if score and (best is None or score.total_score > best.score.total_score):
                    best = Placement(candidate, score)

            if best is None:
                unassigned.append(student_id)
                continue
            state.book_sortie(best.candidate)
            placements.append(best)
        logger.info("solver: greedy phase placed %d, %d unassigned",
                    len(placements), len(unassigned))
        return placements, unassigned

    def _improve(self, placements: list[Placement], state: BookingState,
                 max_iterations: int) -> tuple[int, int]:
        iterations = improvements = 0
        for i, j in combinations(range(len(placements)), 2):
            if iterations >= max_iterations:
                break
            a, b = placements[i], placements[j]
            if a.candidate.instructor_id == b.candidate.instructor_id:
                continue
            iterations += 1

            swapped_a = a.candidate.model_copy(update={"instructor_id": b.candidate.instructor_id})
            swapped_b = b.candidate.model_copy(update={"instructor_id": a.candidate.instructor_id})
            state.release_sortie(a.candidate)
            state.release_sortie(b.candidate)

            accepted = False
            if state.fits(swapped_a) and state.fits(swapped_b):
                score_a = self._evaluate(swapped_a, state)
                score_b = self._evaluate(swapped_b, state) if score_a else None
                if score_a and score_b and (
                    score_a.total_score + score_b.total_score
                    > a.score.total_score + b.score.total_score
                ):
                    placements[i] = Placement(swapped_a, score_a)
                    placements[j] = Placement(swapped_b, score_b)
                    accepted = True

            if accepted:
                improvements += 1
            state.book_sortie(placements[i].candidate)
            state.book_sortie(placements[j].candidate)
        logger.info("solver: %d swap attempts, %d improvements", iterations, improvements)
        return iterations, improvements

    def solve(self, org_id: str, student_ids: list[str], instructor_ids: list[str],
              aircraft_ids: list[str], slots: list, airport_icao: str,
              lesson_by_student: dict | None = None, max_iterations: int = 100) -> dict:
        if not student_ids:
            raise InputInvalid("student_ids must not be empty")
        if not instructor_ids:
            raise InputInvalid("instructor_ids must not be empty")
        slots = [parse(SlotIn, s) for s in slots]
        if not slots:
            raise InputInvalid("slots must not be empty")

        state = BookingState()
        placements, unassigned = self._greedy(
            org_id, list(dict.fromkeys(student_ids)), list(dict.fromkeys(instructor_ids)),
            list(dict.fromkeys(aircraft_ids or [])), slots, airport_icao,
            lesson_by_student or {}, state,
        )
        iterations, improvements = self._improve(placements, state, max_iterations)

        created = [self.assignments.create(p.candidate, p.score.to_dict()) for p in placements]
        average = (sum(p.score.total_score for p in placements) / len(placements)
                   if placements else 0.0)
        return {
            "assignments": created,
            "assigned_count": len(created),
            "unassigned_students": unassigned,
            "average_score": round(average, 2),
            "iterations": iterations,
            "improvements": improvements,
        }
