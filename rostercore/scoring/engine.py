"""
Scoring engine: fetch the context once, run the six dimensions, weight them.
"""
import logging
from dataclasses import asdict, dataclass

from rostercore.fanout import fan_out, is_unavailable
from rostercore.feasibility.checker import check_scope
from rostercore.models import AssignmentStatus
from rostercore.scheduling.availability import week_bounds
from rostercore.schemas import CandidateAssignment, parse
from rostercore.scoring.dimensions import DIMENSIONS
from rostercore.stores.assignments import AssignmentFilter, AssignmentStore
from rostercore.stores.catalog import CatalogStore
from rostercore.stores.environment import EnvironmentStore
from rostercore.stores.policy import (
    DEFAULT_WEIGHTS, PolicyStore, WEIGHT_KEYS, validate_weights,
)

logger = logging.getLogger(__name__)

CONTINUITY_WINDOW = 5


@dataclass
class ScoreBreakdown:
    weather_fit: float
    instructor_balance: float
    travel_min: float
    aircraft_utilization: float
    student_continuity: float
    cancellation_risk: float
    total_score: float

    @classmethod
    def weighted(cls, scores: dict, weights: dict) -> "ScoreBreakdown":
        total = sum(scores[k] * weights[k] for k in WEIGHT_KEYS)
        return cls(**{k: round(scores[k], 4) for k in WEIGHT_KEYS},
                   total_score=round(total, 2))

    def to_dict(self) -> dict:
        return asdict(self)


class ScoringEngine:

    def __init__(self, policy: PolicyStore, environment: EnvironmentStore,
                 assignments: AssignmentStore, catalog: CatalogStore,
                 timeout: float | None = None):
        self.policy = policy
        self.environment = environment
        self.assignments = assignments
        self.catalog = catalog
        self.timeout = timeout

    def lookups(self, c: CandidateAssignment, with_weights: bool) -> dict:
        org = c.org_id
        todo = {
            "environment": lambda: self.environment.latest(org),
            "minima": lambda: self.policy.get_weather_minima(org, c.lesson_id),
            "airport": lambda: self.catalog.get_airport(c.airport_icao),
        }
        if with_weights:
            todo["weights"] = lambda: self.policy.get_weights(org)
        if c.instructor_id:
            week_start, week_end = week_bounds(c.start_at)
            todo["instructor"] = lambda: self.catalog.get_instructor(c.instructor_id)
            todo["week_assignments"] = lambda: self.assignments.query(AssignmentFilter(
                org_id=org, start_from=week_start, start_before=week_end,
                exclude_statuses=[AssignmentStatus.CANCELLED]))
            todo["history"] = lambda: self.assignments.query(AssignmentFilter(
                student_id=c.student_id, start_before=c.start_at,
                exclude_statuses=[AssignmentStatus.CANCELLED],
                newest_first=True, limit=CONTINUITY_WINDOW + 1))
        if c.aircraft_id:
            todo["aircraft"] = lambda: self.catalog.get_aircraft(c.aircraft_id)
        return todo

    def gather(self, c: CandidateAssignment, with_weights: bool = True) -> dict:
        ctx = fan_out(self.lookups(c, with_weights), timeout=self.timeout)
        check_scope(c, ctx)

        history = ctx.get("history")
        if history and not is_unavailable(history):
            # the sortie being replaced is not part of the student's past
            ctx["history"] = [a for a in history
                              if a["id"] != c.replaces_assignment_id][:CONTINUITY_WINDOW]

        instructor = ctx.get("instructor")
        base = (instructor or {}).get("base_airport")
        if base and base.upper() != c.airport_icao:
            ctx.update(fan_out({"base_airport": lambda: self.catalog.get_airport(base)},
                               timeout=self.timeout))
        return ctx

    def resolve_weights(self, c: CandidateAssignment, ctx: dict, weights) -> dict:
        if weights is not None:
            return validate_weights(weights)
        policy_weights = ctx.get("weights")
        if is_unavailable(policy_weights) or not policy_weights:
            logger.warning("org %s: weights unavailable, using defaults", c.org_id)
            return dict(DEFAULT_WEIGHTS)
        return policy_weights

    def evaluate(self, c: CandidateAssignment, ctx: dict, weights: dict) -> ScoreBreakdown:
        scores = {name: fn(c, ctx) for name, fn in DIMENSIONS.items()}
        return ScoreBreakdown.weighted(scores, weights)

    def score(self, candidate, weights: dict | None = None) -> ScoreBreakdown:
        c = parse(CandidateAssignment, candidate)
        # explicit weights are validated before any lookup runs
        explicit = validate_weights(weights) if weights is not None else None
        ctx = self.gather(c, with_weights=explicit is None)
        breakdown = self.evaluate(c, ctx, self.resolve_weights(c, ctx, explicit))
        logger.debug("score %s/%s@%s: %.2f", c.student_id, c.instructor_id,
                     c.start_at.isoformat(), breakdown.total_score)
        return breakdown
