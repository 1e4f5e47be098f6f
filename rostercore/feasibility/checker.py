"""
Feasibility checker.

Pre-fetches everything the rules need with one fan-out, then runs every
registered rule against the same context. Side-effect free.
"""
import logging

from rostercore.errors import DataUnavailable, Unauthorized
from rostercore.fanout import fan_out, is_unavailable
from rostercore.feasibility.report import FeasibilityReport
from rostercore.feasibility.rules import RULES
from rostercore.schemas import CandidateAssignment, parse
from rostercore.stores.assignments import AssignmentStore
from rostercore.stores.catalog import CatalogStore
from rostercore.stores.environment import EnvironmentStore
from rostercore.stores.policy import PolicyStore

logger = logging.getLogger(__name__)

# context entries that are org-owned entities
_SCOPED = ("lesson", "instructor", "aircraft", "student")


def check_scope(candidate: CandidateAssignment, ctx: dict) -> None:
    """Every referenced entity must belong to the candidate's organization."""
    for key in _SCOPED:
        entity = ctx.get(key)
        if entity and entity.get("org_id") and entity["org_id"] != candidate.org_id:
            raise Unauthorized(f"{key.capitalize()} does not belong to this organization")


class FeasibilityChecker:

    def __init__(self, policy: PolicyStore, environment: EnvironmentStore,
                 assignments: AssignmentStore, catalog: CatalogStore,
                 timeout: float | None = None):
        self.policy = policy
        self.environment = environment
        self.assignments = assignments
        self.catalog = catalog
        self.timeout = timeout

    def lookups(self, c: CandidateAssignment) -> dict:
        org = c.org_id
        todo = {"student": lambda: self.catalog.get_student(c.student_id)}
        if c.lesson_id:
            todo["lesson"] = lambda: self.catalog.get_lesson(c.lesson_id)
            todo["minima"] = lambda: self.policy.get_weather_minima(org, c.lesson_id)
            todo["environment"] = lambda: self.environment.latest(org)
        if c.instructor_id:
            todo["instructor"] = lambda: self.catalog.get_instructor(c.instructor_id)
            todo["blocks"] = lambda: self.catalog.list_availability_blocks(
                c.instructor_id, c.start_at, c.end_at)
            todo["duty_limit"] = lambda: self.policy.get_duty_limit(org)
            todo["day_assignments"] = lambda: self.assignments.list_by_instructor_and_day(
                c.instructor_id, c.start_at.date())
        if c.aircraft_id:
            todo["aircraft"] = lambda: self.catalog.get_aircraft(c.aircraft_id)
            todo["airport_rules"] = lambda: self.policy.get_airport_performance_rules(org)
        return todo

    def gather(self, c: CandidateAssignment) -> dict:
        ctx = fan_out(self.lookups(c), timeout=self.timeout)
        if ctx and all(is_unavailable(v) for v in ctx.values()):
            raise DataUnavailable("No constraint data could be loaded for this assignment")
        check_scope(c, ctx)
        return ctx

    def evaluate(self, c: CandidateAssignment, ctx: dict) -> FeasibilityReport:
        results = [r for r in (rule(c, ctx) for rule in RULES) if r is not None]
        report = FeasibilityReport.from_results(results)
        logger.debug("feasibility %s/%s: feasible=%s blocking=%s",
                     c.student_id, c.instructor_id, report.feasible, report.blocking_issues)
        return report

    def check(self, candidate) -> FeasibilityReport:
        c = parse(CandidateAssignment, candidate)
        return self.evaluate(c, self.gather(c))
