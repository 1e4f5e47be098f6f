"""
Composition root: wires stores and engines over one session factory and
exposes every operation scoped to the caller's organization.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from rostercore.errors import InputInvalid, NotFound, Unauthorized
from rostercore.feasibility.checker import FeasibilityChecker
from rostercore.feasibility.report import FeasibilityReport
from rostercore.models import AlternativeStatus, AssignmentStatus
from rostercore.notifications import AuditLog, Notifier, OutboxNotifier
from rostercore.replanning.engine import ReplanningEngine
from rostercore.schemas import (
    CandidateAssignment, DisruptionEvent, SnapshotIn, parse, to_naive_utc, utcnow,
)
from rostercore.scoring.engine import ScoreBreakdown, ScoringEngine
from rostercore.solver.roster import RosterSolver
from rostercore.stores.assignments import AssignmentFilter, SqlAssignmentStore
from rostercore.stores.catalog import SqlCatalogStore
from rostercore.stores.environment import SqlEnvironmentStore
from rostercore.stores.policy import PolicyStore, SqlPolicyStore

logger = logging.getLogger(__name__)


def scoped(org_id: Optional[str], data) -> dict:
    """Stamp the caller's org onto a request body; a different org is refused."""
    if not org_id:
        raise Unauthorized("No organization scope")
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    if not isinstance(data, dict):
        raise InputInvalid("Request body must be an object")
    claimed = data.get("org_id")
    if claimed and claimed != org_id:
        raise Unauthorized("Request targets another organization")
    return {**data, "org_id": org_id}


class RosterService:

    def __init__(self, session_factory: sessionmaker,
                 policy: PolicyStore | None = None,
                 notifier: Notifier | None = None,
                 clock: Callable[[], datetime] = utcnow,
                 lookup_timeout: float | None = None):
        self.policy = policy or SqlPolicyStore(session_factory)
        self.environment = SqlEnvironmentStore(session_factory)
        self.assignments = SqlAssignmentStore(session_factory)
        self.catalog = SqlCatalogStore(session_factory)
        self.notifier = notifier or OutboxNotifier(session_factory)
        self.audit = AuditLog(session_factory)

        stores = (self.policy, self.environment, self.assignments, self.catalog)
        self.checker = FeasibilityChecker(*stores, timeout=lookup_timeout)
        self.scorer = ScoringEngine(*stores, timeout=lookup_timeout)
        self.replanner = ReplanningEngine(self.assignments, self.catalog, self.checker,
                                          self.scorer, self.notifier, self.audit, clock=clock)
        self.solver = RosterSolver(self.checker, self.scorer, self.assignments)

    # ── Feasibility & scoring ────────────────────────────────────────────────

    def check_feasibility(self, org_id: str, candidate) -> FeasibilityReport:
        return self.checker.check(scoped(org_id, candidate))

    def score_assignment(self, org_id: str, candidate,
                         weights: dict | None = None) -> ScoreBreakdown:
        return self.scorer.score(scoped(org_id, candidate), weights)

    # ── Disruptions & alternatives ───────────────────────────────────────────

    def handle_disruption(self, org_id: str, event) -> dict:
        return self.replanner.handle_disruption(parse(DisruptionEvent, scoped(org_id, event)))

    def list_alternatives(self, org_id: str, assignment_id: str,
                          status: Optional[AlternativeStatus] = None) -> list[dict]:
        return self.replanner.list_alternatives(org_id, assignment_id, status)

    def accept_alternative(self, org_id: str, alternative_id: str) -> dict:
        return self.replanner.accept_alternative(org_id, alternative_id)

    def reject_alternative(self, org_id: str, alternative_id: str) -> dict:
        return self.replanner.reject_alternative(org_id, alternative_id)

    # ── Assignment lifecycle ─────────────────────────────────────────────────

    def _owned(self, org_id: str, assignment_id: str) -> dict:
        assignment = self.assignments.get(assignment_id)
        if assignment is None:
            raise NotFound(f"Assignment {assignment_id} not found")
        if assignment["org_id"] != org_id:
            raise Unauthorized("Assignment does not belong to this organization")
        return assignment

    def create_assignment(self, org_id: str, candidate) -> dict:
        """Store a feasible candidate as a `proposed` sortie with its score."""
        c = parse(CandidateAssignment, scoped(org_id, candidate))
        report = self.checker.check(c)
        if not report.feasible:
            raise InputInvalid("Assignment is not feasible: " + "; ".join(report.blocking_issues))
        score = self.scorer.score(c)
        return self.assignments.create(c, score.to_dict())

    def get_assignment(self, org_id: str, assignment_id: str) -> dict:
        return self._owned(org_id, assignment_id)

    def confirm_assignment(self, org_id: str, assignment_id: str) -> dict:
        self._owned(org_id, assignment_id)
        return self.assignments.confirm(assignment_id)

    def cancel_assignment(self, org_id: str, assignment_id: str,
                          reason: str | None = None) -> dict:
        self._owned(org_id, assignment_id)
        assignment = self.assignments.cancel(assignment_id)
        self.audit.record(org_id, "assignment_cancelled",
                          f"Assignment {assignment_id} cancelled",
                          {"assignment_id": assignment_id, "reason": reason})
        self.notifier.notify(org_id, [assignment["student_id"], assignment.get("instructor_id")],
                             "Flight Cancelled",
                             reason or "Your scheduled flight has been cancelled.")
        return assignment

    def complete_assignment(self, org_id: str, assignment_id: str) -> dict:
        self._owned(org_id, assignment_id)
        return self.assignments.complete(assignment_id)

    def query_assignments(self, org_id: str, **filters) -> list[dict]:
        if not org_id:
            raise Unauthorized("No organization scope")
        statuses = filters.pop("statuses", None)
        if statuses:
            try:
                filters["statuses"] = [AssignmentStatus(s) for s in statuses]
            except ValueError as e:
                raise InputInvalid(str(e)) from e
        for key in ("start_from", "start_before"):
            if filters.get(key) is not None:
                filters[key] = to_naive_utc(filters[key])
        return self.assignments.query(AssignmentFilter(org_id=org_id, **filters))

    # ── Solver ───────────────────────────────────────────────────────────────

    def solve_roster(self, org_id: str, **request) -> dict:
        if not org_id:
            raise Unauthorized("No organization scope")
        result = self.solver.solve(org_id, **request)
        self.audit.record(org_id, "roster_solved",
                          f"Roster solver proposed {result['assigned_count']} sorties",
                          {"assignment_ids": [a["id"] for a in result["assignments"]],
                           "unassigned_students": result["unassigned_students"],
                           "average_score": result["average_score"]})
        return result

    # ── Environment ──────────────────────────────────────────────────────────

    def ingest_snapshot(self, org_id: str, snapshot) -> int:
        if not org_id:
            raise Unauthorized("No organization scope")
        return self.environment.ingest(org_id, parse(SnapshotIn, snapshot))

    def ingest_metar(self, org_id: str, icao: str, raw: str | None = None) -> int:
        """Store a METAR; fetch it live when no raw text is given."""
        if not org_id:
            raise Unauthorized("No organization scope")
        if not icao or not icao.strip():
            raise InputInvalid("icao is required")
        if raw:
            return self.environment.ingest_metar(org_id, icao, raw)
        return self.environment.refresh_metar(org_id, icao)
