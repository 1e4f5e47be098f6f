"""
Replanning engine — turns a disruption into pending alternatives.

Flow per event:
  1. Persist the event (its id is the correlation id)
  2. Find affected sorties (pending_confirm / confirmed only)
  3. For each sortie: generate candidates, check + score them concurrently,
     keep the best few, store them and mark the sortie pending_confirm
     in one transaction, then notify student and instructor
  4. Write one audit event for the whole disruption

Sorties are handled one at a time; a failure on one (store error or raw
database error) is logged and reported in failed_assignment_ids without
stopping the rest.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from rostercore.config import settings
from rostercore.errors import NotFound, RosterCoreError, Unauthorized
from rostercore.fanout import fan_out, is_unavailable
from rostercore.feasibility.checker import FeasibilityChecker
from rostercore.models import AlternativeStatus
from rostercore.notifications import AuditLog, Notifier
from rostercore.replanning.candidates import find_affected, generate_candidates
from rostercore.schemas import CandidateAssignment, DisruptionEvent, parse, utcnow
from rostercore.scoring.engine import ScoringEngine
from rostercore.stores.assignments import AssignmentStore
from rostercore.stores.catalog import CatalogStore

logger = logging.getLogger(__name__)

UPDATE_TITLE = "Flight Schedule Update Required"


class ReplanningEngine:

    def __init__(self, assignments: AssignmentStore, catalog: CatalogStore,
                 checker: FeasibilityChecker, scorer: ScoringEngine,
                 notifier: Notifier, audit: AuditLog,
                 clock: Callable[[], datetime] = utcnow,
                 max_alternatives: int | None = None):
        self.assignments = assignments
        self.catalog = catalog
        self.checker = checker
        self.scorer = scorer
        self.notifier = notifier
        self.audit = audit
        self.clock = clock
        self.max_alternatives = max_alternatives or settings.max_alternatives

    # ── Disruptions ──────────────────────────────────────────────────────────

    def handle_disruption(self, event) -> dict:
        event = parse(DisruptionEvent, event)
        now = self.clock()
        event_id = self.assignments.record_disruption(event)
        affected = find_affected(self.assignments, event, now)
        logger.info("[%s] %s disruption affects %d sorties",
                    event_id, event.trigger_type.value, len(affected))

        generated = 0
        failed = []
        for assignment in affected:
            try:
                generated += self._replan(assignment, event, event_id)
            except (RosterCoreError, SQLAlchemyError) as e:
                logger.error("[%s] replanning %s failed: %s",
                             event_id, assignment["id"], e)
                failed.append(assignment["id"])

        trigger = event.trigger_type.value
        self.audit.record(
            event.org_id,
            "schedule_disruption_detected",
            f"{trigger} change affects {len(affected)} assignments",
            {
                "correlation_id": event_id,
                "trigger_type": trigger,
                "affected_assignments": [a["id"] for a in affected],
                "alternatives_generated": generated,
                "failed_assignment_ids": failed,
                "trigger_details": event.payload,
            },
        )
        return {
            "correlation_id": event_id,
            "affected_count": len(affected),
            "alternatives_generated": generated,
            "failed_assignment_ids": failed,
        }

    def _replan(self, assignment: dict, event: DisruptionEvent, event_id: str) -> int:
        candidates = generate_candidates(assignment, event, self.catalog)
        alternatives = self.best_alternatives(candidates)
        self.assignments.mark_pending_with_alternatives(
            assignment["id"], event_id, event.trigger_type, alternatives)

        trigger = event.trigger_type.value
        when = assignment["start_at"].strftime("%Y-%m-%d %H:%M")
        if alternatives:
            message = (f"Your flight on {when} UTC may need rescheduling due to {trigger}. "
                       f"Please review {len(alternatives)} alternative(s).")
        else:
            message = (f"Your flight on {when} UTC is affected by {trigger}. "
                       "No automatic alternative was found; manual rescheduling is needed.")
        self.notifier.notify(event.org_id,
                             [assignment["student_id"], assignment.get("instructor_id")],
                             UPDATE_TITLE, message)
        return len(alternatives)

    def _evaluate(self, candidate: CandidateAssignment) -> Optional[dict]:
        report = self.checker.check(candidate)
        if not report.feasible:
            return None
        breakdown = self.scorer.score(candidate)
        return {"assignment": candidate.as_payload(), "score_breakdown": breakdown.to_dict()}

    def best_alternatives(self, candidates: list[CandidateAssignment]) -> list[dict]:
        """Feasible candidates, best score first, at most max_alternatives."""
        if not candidates:
            return []
        # each evaluation runs two lookup rounds of its own
        results = fan_out(
            {f"candidate-{i}": (lambda c=c: self._evaluate(c)) for i, c in enumerate(candidates)},
            timeout=settings.lookup_timeout_seconds * 3,
        )
        evaluated = []
        for name, result in results.items():
            if is_unavailable(result):
                logger.warning("%s skipped: %s", name, result.reason)
            elif result is not None:
                evaluated.append(result)
        evaluated.sort(key=lambda a: a["score_breakdown"]["total_score"], reverse=True)
        return evaluated[:self.max_alternatives]

    # ── Alternatives ─────────────────────────────────────────────────────────

    def _scoped_assignment(self, org_id: str, assignment_id: str) -> dict:
        assignment = self.assignments.get(assignment_id)
        if assignment is None:
            raise NotFound(f"Assignment {assignment_id} not found")
        if assignment["org_id"] != org_id:
            raise Unauthorized("Assignment does not belong to this organization")
        return assignment

    def _scoped_alternative(self, org_id: str, alternative_id: str) -> dict:
        alt = self.assignments.get_alternative(alternative_id)
        if alt is None:
            raise NotFound(f"Alternative {alternative_id} not found")
        if alt["org_id"] != org_id:
            raise Unauthorized("Alternative does not belong to this organization")
        return alt

    def list_alternatives(self, org_id: str, assignment_id: str,
                          status: Optional[AlternativeStatus] = None) -> list[dict]:
        self._scoped_assignment(org_id, assignment_id)
        return self.assignments.list_alternatives(assignment_id, status)

    def accept_alternative(self, org_id: str, alternative_id: str) -> dict:
        alt = self._scoped_alternative(org_id, alternative_id)
        assignment = self.assignments.accept_alternative(alternative_id)
        when = assignment["start_at"].strftime("%Y-%m-%d %H:%M")
        self.audit.record(org_id, "alternative_accepted",
                          f"Alternative {alternative_id} accepted for {assignment['id']}",
                          {"alternative_id": alternative_id,
                           "assignment_id": assignment["id"],
                           "disruption_event_id": alt["disruption_event_id"],
                           "total_score": alt["total_score"]})
        self.notifier.notify(org_id, [assignment["student_id"], assignment.get("instructor_id")],
                             "Flight Rescheduled",
                             f"Your flight is confirmed for {when} UTC.", type="info")
        return assignment

    def reject_alternative(self, org_id: str, alternative_id: str) -> dict:
        self._scoped_alternative(org_id, alternative_id)
        alt = self.assignments.reject_alternative(alternative_id)
        self.audit.record(org_id, "alternative_rejected",
                          f"Alternative {alternative_id} rejected",
                          {"alternative_id": alternative_id,
                           "assignment_id": alt["original_assignment_id"]})
        return alt
