"""
Assignment lifecycle.

  proposed ──┬─> confirmed ──┬─> completed
             │               │
             └───────────────┴─> pending_confirm ──> confirmed (accepted alternative)
                                        │
  any non-terminal ─────────────────────┴──────────> cancelled

Status is never written as a free-form string: every change goes through
one of the functions below, which raise InvalidTransition otherwise.
"""
from rostercore.errors import InvalidTransition
from rostercore.models import AssignmentStatus as S, AlternativeStatus

ALLOWED = {
    S.PROPOSED:        {S.CONFIRMED, S.PENDING_CONFIRM, S.CANCELLED},
    S.CONFIRMED:       {S.PENDING_CONFIRM, S.CANCELLED, S.COMPLETED},
    # a second disruption may hit a sortie that is still waiting on a human
    S.PENDING_CONFIRM: {S.PENDING_CONFIRM, S.CONFIRMED, S.CANCELLED},
    S.CANCELLED:       set(),
    S.COMPLETED:       set(),
}

# statuses a disruption can still affect
DISRUPTABLE = (S.PENDING_CONFIRM, S.CONFIRMED)


def _move(current, target: S) -> S:
    current = S(current)
    if target not in ALLOWED[current]:
        raise InvalidTransition(
            f"Assignment cannot move from {current.value} to {target.value}"
        )
    return target


def mark_pending_confirm(current) -> S:
    return _move(current, S.PENDING_CONFIRM)


def confirm(current, via_alternative: bool = False) -> S:
    """pending_confirm only resolves to confirmed through an accepted alternative."""
    if S(current) == S.PENDING_CONFIRM and not via_alternative:
        raise InvalidTransition(
            "Assignment is awaiting a decision on its alternatives; accept one instead"
        )
    return _move(current, S.CONFIRMED)


def cancel(current) -> S:
    return _move(current, S.CANCELLED)


def complete(current) -> S:
    return _move(current, S.COMPLETED)


def resolve_alternative(current, accepted: bool) -> AlternativeStatus:
    if AlternativeStatus(current) != AlternativeStatus.PENDING:
        raise InvalidTransition(f"Alternative already {AlternativeStatus(current).value}")
    return AlternativeStatus.ACCEPTED if accepted else AlternativeStatus.REJECTED
