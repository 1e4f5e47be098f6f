"""
Assignment lifecycle transitions.

  pytest rostercore/scheduling
"""
import pytest

from rostercore.errors import InvalidTransition
from rostercore.models import AlternativeStatus, AssignmentStatus as S
from rostercore.scheduling import status


def test_happy_path():
    assert status.confirm(S.PROPOSED) == S.CONFIRMED
    assert status.complete(S.CONFIRMED) == S.COMPLETED


def test_disruption_path():
    assert status.mark_pending_confirm(S.CONFIRMED) == S.PENDING_CONFIRM
    assert status.mark_pending_confirm(S.PENDING_CONFIRM) == S.PENDING_CONFIRM
    assert status.confirm(S.PENDING_CONFIRM, via_alternative=True) == S.CONFIRMED


def test_pending_confirm_needs_an_accepted_alternative():
    with pytest.raises(InvalidTransition):
        status.confirm(S.PENDING_CONFIRM)


@pytest.mark.parametrize("current", [S.PROPOSED, S.CONFIRMED, S.PENDING_CONFIRM])
def test_any_open_sortie_can_be_cancelled(current):
    assert status.cancel(current) == S.CANCELLED


@pytest.mark.parametrize("terminal", [S.CANCELLED, S.COMPLETED])
def test_terminal_states_are_final(terminal):
    for move in (status.confirm, status.cancel, status.complete, status.mark_pending_confirm):
        with pytest.raises(InvalidTransition):
            move(terminal)


def test_only_confirmed_sorties_complete():
    for current in (S.PROPOSED, S.PENDING_CONFIRM):
        with pytest.raises(InvalidTransition):
            status.complete(current)


def test_accepts_raw_status_strings():
    assert status.confirm("proposed") == S.CONFIRMED


def test_alternative_resolves_once():
    assert status.resolve_alternative(AlternativeStatus.PENDING, accepted=True) \
        == AlternativeStatus.ACCEPTED
    assert status.resolve_alternative("pending", accepted=False) == AlternativeStatus.REJECTED
    with pytest.raises(InvalidTransition):
        status.resolve_alternative(AlternativeStatus.REJECTED, accepted=True)
