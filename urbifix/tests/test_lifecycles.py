import pytest

from urbifix.common.enums import BookingStatus, IssueStatus
from urbifix.common.exceptions import BadRequestError, InvalidTransitionError
from urbifix.core.bookings import lifecycle as booking_lifecycle
from urbifix.core.issues import lifecycle as issue_lifecycle


@pytest.mark.parametrize(
    "current,requested",
    [
        ("pending", "negotiating"),
        ("pending", "confirmed"),
        ("negotiating", "confirmed"),
        ("confirmed", "in_progress"),
        ("in_progress", "completed"),
        ("in_progress", "cancelled"),
    ],
)
def test_booking_allowed_transitions(current, requested):
    assert booking_lifecycle.ensure_transition(current, requested) == BookingStatus(requested)


@pytest.mark.parametrize(
    "current,requested",
    [
        ("pending", "completed"),
        ("pending", "in_progress"),
        ("confirmed", "negotiating"),
        ("completed", "cancelled"),
        ("rejected", "pending"),
        ("cancelled", "confirmed"),
    ],
)
def test_booking_forbidden_transitions(current, requested):
    with pytest.raises(InvalidTransitionError) as exc:
        booking_lifecycle.ensure_transition(current, requested)
    assert exc.value.status_code == 400
    assert exc.value.current == current


def test_booking_status_groups():
    assert booking_lifecycle.TERMINAL_STATUSES == {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
    }
    assert BookingStatus.NEGOTIATING in booking_lifecycle.ACTIVE_STATUSES
    assert BookingStatus.CONFIRMED not in booking_lifecycle.NEGOTIABLE_STATUSES


def test_issue_manual_transitions():
    assert issue_lifecycle.ensure_manual_transition("open", "closed") == IssueStatus.CLOSED
    assert issue_lifecycle.ensure_manual_transition("resolved", "closed") == IssueStatus.CLOSED
    assert issue_lifecycle.ensure_manual_transition("open", "open") == IssueStatus.OPEN


def test_issue_provider_states_not_manual():
    with pytest.raises(BadRequestError):
        issue_lifecycle.ensure_manual_transition("open", "in_progress")
    with pytest.raises(BadRequestError):
        issue_lifecycle.ensure_manual_transition("in_progress", "resolved")


def test_issue_closed_is_final():
    with pytest.raises(InvalidTransitionError):
        issue_lifecycle.ensure_manual_transition("closed", "open")
    assert not issue_lifecycle.can_transition("resolved", "open")
