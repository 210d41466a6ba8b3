from urbifix.common.enums import BookingStatus
from urbifix.common.exceptions import InvalidTransitionError

VALID_TRANSITIONS: dict[BookingStatus, list[BookingStatus]] = {
    BookingStatus.PENDING: [
        BookingStatus.NEGOTIATING,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
    ],
    BookingStatus.NEGOTIATING: [
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
    ],
    BookingStatus.CONFIRMED: [BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED],
    BookingStatus.IN_PROGRESS: [BookingStatus.COMPLETED, BookingStatus.CANCELLED],
    BookingStatus.COMPLETED: [],
    BookingStatus.CANCELLED: [],
    BookingStatus.REJECTED: [],
}

TERMINAL_STATUSES = frozenset(s for s, nxt in VALID_TRANSITIONS.items() if not nxt)
ACTIVE_STATUSES = frozenset(VALID_TRANSITIONS) - TERMINAL_STATUSES
NEGOTIABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.NEGOTIATING})
PAYABLE_STATUSES = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)


def can_transition(current: str, requested: str) -> bool:
    return BookingStatus(requested) in VALID_TRANSITIONS.get(BookingStatus(current), [])


def ensure_transition(current: str, requested: str) -> BookingStatus:
    """Return the requested status, or raise 400 if the table forbids it."""
    if not can_transition(current, requested):
        raise InvalidTransitionError("booking", current, requested)
    return BookingStatus(requested)
