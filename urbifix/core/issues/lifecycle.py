from urbifix.common.enums import IssueStatus
from urbifix.common.exceptions import BadRequestError, InvalidTransitionError

VALID_TRANSITIONS: dict[IssueStatus, list[IssueStatus]] = {
    IssueStatus.OPEN: [IssueStatus.IN_PROGRESS, IssueStatus.CLOSED],
    IssueStatus.IN_PROGRESS: [IssueStatus.RESOLVED, IssueStatus.CLOSED],
    IssueStatus.RESOLVED: [IssueStatus.CLOSED],
    IssueStatus.CLOSED: [],
}

# Only reachable through accept_issue / resolve_issue
PROVIDER_DRIVEN = frozenset({IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED})


def can_transition(current: str, requested: str) -> bool:
    return IssueStatus(requested) in VALID_TRANSITIONS.get(IssueStatus(current), [])


def ensure_manual_transition(current: str, requested: str) -> IssueStatus:
    """Validate a status change requested through the generic update endpoint."""
    target = IssueStatus(requested)
    if target == IssueStatus(current):
        return target
    if target in PROVIDER_DRIVEN:
        raise BadRequestError(
            f"Status '{target.value}' can only be set by accepting or resolving the issue"
        )
    if not can_transition(current, requested):
        raise InvalidTransitionError("issue", current, requested)
    return target
