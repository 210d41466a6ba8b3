"""Declarative authorization: one table keyed by (resource, action) and role.

Every handler resolves the resource first (404), then calls ``authorize``
before touching it. Rules are small tagged variants:

* ``Allow``  - the role may always perform the action.
* ``Owner``  - the actor's id must equal one of the named resource fields;
  ``statuses`` optionally narrows which target status the role may request.

A role with no entry for an action is denied.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from urbifix.common.enums import BookingStatus, UserRole
from urbifix.common.exceptions import PermissionDeniedError
from urbifix.common.logging import get_logger

logger = get_logger("authz")


@dataclass(frozen=True)
class Allow:
    def permits(self, actor_id: uuid.UUID, resource: Any, context: dict[str, Any]) -> bool:
        return True


@dataclass(frozen=True)
class Owner:
    fields: tuple[str, ...]
    statuses: frozenset[str] | None = field(default=None)

    def permits(self, actor_id: uuid.UUID, resource: Any, context: dict[str, Any]) -> bool:
        if not any(getattr(resource, f, None) == actor_id for f in self.fields):
            return False
        if self.statuses is not None:
            return context.get("target_status") in self.statuses
        return True


Rule = Allow | Owner


def owner(*fields: str, statuses: set[str] | None = None) -> Owner:
    return Owner(fields=fields, statuses=frozenset(statuses) if statuses is not None else None)


ADMIN = UserRole.ADMIN.value
CONSUMER = UserRole.CONSUMER.value
PROVIDER = UserRole.PROVIDER.value

_BOOKING_PARTIES = {CONSUMER: owner("consumer_id"), PROVIDER: owner("provider_id")}

POLICY: dict[tuple[str, str], dict[str, Rule]] = {
    # Issues
    ("issue", "read"): {ADMIN: Allow(), PROVIDER: Allow(), CONSUMER: owner("consumer_id")},
    ("issue", "update"): {
        ADMIN: Allow(),
        CONSUMER: owner("consumer_id"),
        PROVIDER: owner("assigned_provider_id"),
    },
    ("issue", "delete"): {ADMIN: Allow(), CONSUMER: owner("consumer_id")},
    ("issue", "upvote"): {ADMIN: Allow(), PROVIDER: Allow(), CONSUMER: Allow()},
    ("issue", "accept"): {ADMIN: Allow(), PROVIDER: Allow()},
    ("issue", "resolve"): {ADMIN: Allow(), PROVIDER: owner("assigned_provider_id")},
    ("issue", "manage_crowdfunding"): {ADMIN: Allow(), CONSUMER: owner("consumer_id")},
    ("issue", "contribute"): {ADMIN: Allow(), PROVIDER: Allow(), CONSUMER: Allow()},
    # Bookings
    ("booking", "read"): {ADMIN: Allow(), **_BOOKING_PARTIES},
    ("booking", "update_status"): {
        ADMIN: Allow(),
        PROVIDER: owner("provider_id"),
        CONSUMER: owner("consumer_id", statuses={BookingStatus.CANCELLED.value}),
    },
    ("booking", "delete"): {ADMIN: Allow(), **_BOOKING_PARTIES},
    ("booking", "negotiate"): dict(_BOOKING_PARTIES),
    ("booking", "pay"): {CONSUMER: owner("consumer_id")},
    ("booking", "review"): {CONSUMER: owner("consumer_id")},
    # Proposals
    ("proposal", "read"): {
        ADMIN: Allow(),
        CONSUMER: owner("proposed_by_id", "proposed_to_id"),
        PROVIDER: owner("proposed_by_id", "proposed_to_id"),
    },
    ("proposal", "respond"): {
        CONSUMER: owner("proposed_to_id"),
        PROVIDER: owner("proposed_to_id"),
    },
    ("proposal", "cancel"): {
        CONSUMER: owner("proposed_by_id"),
        PROVIDER: owner("proposed_by_id"),
    },
    # Chat
    ("chat_room", "read"): {ADMIN: Allow(), **_BOOKING_PARTIES},
    ("chat_room", "write"): dict(_BOOKING_PARTIES),
    # Catalogue
    ("service", "update"): {ADMIN: Allow(), PROVIDER: owner("provider_id")},
    ("service", "delete"): {ADMIN: Allow(), PROVIDER: owner("provider_id")},
}


def is_allowed(
    role: str,
    actor_id: uuid.UUID,
    resource_type: str,
    action: str,
    resource: Any,
    **context: Any,
) -> bool:
    rules = POLICY.get((resource_type, action))
    if rules is None:
        raise KeyError(f"No authorization policy for {resource_type}.{action}")
    rule = rules.get(role)
    if rule is None:
        return False
    return rule.permits(actor_id, resource, context)


def authorize(user: Any, resource_type: str, action: str, resource: Any, **context: Any) -> None:
    """Raise PermissionDeniedError unless ``user`` may perform ``action``."""
    if not is_allowed(user.role, user.id, resource_type, action, resource, **context):
        logger.info(
            "Denied %s.%s for user %s (role=%s)", resource_type, action, user.id, user.role
        )
        raise PermissionDeniedError("Access denied")
