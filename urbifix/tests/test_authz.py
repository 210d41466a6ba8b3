import uuid
from types import SimpleNamespace

import pytest

from urbifix.common.exceptions import PermissionDeniedError
from urbifix.core.authz.policy import POLICY, authorize, is_allowed

CONSUMER = uuid.uuid4()
PROVIDER = uuid.uuid4()
STRANGER = uuid.uuid4()

booking = SimpleNamespace(consumer_id=CONSUMER, provider_id=PROVIDER)
issue = SimpleNamespace(consumer_id=CONSUMER, assigned_provider_id=PROVIDER)
proposal = SimpleNamespace(proposed_by_id=PROVIDER, proposed_to_id=CONSUMER)


def _user(role, user_id):
    return SimpleNamespace(role=role, id=user_id)


def test_admin_reads_everything():
    admin = uuid.uuid4()
    assert is_allowed("admin", admin, "booking", "read", booking)
    assert is_allowed("admin", admin, "issue", "read", issue)
    assert is_allowed("admin", admin, "proposal", "read", proposal)


def test_booking_parties_only():
    assert is_allowed("consumer", CONSUMER, "booking", "read", booking)
    assert is_allowed("provider", PROVIDER, "booking", "read", booking)
    assert not is_allowed("provider", STRANGER, "booking", "read", booking)
    assert not is_allowed("consumer", STRANGER, "booking", "negotiate", booking)


def test_consumer_status_change_limited_to_cancel():
    assert is_allowed("consumer", CONSUMER, "booking", "update_status", booking, target_status="cancelled")
    assert not is_allowed(
        "consumer", CONSUMER, "booking", "update_status", booking, target_status="confirmed"
    )
    assert is_allowed("provider", PROVIDER, "booking", "update_status", booking, target_status="completed")


def test_admin_cannot_negotiate():
    assert not is_allowed("admin", uuid.uuid4(), "booking", "negotiate", booking)


def test_proposal_roles():
    assert is_allowed("consumer", CONSUMER, "proposal", "respond", proposal)
    assert not is_allowed("provider", PROVIDER, "proposal", "respond", proposal)
    assert is_allowed("provider", PROVIDER, "proposal", "cancel", proposal)
    assert not is_allowed("consumer", CONSUMER, "proposal", "cancel", proposal)


def test_issue_rules():
    assert is_allowed("provider", STRANGER, "issue", "accept", issue)
    assert not is_allowed("consumer", CONSUMER, "issue", "accept", issue)
    assert is_allowed("provider", PROVIDER, "issue", "resolve", issue)
    assert not is_allowed("provider", STRANGER, "issue", "resolve", issue)
    assert not is_allowed("consumer", STRANGER, "issue", "read", issue)


def test_every_rule_set_names_known_roles():
    for rules in POLICY.values():
        assert set(rules) <= {"admin", "consumer", "provider"}


def test_unknown_action_is_an_error():
    with pytest.raises(KeyError):
        is_allowed("admin", uuid.uuid4(), "booking", "teleport", booking)


def test_authorize_raises_403():
    with pytest.raises(PermissionDeniedError) as exc:
        authorize(_user("consumer", STRANGER), "booking", "read", booking)
    assert exc.value.status_code == 403
    assert exc.value.detail == "Access denied"
