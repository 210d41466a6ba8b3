from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import as_utc, isoformat, utcnow
from urbifix.common.enums import IssueStatus, NotificationType, UserRole
from urbifix.common.exceptions import BadRequestError, ConflictError
from urbifix.common.logging import get_logger
from urbifix.core.authz.policy import authorize
from urbifix.core.notifications.service import create_notification
from urbifix.db.models.issue import Issue, IssueContribution
from urbifix.db.models.user import User

logger = get_logger("issues.crowdfunding")

CLOSED_FOR_FUNDING = {IssueStatus.CLOSED.value}


async def enable_crowdfunding(
    db: AsyncSession,
    issue: Issue,
    actor: User,
    target_amount: Decimal,
    deadline: datetime | None = None,
) -> Issue:
    authorize(actor, "issue", "manage_crowdfunding", issue)
    if issue.status in CLOSED_FOR_FUNDING:
        raise BadRequestError("Crowdfunding cannot be enabled on a closed issue")
    if target_amount <= 0:
        raise BadRequestError("Target amount must be greater than zero")
    if deadline is not None and as_utc(deadline) <= utcnow():
        raise BadRequestError("Deadline must be in the future")

    issue.crowdfunding_enabled = True
    issue.crowdfunding_target = target_amount
    issue.crowdfunding_deadline = deadline
    await db.flush()
    await db.refresh(issue)
    logger.info("Crowdfunding enabled on issue %s (target %s)", issue.id, target_amount)
    return issue


async def contribute(
    db: AsyncSession,
    issue: Issue,
    actor: User,
    amount: Decimal,
    message: str | None = None,
    is_anonymous: bool = False,
    payment_method: str = "upi",
    transaction_id: str | None = None,
) -> IssueContribution:
    authorize(actor, "issue", "contribute", issue)
    if not issue.crowdfunding_enabled:
        raise BadRequestError("Crowdfunding is not enabled for this issue")
    if issue.status in CLOSED_FOR_FUNDING:
        raise BadRequestError("Cannot contribute to a closed issue")
    if issue.crowdfunding_deadline is not None and as_utc(issue.crowdfunding_deadline) < utcnow():
        raise BadRequestError("Crowdfunding deadline has passed")
    if amount <= 0:
        raise BadRequestError("Contribution amount must be greater than zero")

    contribution = IssueContribution(
        issue_id=issue.id,
        contributor_id=actor.id,
        amount=amount,
        message=message,
        is_anonymous=is_anonymous,
        payment_method=payment_method,
        transaction_id=transaction_id or f"txn_{uuid.uuid4().hex[:16]}",
    )
    db.add(contribution)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("This transaction has already been recorded") from e

    result = await db.execute(
        update(Issue)
        .where(Issue.id == issue.id, Issue.crowdfunding_enabled.is_(True))
        .values(crowdfunding_raised=Issue.crowdfunding_raised + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError("Crowdfunding was disabled while contributing")
    await db.refresh(issue)
    await db.refresh(contribution)

    if issue.consumer_id != actor.id:
        await create_notification(
            db,
            issue.consumer_id,
            NotificationType.ISSUE_UPDATE,
            "New contribution",
            f"Someone contributed {amount} towards '{issue.title}'",
            related_id=issue.id,
            related_type="issue",
        )
    logger.info("Contribution %s of %s to issue %s", contribution.id, amount, issue.id)
    return contribution


def progress_percent(raised: Decimal, target: Decimal | None) -> float:
    if not target or target <= 0:
        return 0.0
    return round(min(float(raised / target * 100), 100.0), 2)


async def crowdfunding_details(db: AsyncSession, issue: Issue, viewer: User) -> dict[str, Any]:
    rows = await db.execute(
        select(IssueContribution, User.full_name)
        .join(User, User.id == IssueContribution.contributor_id)
        .where(IssueContribution.issue_id == issue.id, IssueContribution.is_deleted.is_(False))
        .order_by(IssueContribution.created_at.desc())
    )
    reveal_all = viewer.role == UserRole.ADMIN.value
    contributors = []
    for contribution, name in rows.all():
        hidden = contribution.is_anonymous and not reveal_all and contribution.contributor_id != viewer.id
        contributors.append({
            "id": str(contribution.id),
            "contributor_id": None if hidden else str(contribution.contributor_id),
            "name": "Anonymous" if hidden else name,
            "amount": str(contribution.amount),
            "message": contribution.message,
            "is_anonymous": contribution.is_anonymous,
            "contributed_at": isoformat(contribution.created_at),
        })

    deadline = as_utc(issue.crowdfunding_deadline)
    raised = issue.crowdfunding_raised or Decimal("0")
    return {
        "issue_id": str(issue.id),
        "is_enabled": issue.crowdfunding_enabled,
        "target_amount": str(issue.crowdfunding_target) if issue.crowdfunding_target is not None else None,
        "raised_amount": str(raised),
        "progress_percentage": progress_percent(raised, issue.crowdfunding_target),
        "deadline": isoformat(deadline),
        "is_expired": bool(deadline and deadline < utcnow()),
        "contributors_count": len(contributors),
        "contributors": contributors,
    }
