"""Issue workflow: provider assignment, resolution, upvotes and views.

Counters and assignment are written with single conditional UPDATE
statements so concurrent requests cannot double-assign an issue or drift the
upvote count away from the number of distinct voters.
"""

from __future__ import annotations

import uuid

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.common.dates import utcnow
from urbifix.common.enums import IssueStatus, NotificationType, UserRole
from urbifix.common.exceptions import BadRequestError, ConflictError, NotFoundError
from urbifix.common.logging import get_logger
from urbifix.core.authz.policy import authorize
from urbifix.core.notifications.service import create_notification
from urbifix.db.models.catalog import Category
from urbifix.db.models.issue import Issue, IssueUpvote, IssueView
from urbifix.db.models.user import User

logger = get_logger("issues.service")


async def get_issue_or_404(db: AsyncSession, issue_id: uuid.UUID) -> Issue:
    result = await db.execute(
        select(Issue).where(Issue.id == issue_id, Issue.is_deleted.is_(False))
    )
    issue = result.scalar_one_or_none()
    if not issue:
        raise NotFoundError("Issue", str(issue_id))
    return issue


async def resolve_category(db: AsyncSession, ref: str) -> Category:
    """Look up an active category by id or slug; 400 when unusable."""
    query = select(Category).where(Category.is_deleted.is_(False), Category.is_active.is_(True))
    try:
        query = query.where(Category.id == uuid.UUID(ref))
    except ValueError:
        query = query.where(Category.slug == ref)
    category = (await db.execute(query)).scalar_one_or_none()
    if not category:
        raise BadRequestError("Invalid or inactive category")
    return category


async def accept_issue(
    db: AsyncSession, issue: Issue, actor: User, provider_id: uuid.UUID | None = None
) -> Issue:
    authorize(actor, "issue", "accept", issue)

    if actor.role == UserRole.ADMIN.value:
        if provider_id is None:
            raise BadRequestError("provider_id is required when an admin assigns an issue")
        provider = (
            await db.execute(
                select(User).where(
                    User.id == provider_id,
                    User.role == UserRole.PROVIDER.value,
                    User.is_active.is_(True),
                    User.is_deleted.is_(False),
                )
            )
        ).scalar_one_or_none()
        if not provider:
            raise NotFoundError("Provider", str(provider_id))
        assignee = provider.id
    else:
        assignee = actor.id

    if issue.assigned_provider_id is not None:
        raise BadRequestError("Issue has already been accepted by a provider")
    if issue.status != IssueStatus.OPEN.value:
        raise BadRequestError(f"Only open issues can be accepted (current status: '{issue.status}')")

    result = await db.execute(
        update(Issue)
        .where(
            Issue.id == issue.id,
            Issue.status == IssueStatus.OPEN.value,
            Issue.assigned_provider_id.is_(None),
            Issue.is_deleted.is_(False),
        )
        .values(
            assigned_provider_id=assignee,
            status=IssueStatus.IN_PROGRESS.value,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise BadRequestError("Issue has already been accepted by a provider")
    await db.refresh(issue)

    await create_notification(
        db,
        issue.consumer_id,
        NotificationType.ISSUE_UPDATE,
        "Your issue was accepted",
        f"A provider is now working on '{issue.title}'",
        related_id=issue.id,
        related_type="issue",
    )
    logger.info("Issue %s accepted, assigned to %s", issue.id, assignee)
    return issue


async def resolve_issue(db: AsyncSession, issue: Issue, actor: User) -> Issue:
    authorize(actor, "issue", "resolve", issue)
    if issue.status != IssueStatus.IN_PROGRESS.value:
        raise BadRequestError(
            f"Only in-progress issues can be resolved (current status: '{issue.status}')"
        )

    result = await db.execute(
        update(Issue)
        .where(
            Issue.id == issue.id,
            Issue.status == IssueStatus.IN_PROGRESS.value,
            Issue.assigned_provider_id == issue.assigned_provider_id,
        )
        .values(status=IssueStatus.RESOLVED.value, resolved_at=utcnow(), updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError("Issue was modified by another request")
    await db.refresh(issue)

    await create_notification(
        db,
        issue.consumer_id,
        NotificationType.ISSUE_UPDATE,
        "Your issue was resolved",
        f"'{issue.title}' has been marked as resolved",
        related_id=issue.id,
        related_type="issue",
    )
    logger.info("Issue %s resolved by %s", issue.id, actor.id)
    return issue


def _upvote_count_subquery():
    return (
        select(func.count())
        .select_from(IssueUpvote)
        .where(IssueUpvote.issue_id == Issue.id)
        .scalar_subquery()
    )


async def toggle_upvote(db: AsyncSession, issue: Issue, actor: User) -> bool:
    """Add or remove the actor's vote. Returns True when the actor now upvotes."""
    authorize(actor, "issue", "upvote", issue)

    removed = await db.execute(
        delete(IssueUpvote)
        .where(IssueUpvote.issue_id == issue.id, IssueUpvote.user_id == actor.id)
        .execution_options(synchronize_session=False)
    )
    upvoted = removed.rowcount == 0
    if upvoted:
        try:
            await db.execute(insert(IssueUpvote).values(issue_id=issue.id, user_id=actor.id))
        except IntegrityError as e:
            raise ConflictError("Vote already recorded") from e

    await db.execute(
        update(Issue)
        .where(Issue.id == issue.id)
        .values(upvotes=_upvote_count_subquery())
        .execution_options(synchronize_session=False)
    )
    await db.refresh(issue)
    return upvoted


async def has_upvoted(db: AsyncSession, issue_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(IssueUpvote)
        .where(IssueUpvote.issue_id == issue_id, IssueUpvote.user_id == user_id)
    )
    return bool(result.scalar())


async def record_view(db: AsyncSession, issue: Issue, viewer: User) -> None:
    """Log one view per distinct viewer and refresh ``views_count``."""
    seen = await db.execute(
        select(func.count())
        .select_from(IssueView)
        .where(IssueView.issue_id == issue.id, IssueView.user_id == viewer.id)
    )
    if seen.scalar():
        return
    try:
        await db.execute(insert(IssueView).values(issue_id=issue.id, user_id=viewer.id))
    except IntegrityError as e:
        raise ConflictError("View already recorded") from e

    views = (
        select(func.count())
        .select_from(IssueView)
        .where(IssueView.issue_id == Issue.id)
        .scalar_subquery()
    )
    await db.execute(
        update(Issue)
        .where(Issue.id == issue.id)
        .values(views_count=views)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(issue)
