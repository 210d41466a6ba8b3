"""Civic issue reporting, assignment and crowdfunding."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db, require_role
from urbifix.common.dates import isoformat
from urbifix.common.enums import IssuePriority, IssueStatus, UserRole
from urbifix.common.logging import get_logger
from urbifix.common.pagination import PageMeta, PaginatedResponse, PaginationParams, paginate
from urbifix.common.responses import ApiResponse
from urbifix.core.authz.policy import authorize
from urbifix.core.issues import crowdfunding, service
from urbifix.core.issues.lifecycle import ensure_manual_transition
from urbifix.db.models.issue import Issue
from urbifix.db.models.user import User

router = APIRouter(prefix="/issues", tags=["Issues"])
logger = get_logger("issues")

SORTABLE = {"created_at", "updated_at", "upvotes", "views_count", "priority", "status", "title"}


# ---------- Schemas ----------


class Location(BaseModel):
    address: str | None = None
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)


class IssueCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    category: str  # category id or slug
    location: Location | None = None
    priority: IssuePriority = IssuePriority.MEDIUM
    images: list[str] = []
    estimated_cost: Decimal | None = Field(default=None, ge=0)


class IssueUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    category: str | None = None
    location: Location | None = None
    priority: IssuePriority | None = None
    status: IssueStatus | None = None
    images: list[str] | None = None
    estimated_cost: Decimal | None = Field(default=None, ge=0)


class AcceptIssueRequest(BaseModel):
    provider_id: uuid.UUID | None = None


class IssueResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    category_id: uuid.UUID
    location: Location
    priority: str
    status: str
    consumer_id: uuid.UUID
    assigned_provider_id: uuid.UUID | None
    images: list[str]
    estimated_cost: Decimal | None
    upvotes: int
    views_count: int
    crowdfunding_enabled: bool
    resolved_at: str | None
    created_at: str
    updated_at: str


class UpvoteResponse(BaseModel):
    upvotes: int
    has_upvoted: bool


class CrowdfundingRequest(BaseModel):
    target_amount: Decimal = Field(gt=0)
    deadline: datetime | None = None


class ContributionRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    message: str | None = Field(default=None, max_length=500)
    is_anonymous: bool = False
    payment_method: str = "upi"
    transaction_id: str | None = None


class ContributionResponse(BaseModel):
    id: uuid.UUID
    issue_id: uuid.UUID
    amount: Decimal
    is_anonymous: bool
    transaction_id: str
    raised_amount: Decimal
    created_at: str


# ---------- Endpoints ----------


@router.get("", response_model=PaginatedResponse[IssueResponse])
async def list_issues(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    params: PaginationParams = Depends(),
    status: IssueStatus | None = None,
    category: str | None = None,
    priority: IssuePriority | None = None,
):
    query = select(Issue).where(Issue.is_deleted.is_(False))
    if current_user.role == UserRole.CONSUMER.value:
        query = query.where(Issue.consumer_id == current_user.id)
    if status:
        query = query.where(Issue.status == status.value)
    if priority:
        query = query.where(Issue.priority == priority.value)
    if category:
        cat = await service.resolve_category(db, category)
        query = query.where(Issue.category_id == cat.id)
    if params.search:
        query = query.where(Issue.title.ilike(f"%{params.search}%"))
    if params.sort_by not in SORTABLE:
        params.sort_by = None
    query = query.order_by(Issue.created_at.desc())

    items, total = await paginate(db, query, params, Issue)
    return PaginatedResponse[IssueResponse](
        data=[_issue_response(i) for i in items],
        pagination=PageMeta.build(params.page, params.limit, total),
    )


@router.post("", response_model=ApiResponse[IssueResponse], status_code=201)
async def create_issue(
    body: IssueCreate,
    current_user: User = Depends(require_role(UserRole.CONSUMER)),
    db: AsyncSession = Depends(get_db),
):
    category = await service.resolve_category(db, body.category)
    location = body.location or Location()
    issue = Issue(
        title=body.title,
        description=body.description,
        category_id=category.id,
        location_address=location.address,
        location_lat=location.lat,
        location_lng=location.lng,
        priority=body.priority.value,
        status=IssueStatus.OPEN.value,
        consumer_id=current_user.id,
        images=list(body.images),
        estimated_cost=body.estimated_cost,
    )
    db.add(issue)
    await db.flush()
    await db.refresh(issue)
    logger.info("Issue %s reported by %s", issue.id, current_user.id)
    return ApiResponse(message="Issue created successfully", data=_issue_response(issue))


@router.get("/{issue_id}", response_model=ApiResponse[IssueResponse])
async def get_issue(
    issue_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    authorize(current_user, "issue", "read", issue)
    await service.record_view(db, issue, current_user)
    return ApiResponse(data=_issue_response(issue))


@router.put("/{issue_id}", response_model=ApiResponse[IssueResponse])
async def update_issue(
    issue_id: uuid.UUID,
    body: IssueUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    authorize(current_user, "issue", "update", issue)

    updates = body.model_dump(exclude_unset=True)
    if updates.get("status") is not None:
        issue.status = ensure_manual_transition(issue.status, updates.pop("status").value).value
    updates.pop("status", None)
    if updates.get("category"):
        issue.category_id = (await service.resolve_category(db, updates.pop("category"))).id
    updates.pop("category", None)
    if "location" in updates:
        location = body.location or Location()
        issue.location_address = location.address
        issue.location_lat = location.lat
        issue.location_lng = location.lng
        updates.pop("location")
    if updates.get("priority") is not None:
        updates["priority"] = updates["priority"].value
    for field, value in updates.items():
        if value is not None:
            setattr(issue, field, value)

    await db.flush()
    await db.refresh(issue)
    return ApiResponse(message="Issue updated successfully", data=_issue_response(issue))


@router.delete("/{issue_id}", response_model=ApiResponse[None])
async def delete_issue(
    issue_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    authorize(current_user, "issue", "delete", issue)
    issue.soft_delete()
    await db.flush()
    logger.info("Issue %s deleted by %s", issue.id, current_user.id)
    return ApiResponse(message="Issue deleted successfully")


@router.patch("/{issue_id}/upvote", response_model=ApiResponse[UpvoteResponse])
async def upvote_issue(
    issue_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    upvoted = await service.toggle_upvote(db, issue, current_user)
    return ApiResponse(
        message="Issue upvoted" if upvoted else "Upvote removed",
        data=UpvoteResponse(upvotes=issue.upvotes, has_upvoted=upvoted),
    )


@router.patch("/{issue_id}/accept", response_model=ApiResponse[IssueResponse])
async def accept_issue(
    issue_id: uuid.UUID,
    body: AcceptIssueRequest | None = None,
    current_user: User = Depends(require_role(UserRole.PROVIDER, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    issue = await service.accept_issue(
        db, issue, current_user, provider_id=body.provider_id if body else None
    )
    return ApiResponse(message="Issue accepted successfully", data=_issue_response(issue))


@router.patch("/{issue_id}/resolve", response_model=ApiResponse[IssueResponse])
async def resolve_issue(
    issue_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.PROVIDER, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    issue = await service.resolve_issue(db, issue, current_user)
    return ApiResponse(message="Issue resolved successfully", data=_issue_response(issue))


@router.get("/{issue_id}/crowdfunding", response_model=ApiResponse[dict])
async def get_crowdfunding(
    issue_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    return ApiResponse(data=await crowdfunding.crowdfunding_details(db, issue, current_user))


@router.post("/{issue_id}/crowdfunding", response_model=ApiResponse[dict])
async def enable_crowdfunding(
    issue_id: uuid.UUID,
    body: CrowdfundingRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    await crowdfunding.enable_crowdfunding(db, issue, current_user, body.target_amount, body.deadline)
    return ApiResponse(
        message="Crowdfunding enabled",
        data=await crowdfunding.crowdfunding_details(db, issue, current_user),
    )


@router.post(
    "/{issue_id}/crowdfunding/contribute",
    response_model=ApiResponse[ContributionResponse],
    status_code=201,
)
async def contribute(
    issue_id: uuid.UUID,
    body: ContributionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    issue = await service.get_issue_or_404(db, issue_id)
    contribution = await crowdfunding.contribute(
        db,
        issue,
        current_user,
        body.amount,
        message=body.message,
        is_anonymous=body.is_anonymous,
        payment_method=body.payment_method,
        transaction_id=body.transaction_id,
    )
    return ApiResponse(
        message="Contribution recorded",
        data=ContributionResponse(
            id=contribution.id,
            issue_id=issue.id,
            amount=contribution.amount,
            is_anonymous=contribution.is_anonymous,
            transaction_id=contribution.transaction_id,
            raised_amount=issue.crowdfunding_raised,
            created_at=isoformat(contribution.created_at),
        ),
    )


def _issue_response(issue: Issue) -> IssueResponse:
    return IssueResponse(
        id=issue.id,
        title=issue.title,
        description=issue.description,
        category_id=issue.category_id,
        location=Location(
            address=issue.location_address, lat=issue.location_lat, lng=issue.location_lng
        ),
        priority=issue.priority,
        status=issue.status,
        consumer_id=issue.consumer_id,
        assigned_provider_id=issue.assigned_provider_id,
        images=issue.images or [],
        estimated_cost=issue.estimated_cost,
        upvotes=issue.upvotes,
        views_count=issue.views_count,
        crowdfunding_enabled=issue.crowdfunding_enabled,
        resolved_at=isoformat(issue.resolved_at),
        created_at=isoformat(issue.created_at),
        updated_at=isoformat(issue.updated_at),
    )
