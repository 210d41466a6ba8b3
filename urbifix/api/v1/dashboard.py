from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from urbifix.api.deps import get_current_user, get_db
from urbifix.common.responses import ApiResponse
from urbifix.core.stats.service import dashboard_for
from urbifix.db.models.user import User

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("", response_model=ApiResponse[dict])
async def get_dashboard(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Role-specific numbers for the signed-in user's landing page."""
    return ApiResponse(data=await dashboard_for(db, current_user))
