from fastapi import APIRouter

from urbifix.api.v1.admin import router as admin_router
from urbifix.api.v1.auth import router as auth_router
from urbifix.api.v1.bookings import router as bookings_router
from urbifix.api.v1.categories import router as categories_router
from urbifix.api.v1.chat import router as chat_router
from urbifix.api.v1.dashboard import router as dashboard_router
from urbifix.api.v1.issues import router as issues_router
from urbifix.api.v1.notifications import router as notifications_router
from urbifix.api.v1.proposals import router as proposals_router
from urbifix.api.v1.providers import router as providers_router
from urbifix.api.v1.services import router as services_router

api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(categories_router)
api_router.include_router(services_router)
api_router.include_router(providers_router)
api_router.include_router(issues_router)
api_router.include_router(bookings_router)
api_router.include_router(proposals_router)
api_router.include_router(chat_router)
api_router.include_router(notifications_router)
api_router.include_router(dashboard_router)
api_router.include_router(admin_router)
