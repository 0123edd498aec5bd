from fastapi import APIRouter

from ninofi.api.v1.admin import router as admin_router
from ninofi.api.v1.applications import router as applications_router
from ninofi.api.v1.auth import router as auth_router
from ninofi.api.v1.checkins import router as checkins_router
from ninofi.api.v1.contracts import router as contracts_router
from ninofi.api.v1.disputes import admin_router as admin_disputes_router
from ninofi.api.v1.disputes import router as disputes_router
from ninofi.api.v1.escrow import router as escrow_router
from ninofi.api.v1.milestones import router as milestones_router
from ninofi.api.v1.notifications import router as notifications_router
from ninofi.api.v1.payouts import router as payouts_router
from ninofi.api.v1.projects import router as projects_router
from ninofi.api.v1.reviews import router as reviews_router

v1_router = APIRouter()

v1_router.include_router(auth_router)
v1_router.include_router(projects_router)
v1_router.include_router(milestones_router)
v1_router.include_router(escrow_router)
v1_router.include_router(checkins_router)
v1_router.include_router(applications_router)
v1_router.include_router(contracts_router)
v1_router.include_router(notifications_router)
v1_router.include_router(disputes_router)
v1_router.include_router(reviews_router)
v1_router.include_router(payouts_router)
v1_router.include_router(admin_router)
v1_router.include_router(admin_disputes_router)
