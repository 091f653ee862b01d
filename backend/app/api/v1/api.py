"""
Main API router aggregator
"""
from fastapi import APIRouter

from app.api.v1.endpoints import (
    cases,
    hearings,
    case_requests,
    payment,
    notifications,
    health,
)

api_router = APIRouter()

# Include routers
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(hearings.router, prefix="/hearings", tags=["Hearings"])
api_router.include_router(case_requests.router, prefix="/case-requests", tags=["Case Requests"])
api_router.include_router(payment.router, prefix="/payment", tags=["Payment"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])
