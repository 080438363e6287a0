from fastapi import FastAPI

from .audit_logs import router as audit_logs_router
from .notifications import router as notifications_router
from .rate_limits import router as rate_limits_router


def register_routes(app: FastAPI) -> None:
    """Register every API router on the FastAPI application."""

    app.include_router(notifications_router)
    app.include_router(audit_logs_router)
    app.include_router(rate_limits_router)
