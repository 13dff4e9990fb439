from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from crm_contracts.config import settings
from crm_contracts.services.contracts.report import ContractsReportService, get_contracts_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(service: ContractsReportService = Depends(get_contracts_service)):
    """Readiness check endpoint that includes database connectivity."""
    if not service.repository.ping():
        raise HTTPException(status_code=503, detail="Database is not available")

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if settings.database_url else "not configured",
    }
