"""API endpoints for the contracts report and lead display numbers."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from crm_contracts.models.lead import LeadFamily
from crm_contracts.services.contracts.errors import ContractsError
from crm_contracts.services.contracts.filters import DateRange
from crm_contracts.services.contracts.identity import parse_row_key
from crm_contracts.services.contracts.lookups import LookupDirectory
from crm_contracts.services.contracts.report import (
    ContractReport,
    ContractsReportService,
    SignedDateChange,
    get_contracts_service,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class SignedDateUpdateRequest(BaseModel):
    """New signed date plus the filter the caller is currently displaying."""

    signed_date: date
    date_from: date | None = Field(default=None, description="Active report filter start.")
    date_to: date | None = Field(default=None, description="Active report filter end.")


class DisplayNumberResponse(BaseModel):
    row_key: str
    display_number: str


@router.get("/contracts", response_model=ContractReport)
async def list_contracts(
    q: str = Query("", description="Name, e-mail, phone or lead number."),
    date_from: date | None = Query(None, description="Inclusive signed-date lower bound."),
    date_to: date | None = Query(None, description="Inclusive signed-date upper bound."),
    service: ContractsReportService = Depends(get_contracts_service),
) -> ContractReport:
    """Search signed leads across the new and legacy tables."""
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=400, detail="date_from must not be after date_to.")
    try:
        directory = LookupDirectory.load(service.repository)
        return service.search(q, DateRange(date_from, date_to), directory=directory)
    except ContractsError as exc:
        logger.error("contracts.api_error", extra={"code": exc.code, "query": q})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


@router.patch("/contracts/{row_key}/signed-date", response_model=SignedDateChange)
async def update_signed_date(
    row_key: str,
    payload: SignedDateUpdateRequest,
    service: ContractsReportService = Depends(get_contracts_service),
) -> SignedDateChange:
    """Write a new signed date and report whether the row still matches the filter."""
    try:
        ref = parse_row_key(row_key)
        service.get_lead(ref)
        return service.update_signed_date(
            ref, payload.signed_date, DateRange(payload.date_from, payload.date_to)
        )
    except ContractsError as exc:
        logger.error("contracts.api_error", extra={"code": exc.code, "row_key": row_key})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


@router.get("/leads/{row_key}/display-number", response_model=DisplayNumberResponse)
async def get_display_number(
    row_key: str,
    service: ContractsReportService = Depends(get_contracts_service),
) -> DisplayNumberResponse:
    try:
        ref = parse_row_key(row_key)
        return DisplayNumberResponse(row_key=ref.row_key, display_number=service.display_number(ref))
    except ContractsError as exc:
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


@router.get("/leads/{row_key}/family", response_model=LeadFamily)
async def get_lead_family(
    row_key: str,
    service: ContractsReportService = Depends(get_contracts_service),
) -> LeadFamily:
    """Master lead and its same-source sub-leads with their display numbers."""
    try:
        return service.lead_family(parse_row_key(row_key))
    except ContractsError as exc:
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


def _map_error_code(code: str) -> int:
    if code == "404_LEAD_NOT_FOUND":
        return status.HTTP_404_NOT_FOUND
    if code == "422_INVALID_LEAD_REFERENCE":
        return 422
    if code == "502_SIGNED_DATE_WRITE":
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR
