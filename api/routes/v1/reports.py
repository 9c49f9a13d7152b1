"""
api/routes/v1/reports.py -- Read-only report endpoints.

Routes:
  GET /api/v1/reports/dashboard     -- headline counts, age/gender split, recent admissions
  GET /api/v1/reports/demographics  -- origin, language, education, 12-month admissions
  GET /api/v1/reports/health        -- genotype, blood type, conditions, immunization coverage

All three need reports:read. The aggregation lives in records/reports.py;
handlers only pick the stores off app.state and wrap the result.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import Envelope
from auth.dependencies import get_current_account, require_capability
from auth.store import AccountStore
from records.reports import dashboard_summary, demographics_report, health_report
from records.store import RecordStore

# Auth policy:
# - every route requires auth (router-level dependency) and reports:read
router = APIRouter(dependencies=[Depends(get_current_account), Depends(require_capability("reports", "read"))])


@router.get("/reports/dashboard", response_model=Envelope[dict])
def dashboard(request: Request) -> Envelope[dict]:
    records: RecordStore = request.app.state.record_store
    accounts: AccountStore = request.app.state.account_store
    return Envelope[dict](data=dashboard_summary(records, accounts.count_active()))


@router.get("/reports/demographics", response_model=Envelope[dict])
def demographics(
    request: Request,
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
) -> Envelope[dict]:
    """Distributions over children admitted between start_date and end_date (inclusive)."""
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_range", "message": "start_date must not be after end_date."},
        )
    records: RecordStore = request.app.state.record_store
    report = demographics_report(
        records,
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
    )
    return Envelope[dict](data=report)


@router.get("/reports/health", response_model=Envelope[dict])
def health(request: Request) -> Envelope[dict]:
    records: RecordStore = request.app.state.record_store
    return Envelope[dict](data=health_report(records))
