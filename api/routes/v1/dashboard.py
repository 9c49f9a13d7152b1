"""
api/routes/v1/dashboard.py -- Headline counts for the landing page.

Returns one small payload for the front-end's stat cards:
  - children: total and Active
  - staff:    total and active accounts

Open to every authenticated account; the figures are counts only, no
personal data. This is a read-only route -- no mutations here.
"""

from fastapi import APIRouter, Depends, Request

from api.models import Envelope
from auth.dependencies import get_current_account
from auth.store import AccountStore
from records.store import RecordStore

# Auth policy:
# - GET /api/v1/dashboard/stats: requires auth, no specific permission
router = APIRouter(dependencies=[Depends(get_current_account)])


@router.get("/dashboard/stats", response_model=Envelope[dict])
def dashboard_stats(request: Request) -> Envelope[dict]:
    """Return child and staff counts.

    Response data:
      children.total   -- every child record, archived included
      children.active  -- current_status Active
      staff.total      -- every account, deactivated included
      staff.active     -- is_active accounts
    """
    records: RecordStore = request.app.state.record_store
    accounts: AccountStore = request.app.state.account_store
    return Envelope[dict](
        data={
            "children": {"total": records.count_children(), "active": records.count_children(status="Active")},
            "staff": {"total": accounts.count_all(), "active": accounts.count_active()},
        }
    )
