"""
api/routes/v1/staff.py -- Staff directory and HR record endpoints.

Routes:
  GET    /api/v1/staff                    -- paged, filtered listing (staff:read)
  GET    /api/v1/staff/stats              -- counts by department, role, employment status
  GET    /api/v1/staff/{id}               -- one account (self, or staff:read)
  PATCH  /api/v1/staff/{id}               -- HR/profile fields (staff:update)
  DELETE /api/v1/staff/{id}               -- deactivate (admin, super_admin)
  PATCH  /api/v1/staff/{id}/permissions   -- replace role / explicit permissions (admin, super_admin)

Staff records are the account rows from auth/store.py; there is no second
staff table. Accounts are never deleted, only deactivated.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import AccountOut, Envelope, Pagination, PermissionUpdate, RoleEnum, StaffUpdate
from auth.dependencies import get_current_account, require_capability, require_roles
from auth.models import Account
from auth.policy import Capability, authorize, can_assign_role, normalize_role
from auth.store import AccountStore
from core.constants import Department, EmploymentStatus

logger = logging.getLogger("tabitha.api")

# Auth policy:
# - every route requires auth (router-level dependency)
# - GET /staff/{id} is open to the account itself; everyone else needs staff:read
# - only a super_admin may modify a super_admin (_guard_super_admin)
router = APIRouter(dependencies=[Depends(get_current_account)])

_admins = require_roles("admin", "super_admin")


def _get_or_404(store: AccountStore, staff_pk: int) -> Account:
    account = store.get_by_id(staff_pk)
    if account is None:
        raise HTTPException(
            status_code=404, detail={"code": "not_found", "message": "No staff member found with that ID."}
        )
    return account


def _guard_super_admin(actor: Account, target: Account) -> None:
    """Only a super_admin may modify a super_admin account."""
    if normalize_role(target.role) == "super_admin" and normalize_role(actor.role) != "super_admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only a super admin can modify a super admin account."},
        )


@router.get("/staff", response_model=Envelope[list[AccountOut]])
def list_staff(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: Optional[str] = Query(default=None, max_length=100),
    department: Optional[Department] = None,
    role: Optional[RoleEnum] = None,
    employment_status: Optional[EmploymentStatus] = None,
    is_active: Optional[bool] = None,
    account: Account = Depends(require_capability("staff", "read")),
) -> Envelope[list[AccountOut]]:
    store: AccountStore = request.app.state.account_store
    status = None if is_active is None else ("active" if is_active else "inactive")
    accounts, total = store.list_accounts(
        page=page,
        limit=limit,
        search=search,
        role=role.value if role else None,
        status=status,
        department=department.value if department else None,
        employment_status=employment_status.value if employment_status else None,
    )
    return Envelope[list[AccountOut]](
        data=[AccountOut.from_account(a) for a in accounts],
        results=len(accounts),
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/staff/stats", response_model=Envelope[dict])
def staff_stats(
    request: Request, account: Account = Depends(require_capability("staff", "read"))
) -> Envelope[dict]:
    store: AccountStore = request.app.state.account_store
    return Envelope[dict](data=store.staff_stats())


@router.get("/staff/{staff_pk}", response_model=Envelope[AccountOut])
def get_staff(
    request: Request, staff_pk: int, account: Account = Depends(get_current_account)
) -> Envelope[AccountOut]:
    """Any account may read its own record; other records need staff:read."""
    if staff_pk != account.id:
        decision = authorize(account.role, account.permissions, Capability("staff", "read"))
        if not decision.allowed:
            raise HTTPException(status_code=403, detail={"code": "forbidden", "message": decision.reason})
    store: AccountStore = request.app.state.account_store
    return Envelope[AccountOut](data=AccountOut.from_account(_get_or_404(store, staff_pk)))


@router.patch("/staff/{staff_pk}", response_model=Envelope[AccountOut])
def update_staff(
    request: Request,
    staff_pk: int,
    body: StaffUpdate,
    account: Account = Depends(require_capability("staff", "update")),
) -> Envelope[AccountOut]:
    """Update HR and profile fields. Role and permissions have their own route."""
    store: AccountStore = request.app.state.account_store
    target = _get_or_404(store, staff_pk)
    _guard_super_admin(account, target)
    fields = body.model_dump(mode="json", exclude_unset=True)
    if not fields:
        raise HTTPException(
            status_code=400, detail={"code": "no_changes", "message": "No fields were provided to update."}
        )
    try:
        store.update_account(target.id, modified_by=account.id, **fields)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "duplicate_nin", "message": "Another staff member already has this NIN."},
        ) from exc
    logger.info("Staff record %s updated by %s", target.employee_id, account.employee_id)
    return Envelope[AccountOut](data=AccountOut.from_account(store.get_by_id(target.id)))


@router.delete("/staff/{staff_pk}", response_model=Envelope[AccountOut])
def deactivate_staff(request: Request, staff_pk: int, account: Account = Depends(_admins)) -> Envelope[AccountOut]:
    """Deactivate an account: is_active false, employment_status Terminated. The row is kept."""
    store: AccountStore = request.app.state.account_store
    target = _get_or_404(store, staff_pk)
    if target.id == account.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )
    _guard_super_admin(account, target)
    store.deactivate(target.id, modified_by=account.id)
    logger.info("Staff %s deactivated by %s", target.employee_id, account.employee_id)
    return Envelope[AccountOut](
        data=AccountOut.from_account(store.get_by_id(target.id)), message="Staff member deactivated."
    )


@router.patch("/staff/{staff_pk}/permissions", response_model=Envelope[AccountOut])
def update_permissions(
    request: Request, staff_pk: int, body: PermissionUpdate, account: Account = Depends(_admins)
) -> Envelope[AccountOut]:
    """Replace the explicit permission list and optionally the role.

    The new role must be at or below the actor's own rank.
    """
    store: AccountStore = request.app.state.account_store
    target = _get_or_404(store, staff_pk)
    _guard_super_admin(account, target)
    fields: dict = {"permissions": sorted({p.value for p in body.permissions})}
    if body.role is not None:
        if not can_assign_role(account.role, body.role.value):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"You cannot assign the role '{body.role.value}'."},
            )
        fields["role"] = body.role.value
    store.update_account(target.id, modified_by=account.id, **fields)
    logger.info("Permissions for %s set to %s by %s", target.employee_id, fields, account.employee_id)
    return Envelope[AccountOut](data=AccountOut.from_account(store.get_by_id(target.id)))
