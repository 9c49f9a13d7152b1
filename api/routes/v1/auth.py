"""
api/routes/v1/auth.py -- Authentication, self-service and account administration endpoints.

Routes:
  POST  /api/v1/auth/login            -- email + password login; returns a bearer token
  POST  /api/v1/auth/logout           -- acknowledges logout (requires auth)
  GET   /api/v1/auth/me               -- current account with effective permissions
  PATCH /api/v1/auth/updatePassword   -- change own password; returns a fresh token
  PATCH /api/v1/auth/updateMe         -- edit own name, phone and address
  POST  /api/v1/auth/accounts         -- create a staff account (admin, super_admin)
  GET   /api/v1/auth/accounts         -- paged account listing (admin, super_admin)
  PATCH /api/v1/auth/accounts/{id}    -- activate / deactivate / unlock / reset_password

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT) on top of the
  account lockout in auth.guard. Unknown email and wrong password return the
  same message. Login responses carry Cache-Control: no-store.
  Tokens are stateless: logout is client-side, and a password change
  invalidates every earlier token through password_changed_at.
  Role escalation: an actor may only grant roles at or below their own, and
  only a super_admin may touch a super_admin account.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    AccountAction,
    AccountActionEnum,
    AccountActionResult,
    AccountCreate,
    AccountCreated,
    AccountOut,
    AccountStatusFilter,
    Envelope,
    LoginCredentials,
    LoginData,
    LoginRequest,
    MessageResponse,
    Pagination,
    PasswordUpdate,
    ProfileUpdate,
    RoleEnum,
    TokenData,
)
from auth.dependencies import get_current_account, require_roles
from auth.guard import AccountGuard, LoginError
from auth.models import Account
from auth.policy import can_assign_role, can_manage_account, default_permissions, normalize_role
from auth.store import AccountStore
from auth.tokens import create_access_token, generate_temporary_password, verify_password
from core.config import get_settings
from core.constants import Department

logger = logging.getLogger("tabitha.api")

_settings = get_settings()

# Auth policy:
# - POST  /auth/login:           public
# - POST  /auth/logout, GET /auth/me, PATCH /auth/updatePassword, PATCH /auth/updateMe: any authenticated account
# - POST/GET/PATCH /auth/accounts*: admin or super_admin (require_roles)
router = APIRouter()

_admins = require_roles("admin", "super_admin")


def _no_store(response: JSONResponse) -> JSONResponse:
    response.headers["Cache-Control"] = "no-store"
    return response


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "No account found with that ID."})


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=Envelope[LoginData])
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    AccountGuard.authenticate() owns the lockout state machine and timing
    equalization; this handler only maps its outcome onto HTTP.
    """
    guard: AccountGuard = request.app.state.guard
    try:
        account = guard.authenticate(body.email.lower(), body.password)
    except LoginError as exc:
        logger.info("Login failed for %s: %s", body.email.lower(), exc.code)
        return _no_store(
            JSONResponse(
                status_code=exc.status_code,
                content={"status": "fail", "code": exc.code, "message": exc.message},
            )
        )

    token = create_access_token(account.id)
    payload = Envelope[LoginData](
        data=LoginData(
            token=token,
            expires_in=_settings.token_expire_seconds,
            must_change_password=account.password_must_change,
            account=AccountOut.from_account(account),
        ),
        message="Please change your password." if account.password_must_change else None,
    )
    logger.info("Login succeeded for %s", account.employee_id)
    return _no_store(JSONResponse(status_code=200, content=payload.model_dump(mode="json", exclude_none=True)))


# ---------------------------------------------------------------------------
# Authenticated self-service
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(account: Account = Depends(get_current_account)) -> MessageResponse:
    """Tokens are stateless; the client discards its copy."""
    return MessageResponse(message="Logged out successfully.")


@router.get("/auth/me", response_model=Envelope[AccountOut])
def me(account: Account = Depends(get_current_account)) -> Envelope[AccountOut]:
    return Envelope[AccountOut](data=AccountOut.from_account(account))


@router.patch("/auth/updatePassword", response_model=Envelope[TokenData])
def update_password(
    request: Request, body: PasswordUpdate, account: Account = Depends(get_current_account)
) -> Envelope[TokenData]:
    """Change the caller's own password and return a token issued after the change.

    password_current is mandatory unless the account is still flagged
    password_must_change. Every token issued before the change stops verifying.
    """
    store: AccountStore = request.app.state.account_store
    if body.password_current is None:
        if not account.password_must_change:
            raise HTTPException(
                status_code=400,
                detail={"code": "current_password_required", "message": "Please provide your current password."},
            )
    elif not verify_password(body.password_current, account.hashed_password or ""):
        raise HTTPException(
            status_code=401,
            detail={"code": "wrong_password", "message": "Your current password is wrong."},
        )
    if verify_password(body.password, account.hashed_password or ""):
        raise HTTPException(
            status_code=400,
            detail={"code": "password_reused", "message": "New password must differ from the current one."},
        )
    store.change_password(account.id, body.password, must_change=False, modified_by=account.id)
    logger.info("Password changed for %s", account.employee_id)
    token = create_access_token(account.id)
    return Envelope[TokenData](
        data=TokenData(token=token, expires_in=_settings.token_expire_seconds),
        message="Password updated successfully.",
    )


@router.patch("/auth/updateMe", response_model=Envelope[AccountOut])
def update_me(
    request: Request, body: ProfileUpdate, account: Account = Depends(get_current_account)
) -> Envelope[AccountOut]:
    """Edit the caller's own profile. Password, role and permissions are not accepted here."""
    store: AccountStore = request.app.state.account_store
    fields = body.model_dump(mode="json", exclude_unset=True)
    if fields:
        store.update_account(account.id, modified_by=account.id, **fields)
    updated = store.get_by_id(account.id)
    return Envelope[AccountOut](data=AccountOut.from_account(updated))


# ---------------------------------------------------------------------------
# Account administration (admin, super_admin)
# ---------------------------------------------------------------------------


@router.post("/auth/accounts", response_model=Envelope[AccountCreated], status_code=201)
def create_account(
    request: Request, body: AccountCreate, actor: Account = Depends(_admins)
) -> Envelope[AccountCreated]:
    """Create a staff account with a server-generated temporary password.

    The temporary password is returned once, here, and the account must
    change it on first login. Permissions are the role's defaults plus any
    extras in the request.
    """
    store: AccountStore = request.app.state.account_store
    role = body.role.value
    if not can_assign_role(actor.role, role):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": f"You cannot create an account with role '{role}'."},
        )
    if store.email_exists(body.email):
        raise HTTPException(
            status_code=409,
            detail={"code": "duplicate_email", "message": "An account with this email already exists."},
        )

    permissions = default_permissions(role)
    permissions += [p.value for p in body.permissions if p.value not in permissions]
    fields = body.model_dump(mode="json", exclude_none=True, exclude={"role", "permissions"})
    temporary_password = generate_temporary_password(body.first_name, body.last_name)
    try:
        account_id = store.create_account(
            Account(role=role, permissions=permissions, created_by=actor.id, **fields),
            temporary_password,
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "duplicate", "message": "An account with this email or NIN already exists."},
        ) from exc

    created = store.get_by_id(account_id)
    logger.info("Account %s created by %s", created.employee_id, actor.employee_id)
    return Envelope[AccountCreated](
        data=AccountCreated(
            account=AccountOut.from_account(created),
            login_credentials=LoginCredentials(
                email=created.email,
                employee_id=created.employee_id,
                temporary_password=temporary_password,
            ),
        ),
        message="Account created. Share the temporary password with the staff member securely.",
    )


@router.get("/auth/accounts", response_model=Envelope[list[AccountOut]])
def list_accounts(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None, max_length=100),
    role: RoleEnum | None = None,
    status: AccountStatusFilter | None = None,
    department: Department | None = None,
    actor: Account = Depends(_admins),
) -> Envelope[list[AccountOut]]:
    store: AccountStore = request.app.state.account_store
    accounts, total = store.list_accounts(
        page=page,
        limit=limit,
        search=search,
        role=role.value if role else None,
        status=status.value if status else None,
        department=department.value if department else None,
    )
    return Envelope[list[AccountOut]](
        data=[AccountOut.from_account(a) for a in accounts],
        results=len(accounts),
        pagination=Pagination.build(page, limit, total),
    )


@router.patch("/auth/accounts/{account_pk}", response_model=Envelope[AccountActionResult])
def account_action(
    request: Request, account_pk: int, body: AccountAction, actor: Account = Depends(_admins)
) -> Envelope[AccountActionResult]:
    """Apply one administrative action to an account.

    Rules:
      - nobody may deactivate their own account
      - only a super_admin may act on a super_admin
      - activate and unlock both clear a login lockout
      - reset_password returns a new temporary password and forces a change
    """
    store: AccountStore = request.app.state.account_store
    guard: AccountGuard = request.app.state.guard
    target = store.get_by_id(account_pk)
    if target is None:
        raise _not_found()
    if not can_manage_account(actor.role, target.role):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only a super admin can modify a super admin account."},
        )

    credentials = None
    action = body.action
    if action is AccountActionEnum.deactivate:
        if target.id == actor.id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
            )
        store.deactivate(target.id, modified_by=actor.id)
    elif action is AccountActionEnum.activate:
        store.update_account(target.id, modified_by=actor.id, is_active=True, employment_status="Active")
        guard.unlock(target.id)
    elif action is AccountActionEnum.unlock:
        guard.unlock(target.id)
    elif action is AccountActionEnum.reset_password:
        temporary_password = generate_temporary_password(target.first_name, target.last_name)
        store.change_password(target.id, temporary_password, must_change=True, modified_by=actor.id)
        guard.unlock(target.id)
        credentials = LoginCredentials(
            email=target.email, employee_id=target.employee_id, temporary_password=temporary_password
        )

    logger.info(
        "Account action %s on %s by %s (%s)",
        action.value,
        target.employee_id,
        actor.employee_id,
        normalize_role(actor.role),
    )
    return Envelope[AccountActionResult](
        data=AccountActionResult(
            action=action.value,
            account=AccountOut.from_account(store.get_by_id(target.id)),
            login_credentials=credentials,
        )
    )
