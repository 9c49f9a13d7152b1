"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and access control.

Authentication: Authorization: Bearer <token> header only. The API is
consumed by a separate front-end, so there is no cookie session.

  get_current_account()        -- 401 unless the token fully verifies
  require_roles(*roles)        -- coarse role gate (archive a child, deactivate staff)
  require_capability(mod, act) -- fine-grained gate through auth.policy.authorize()

Each dependency returns the authenticated Account so handlers can use it
for audit stamps (created_by / last_modified_by).

Layer rule: no imports from api/ or records/. This module may import from
fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.models import Account
from auth.policy import Capability, authorize, normalize_role
from auth.store import AccountStore
from auth.tokens import InvalidTokenError, verify_access_token

logger = logging.getLogger("tabitha.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_account(request: Request) -> Account:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    The failure code tells the client why (expired, password changed,
    deactivated) so it can decide whether to send the user back to login.
    The verified account is cached on request.state, so router-level and
    handler-level dependencies verify the token once per request.
    """
    cached = getattr(request.state, "account", None)
    if cached is not None:
        return cached
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "You are not logged in. Please log in to get access."},
        )
    store: AccountStore = request.app.state.account_store
    try:
        _claims, account = verify_access_token(store, token)
    except InvalidTokenError as exc:
        logger.info("Rejected token on %s %s: %s", request.method, request.url.path, exc.code)
        raise HTTPException(status_code=401, detail={"code": exc.code, "message": exc.message}) from exc
    request.state.account = account
    return account


def require_roles(*roles: str):
    """Return a dependency that admits only accounts whose role is in roles.

    Use as:
        @router.delete("/children/{child_pk}")
        def archive(account: Account = Depends(require_roles("admin", "super_admin"))): ...
    """
    allowed = {normalize_role(r) for r in roles}

    def dependency(request: Request) -> Account:
        account = get_current_account(request)
        if normalize_role(account.role) not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "You do not have permission to perform this action."},
            )
        return account

    return dependency


def require_capability(module: str, action: str):
    """Return a dependency that consults the access policy for (module, action)."""
    capability = Capability(module, action)

    def dependency(request: Request) -> Account:
        account = get_current_account(request)
        decision = authorize(account.role, account.permissions, capability)
        if not decision.allowed:
            logger.info("Denied %s for account %s: %s", capability, account.employee_id, decision.reason)
            raise HTTPException(status_code=403, detail={"code": "forbidden", "message": decision.reason})
        return account

    return dependency
