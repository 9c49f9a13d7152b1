"""
auth/guard.py -- Failed-login tracking and temporary lockout.

State machine per account (evaluated synchronously inside POST /auth/login,
no background timer):

  Normal + failed attempt   -> attempts += 1; at max_attempts -> Locked
                               with locked_until = now + lockout window
  Normal + success          -> attempts = 0, last_login = now
  Locked, now < locked_until -> AccountLockedError (remaining minutes),
                               counter untouched, password never checked
  Locked, now >= locked_until -> lazily reset to Normal, then evaluate
  Any state + admin unlock  -> Normal, attempts = 0

The counter increment is a single atomic UPDATE in AccountStore, so
concurrent failures cannot under-count.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import verify_dummy, verify_password

logger = logging.getLogger("tabitha.auth")


class LoginError(Exception):
    """Base class for login failures. status/code/message map straight onto the HTTP error."""

    status_code = 401
    code = "login_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidCredentialsError(LoginError):
    code = "bad_credentials"

    def __init__(self) -> None:
        super().__init__("Incorrect email or password.")


class AccountDisabledError(LoginError):
    code = "account_inactive"

    def __init__(self) -> None:
        super().__init__("Your account has been deactivated. Please contact an administrator.")


class AccountLockedError(LoginError):
    status_code = 423
    code = "account_locked"

    def __init__(self, remaining_minutes: int) -> None:
        self.remaining_minutes = remaining_minutes
        super().__init__(f"Account locked. Try again in {remaining_minutes} minutes.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse(ts: str | None) -> datetime | None:
    if not ts:
        return None
    dt = datetime.fromisoformat(ts)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class AccountGuard:
    """Login-attempt policy over an AccountStore.

    clock is injectable so tests can step past the lockout window without
    sleeping.
    """

    def __init__(
        self,
        store: AccountStore,
        max_attempts: int = 5,
        lockout_minutes: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.lockout = timedelta(minutes=lockout_minutes)
        self.clock = clock

    def authenticate(self, email: str, password: str) -> Account:
        """Run one login attempt through the state machine and return the account.

        Raises InvalidCredentialsError, AccountLockedError or
        AccountDisabledError. Unknown emails still cost one bcrypt
        comparison so response time does not reveal which emails exist.
        """
        account = self.store.get_by_email(email)
        if account is None:
            verify_dummy(password)
            raise InvalidCredentialsError()

        account = self.ensure_not_locked(account)

        if not verify_password(password, account.hashed_password or ""):
            self.record_failure(account)
            raise InvalidCredentialsError()

        if not account.is_active:
            raise AccountDisabledError()

        self.store.record_successful_login(account.id)
        return self.store.get_by_id(account.id) or account

    def ensure_not_locked(self, account: Account) -> Account:
        """Raise while a lock is in force; clear an expired lock and return the fresh account."""
        if not account.account_locked:
            return account
        now = self.clock()
        locked_until = _parse(account.account_locked_until)
        if locked_until is not None and now < locked_until:
            remaining = math.ceil((locked_until - now).total_seconds() / 60)
            raise AccountLockedError(max(remaining, 1))
        self.store.clear_lockout(account.id)
        logger.info("Lockout expired for account %s", account.employee_id)
        return self.store.get_by_id(account.id) or account

    def record_failure(self, account: Account) -> Account:
        locked_until = (self.clock() + self.lockout).isoformat()
        updated = self.store.record_failed_login(account.id, self.max_attempts, locked_until)
        if updated is not None and updated.account_locked and not account.account_locked:
            logger.warning(
                "Account %s locked after %d failed login attempts", account.employee_id, updated.login_attempts
            )
        return updated or account

    def unlock(self, account_id: int) -> bool:
        """Administrative unlock: back to Normal with a zeroed counter."""
        unlocked = self.store.clear_lockout(account_id)
        if unlocked:
            logger.info("Account %s unlocked by administrator", account_id)
        return unlocked

    def is_locked(self, account: Account) -> bool:
        """True while a lock is in force at the guard's current time."""
        if not account.account_locked:
            return False
        locked_until = _parse(account.account_locked_until)
        return locked_until is None or self.clock() < locked_until
