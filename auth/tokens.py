"""
auth/tokens.py -- Password hashing, temporary passwords, and JWT issue/verify.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the account id ("sub", a
       string as RFC 7519 requires) and the issue time ("iat", a NumericDate
       that keeps its microsecond fraction).
       Role and permissions are NOT embedded -- they are read from the store
       on every request so an admin edit takes effect immediately.

  Revocation without a deny-list: verify_access_token() rejects a token whose
       iat is strictly earlier than the account's password_changed_at. Both
       sides keep microseconds, so a token minted a moment before a change
       fails while the token handed out right after it verifies.

  Passwords: bcrypt used directly (no passlib). The cost factor comes from
       Settings.bcrypt_rounds. _DUMMY_HASH enables timing equalization in
       AccountGuard.authenticate() so response time does not reveal whether
       an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(), validated at startup.

Layer rule: no imports from api/ or records/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

logger = logging.getLogger("tabitha.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters; longer multibyte input is truncated by bcrypt itself.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8")[:72], salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash. False on a malformed hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("tabitha_timing_dummy")


def verify_dummy(plain: str) -> None:
    """Burn one bcrypt comparison for an unknown email."""
    verify_password(plain, _DUMMY_HASH)


_SPECIALS = "@$%&"


def generate_temporary_password(first_name: str, last_name: str) -> str:
    """Return a one-time password handed to a newly created or reset account.

    Shape: PREFIX-<initials><4 digits><special><3 lowercase>, e.g. TH-AO4821@kqz.
    It satisfies the password policy (upper, lower, digit, special, >= 8) and
    the account is flagged password_must_change, so it is only ever used once.
    """
    initials = f"{(first_name or 'X')[0]}{(last_name or 'X')[0]}".upper()
    digits = f"{secrets.randbelow(10_000):04d}"
    special = secrets.choice(_SPECIALS)
    tail = "".join(secrets.choice(string.ascii_lowercase) for _ in range(3))
    return f"{_settings.temp_password_prefix}-{initials}{digits}{special}{tail}"


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class InvalidTokenError(Exception):
    """Token verification failed. code is machine-readable, message is safe to return."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class TokenClaims:
    account_id: int
    issued_at: float  # epoch seconds, microsecond fraction


def create_access_token(account_id: int, issued_at: datetime | None = None, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for an account.

    Args:
        account_id:     Primary key of the account.
        issued_at:      Override the issue time (tests use this to mint a token
                        that predates a password change). Defaults to now.
        expire_seconds: Token lifetime. 0 (default) uses
                        Settings.token_expire_seconds (7 days).
    """
    issued = issued_at or datetime.now(timezone.utc)
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    payload = {
        "sub": str(account_id),
        "iat": issued.timestamp(),
        "exp": int((issued + timedelta(seconds=duration)).timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    """Check signature and expiry. Raises InvalidTokenError on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise InvalidTokenError("token_expired", "Your token has expired. Please log in again.") from exc
    except JWTError as exc:
        raise InvalidTokenError("invalid_token", "Invalid token. Please log in again.") from exc
    try:
        return TokenClaims(account_id=int(payload["sub"]), issued_at=float(payload["iat"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError("invalid_token", "Invalid token. Please log in again.") from exc


def password_changed_after(account: Account, issued_at: float) -> bool:
    """Return True if the account's password changed after a token was issued."""
    if not account.password_changed_at:
        return False
    changed = datetime.fromisoformat(account.password_changed_at)
    if changed.tzinfo is None:
        changed = changed.replace(tzinfo=timezone.utc)
    return issued_at < changed.timestamp()


def verify_access_token(store: AccountStore, token: str) -> tuple[TokenClaims, Account]:
    """Full verification: signature, expiry, account existence, active flag, password change.

    Each failure raises InvalidTokenError with a distinct code so the
    dependency layer can log the cause while returning 401 to the client.
    """
    claims = decode_access_token(token)
    account = store.get_by_id(claims.account_id)
    if account is None:
        raise InvalidTokenError("account_not_found", "The account belonging to this token no longer exists.")
    if not account.is_active:
        raise InvalidTokenError(
            "account_inactive", "Your account has been deactivated. Please contact an administrator."
        )
    if password_changed_after(account, claims.issued_at):
        raise InvalidTokenError("password_changed", "Password recently changed. Please log in again.")
    return claims, account
