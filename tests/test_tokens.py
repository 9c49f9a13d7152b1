"""Unit tests for auth/tokens.py -- hashing, temporary passwords and JWT verification."""

import re
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import (
    InvalidTokenError,
    create_access_token,
    decode_access_token,
    generate_temporary_password,
    hash_password,
    verify_access_token,
    verify_password,
)
from core.config import get_settings


@pytest.fixture
def store():
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


def _create(store: AccountStore, email: str = "ada@tabithahome.org", password: str = "Str0ng@Pass") -> int:
    return store.create_account(Account(email=email, first_name="Ada", last_name="Obi"), password)


class TestPasswordHashing:
    def test_round_trip(self) -> None:
        hashed = hash_password("Str0ng@Pass")
        assert hashed != "Str0ng@Pass"
        assert verify_password("Str0ng@Pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_false_not_error(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_long_password_does_not_raise(self) -> None:
        """bcrypt only reads 72 bytes; longer input must still hash and verify."""
        long_password = "Aa1@" + "x" * 120
        assert verify_password(long_password, hash_password(long_password))


class TestTemporaryPassword:
    def test_shape_satisfies_password_policy(self) -> None:
        temp = generate_temporary_password("ada", "obi")
        assert re.fullmatch(r"TH-AO\d{4}[@$%&][a-z]{3}", temp), f"Unexpected shape: {temp}"

    def test_values_differ(self) -> None:
        assert len({generate_temporary_password("Ada", "Obi") for _ in range(20)}) > 1


class TestTokens:
    def test_login_then_verify_returns_same_account(self, store: AccountStore) -> None:
        account_id = _create(store)
        claims, account = verify_access_token(store, create_access_token(account_id))
        assert claims.account_id == account_id
        assert account.id == account_id

    def test_sub_claim_is_a_string(self) -> None:
        payload = jwt.get_unverified_claims(create_access_token(42))
        assert payload["sub"] == "42"
        assert isinstance(payload["iat"], float)

    def test_issue_time_keeps_microseconds(self) -> None:
        issued = datetime(2025, 3, 1, 8, 30, 15, 250_000, tzinfo=timezone.utc)
        claims = decode_access_token(create_access_token(7, issued_at=issued, expire_seconds=10**9))
        assert claims.issued_at == issued.timestamp()

    def test_expired_token(self) -> None:
        token = create_access_token(1, issued_at=datetime.now(timezone.utc) - timedelta(hours=2), expire_seconds=60)
        with pytest.raises(InvalidTokenError) as info:
            decode_access_token(token)
        assert info.value.code == "token_expired"

    def test_tampered_token(self) -> None:
        header, payload, _signature = create_access_token(1).split(".")
        other_signature = create_access_token(2).split(".")[2]
        with pytest.raises(InvalidTokenError) as info:
            decode_access_token(f"{header}.{payload}.{other_signature}")
        assert info.value.code == "invalid_token"

    def test_token_signed_with_other_key(self) -> None:
        forged = jwt.encode({"sub": "1", "iat": 0, "exp": 9999999999}, "x" * 40, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            decode_access_token(forged)

    def test_missing_sub(self) -> None:
        token = jwt.encode({"iat": 0, "exp": 9999999999}, get_settings().secret_key, algorithm="HS256")
        with pytest.raises(InvalidTokenError) as info:
            decode_access_token(token)
        assert info.value.code == "invalid_token"

    def test_unknown_account(self, store: AccountStore) -> None:
        with pytest.raises(InvalidTokenError) as info:
            verify_access_token(store, create_access_token(999))
        assert info.value.code == "account_not_found"

    def test_inactive_account(self, store: AccountStore) -> None:
        account_id = _create(store)
        store.deactivate(account_id)
        with pytest.raises(InvalidTokenError) as info:
            verify_access_token(store, create_access_token(account_id))
        assert info.value.code == "account_inactive"


class TestPasswordChangeRevocation:
    def test_token_issued_before_change_is_rejected(self, store: AccountStore) -> None:
        account_id = _create(store)
        old = create_access_token(account_id, issued_at=datetime.now(timezone.utc) - timedelta(seconds=60))
        store.change_password(account_id, "N3w@Password")
        with pytest.raises(InvalidTokenError) as info:
            verify_access_token(store, old)
        assert info.value.code == "password_changed"

    def test_token_issued_moments_before_change_is_rejected(self, store: AccountStore) -> None:
        account_id = _create(store)
        old = create_access_token(account_id)
        store.change_password(account_id, "N3w@Password")
        with pytest.raises(InvalidTokenError) as info:
            verify_access_token(store, old)
        assert info.value.code == "password_changed"

    def test_sub_second_boundary(self, store: AccountStore) -> None:
        account_id = _create(store)
        store.change_password(account_id, "N3w@Password")
        changed_at = datetime.fromisoformat(store.get_by_id(account_id).password_changed_at)

        just_before = create_access_token(account_id, issued_at=changed_at - timedelta(milliseconds=1))
        with pytest.raises(InvalidTokenError):
            verify_access_token(store, just_before)
        # Same instant as the change is not "before" it.
        _claims, account = verify_access_token(store, create_access_token(account_id, issued_at=changed_at))
        assert account.id == account_id

    def test_token_issued_after_change_is_accepted(self, store: AccountStore) -> None:
        account_id = _create(store)
        store.change_password(account_id, "N3w@Password")
        _claims, account = verify_access_token(store, create_access_token(account_id))
        assert account.id == account_id
        assert verify_password("N3w@Password", account.hashed_password)
