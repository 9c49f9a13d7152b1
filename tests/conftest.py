"""
tests/conftest.py -- Shared test fixtures for the Tabitha Home records API.

This module provides:
  - make_stores(): isolated named shared-memory SQLite stores
  - make_account(): create an account directly in a store and mint its token
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a super_admin token for integration tests
  - png_bytes / pdf_bytes: minimal files that pass the upload signature check

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Both stores share one named DB, as they share one file in production.

Environment must be set before any project import: get_settings() is cached
on first call, DEBUG=true lets it auto-generate SECRET_KEY, BCRYPT_ROUNDS=4
keeps hashing fast and RATE_LIMIT_ENABLED=false stops the login limiter from
tripping across tests.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set before any project import so the cached Settings pick them up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.guard import AccountGuard
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import create_access_token
from records.files import FileStore
from records.store import RecordStore

PASSWORD = "Str0ng@Pass"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.4\n%test document\n"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str) -> tuple[AccountStore, RecordStore]:
    """Create an AccountStore and RecordStore over one named in-memory database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_tabitha_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AccountStore(db_url=url), RecordStore(db_url=url)


def make_account(
    store: AccountStore,
    email: str,
    role: str = "staff",
    permissions: list[str] | None = None,
    password: str = PASSWORD,
    must_change: bool = False,
    **fields,
) -> tuple[int, str]:
    """Create an account and return (account_id, bearer token)."""
    account = Account(
        email=email,
        first_name=fields.pop("first_name", "Test"),
        last_name=fields.pop("last_name", role.title()),
        role=role,
        permissions=permissions if permissions is not None else [],
        password_must_change=must_change,
        **fields,
    )
    account_id = store.create_account(account, password)
    return account_id, create_access_token(account_id)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def child_payload(**overrides) -> dict:
    """A valid POST /children body."""
    body = {
        "first_name": "Amaka",
        "last_name": "Okafor",
        "date_of_birth": "2015-03-14",
        "gender": "Female",
        "genotype": "AA",
        "arrival_circumstances": "Referred by the state social welfare office.",
        "state_of_origin": "Lagos",
        "admission_date": "2023-06-01",
    }
    body.update(overrides)
    return body


def _patch_lifespan(account_store: AccountStore, record_store: RecordStore, upload_dir):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs and a temporary upload directory.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = account_store
        app.state.record_store = record_store
        app.state.guard = AccountGuard(account_store, max_attempts=5, lockout_minutes=30)
        app.state.files = FileStore(upload_dir, max_bytes=1024 * 1024)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    """What an integration test module needs: the client, the stores and a super_admin."""

    client: TestClient
    accounts: AccountStore
    records: RecordStore
    token: str
    uid: int
    tokens: dict[str, str] = field(default_factory=dict)
    ids: dict[str, int] = field(default_factory=dict)


@pytest.fixture(scope="module")
def api_client(request, tmp_path_factory) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness with one account per role already created.

    harness.tokens / harness.ids are keyed by role. The super_admin is also
    exposed as harness.token / harness.uid for brevity.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    accounts, records = make_stores(suffix)
    tokens: dict[str, str] = {}
    ids: dict[str, int] = {}
    for role in ("super_admin", "admin", "manager", "staff", "volunteer", "read_only"):
        ids[role], tokens[role] = make_account(
            accounts,
            f"{role.replace('_', '')}@tabithahome.org",
            role=role,
            permissions=["all"] if role == "super_admin" else None,
        )

    app.router.lifespan_context = _patch_lifespan(accounts, records, tmp_path_factory.mktemp(f"uploads_{suffix}"))

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(
            client=client,
            accounts=accounts,
            records=records,
            token=tokens["super_admin"],
            uid=ids["super_admin"],
            tokens=tokens,
            ids=ids,
        )

    records.close()
    accounts.close()


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES
