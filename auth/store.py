"""
auth/store.py -- SQLAlchemy Core persistence layer for staff accounts.

Pattern: Repository + Data Mapper (same as records/store.py).
AccountStore is the repository; _row_to_account is the mapper. Route,
guard and dependency code never touches SQL directly.

Credential rule: create_account() and change_password() are the only two
methods that call the password hasher. update_account() rejects every
credential or access-state column with ValueError, so a profile edit can
never rehash or overwrite a password by accident.

Security:
  All queries use bound parameters. Column names in update_account() come
  from a fixed whitelist, never from request input.

Layer rule: no imports from api/ or records/. Import from core/ is allowed.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account
from auth.tokens import hash_password
from core.config import get_settings
from core.sequences import SequenceAllocator

logger = logging.getLogger("tabitha.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("employee_id", String(20), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("role", String(20), nullable=False, server_default="staff"),
    Column("permissions", Text),  # JSON array
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("password_must_change", Integer, nullable=False, server_default="1"),
    Column("password_changed_at", String(32)),
    Column("login_attempts", Integer, nullable=False, server_default="0"),
    Column("account_locked", Integer, nullable=False, server_default="0"),
    Column("account_locked_until", String(32)),
    Column("last_login", String(32)),
    Column("phone", String(20)),
    Column("date_of_birth", String(10)),
    Column("gender", String(10)),
    Column("marital_status", String(20), server_default="Single"),
    Column("nin", String(11), unique=True),  # NULLs are distinct, so optional NINs never collide
    Column("address", Text),  # JSON object
    Column("emergency_contact", Text),  # JSON object
    Column("photo_url", Text),
    Column("position", String(50)),
    Column("department", String(50)),
    Column("date_hired", String(10)),
    Column("employment_status", String(20), nullable=False, server_default="Active"),
    Column("employment_type", String(20), nullable=False, server_default="Full-time"),
    Column("salary", Float),
    Column("created_by", Integer),
    Column("last_modified_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Fields update_account() may write. Credentials, lockout state, identifiers
# and audit stamps have dedicated methods.
_PROFILE_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "phone",
        "date_of_birth",
        "gender",
        "marital_status",
        "nin",
        "address",
        "emergency_contact",
        "photo_url",
        "position",
        "department",
        "date_hired",
        "employment_status",
        "employment_type",
        "salary",
        "role",
        "permissions",
        "is_active",
    }
)
_JSON_FIELDS = ("address", "emergency_contact", "permissions")

_SEARCH_COLUMNS = ("first_name", "last_name", "email", "position", "employee_id")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _now().isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(email="a@b.ng", first_name="Ada", last_name="Obi"), "Secret#123")
        account = store.get_by_email("a@b.ng")
        store.close()
    """

    def __init__(self, db_url: str | None = None, employee_id_prefix: str | None = None) -> None:
        settings = get_settings()
        db_url = db_url or settings.database_url
        self.employee_id_prefix = employee_id_prefix or settings.employee_id_prefix
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self.sequences = SequenceAllocator(self.engine)

    # ------------------------------------------------------------------
    # Credential writes (the only hashing paths)
    # ------------------------------------------------------------------

    def create_account(self, account: Account, password: str, year: int | None = None) -> int:
        """Insert a new account, hash its password and return the database ID.

        The employee_id is allocated in the same transaction as the INSERT,
        so concurrent creations never share one. Emails are stored lowercase.

        Raises sqlalchemy.exc.IntegrityError if the email or NIN already exists.
        """
        now = _now()
        year = year or now.year
        hashed = hash_password(password)
        with self.engine.begin() as conn:
            employee_id = self.sequences.allocate(conn, self.employee_id_prefix, year, _accounts.c.employee_id)
            result = conn.execute(
                _accounts.insert().values(
                    employee_id=employee_id,
                    email=account.email.strip().lower(),
                    hashed_password=hashed,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    role=account.role,
                    permissions=json.dumps(account.permissions),
                    is_active=1 if account.is_active else 0,
                    password_must_change=1 if account.password_must_change else 0,
                    password_changed_at=now.isoformat(),
                    phone=account.phone,
                    date_of_birth=account.date_of_birth,
                    gender=account.gender,
                    marital_status=account.marital_status,
                    nin=account.nin,
                    address=json.dumps(account.address),
                    emergency_contact=json.dumps(account.emergency_contact),
                    photo_url=account.photo_url,
                    position=account.position,
                    department=account.department,
                    date_hired=account.date_hired,
                    employment_status=account.employment_status,
                    employment_type=account.employment_type,
                    salary=account.salary,
                    created_by=account.created_by,
                    last_modified_by=account.created_by,
                    created_at=now.isoformat(),
                    updated_at=now.isoformat(),
                )
            )
            account_id = result.inserted_primary_key[0]
        logger.info("Account created: %s (%s, role=%s)", employee_id, account_id, account.role)
        return account_id

    def change_password(
        self, account_id: int, new_password: str, must_change: bool = False, modified_by: int | None = None
    ) -> bool:
        """Hash and store a new password; invalidates every token issued before now.

        password_changed_at is stamped after hashing, at microsecond
        resolution, so only tokens minted after the write verify.
        """
        hashed = hash_password(new_password)
        now = _now()
        values = {
            "hashed_password": hashed,
            "password_changed_at": now.isoformat(),
            "password_must_change": 1 if must_change else 0,
            "updated_at": now.isoformat(),
        }
        if modified_by is not None:
            values["last_modified_by"] = modified_by
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Profile writes
    # ------------------------------------------------------------------

    def update_account(self, account_id: int, modified_by: int | None = None, **fields) -> bool:
        """Update profile, employment or access fields on an existing account.

        Raises ValueError for any field outside the whitelist -- in particular
        hashed_password, email, employee_id and the lockout counters.
        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable through update_account: {sorted(unknown)!r}")
        for name in _JSON_FIELDS:
            if name in fields:
                fields[name] = json.dumps(fields[name] or ({} if name != "permissions" else []))
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = _now_iso()
        if modified_by is not None:
            fields["last_modified_by"] = modified_by
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def deactivate(self, account_id: int, modified_by: int | None = None) -> bool:
        """Terminal state: inactive and employment_status Terminated. Rows are never deleted."""
        return self.update_account(
            account_id, modified_by=modified_by, is_active=False, employment_status="Terminated"
        )

    # ------------------------------------------------------------------
    # Lockout state (driven by auth.guard.AccountGuard)
    # ------------------------------------------------------------------

    def record_failed_login(self, account_id: int, max_attempts: int, locked_until: str) -> Account | None:
        """Atomically increment the failure counter and lock at the threshold.

        A single UPDATE evaluates the new counter value, so two concurrent
        failures cannot both read 4 and both write 5.
        """
        attempts = _accounts.c.login_attempts + 1
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(
                    login_attempts=attempts,
                    account_locked=case((attempts >= max_attempts, 1), else_=_accounts.c.account_locked),
                    account_locked_until=case(
                        (attempts >= max_attempts, locked_until), else_=_accounts.c.account_locked_until
                    ),
                )
            )
            conn.commit()
        return self.get_by_id(account_id)

    def clear_lockout(self, account_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(login_attempts=0, account_locked=0, account_locked_until=None)
            )
            conn.commit()
        return result.rowcount > 0

    def record_successful_login(self, account_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(login_attempts=0, account_locked=0, account_locked_until=None, last_login=_now_iso())
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup (emails are stored lowercase)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email.strip().lower())).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_employee_id(self, employee_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.employee_id == employee_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def first_with_role(self, role: str) -> Account | None:
        """Oldest active account holding role. Used by the CLI seeder."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select()
                .where((_accounts.c.role == role) & (_accounts.c.is_active == 1))
                .order_by(_accounts.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(
        self,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        role: str | None = None,
        status: str | None = None,
        department: str | None = None,
        employment_status: str | None = None,
    ) -> tuple[list[Account], int]:
        """Return one page of accounts plus the total matching count.

        status is "active" or "inactive" (the is_active flag). search is a
        case-insensitive substring match on name, email, position and
        employee_id.
        """
        conditions = []
        if search:
            needle = search.strip()
            conditions.append(or_(*(_accounts.c[name].icontains(needle, autoescape=True) for name in _SEARCH_COLUMNS)))
        if role:
            conditions.append(_accounts.c.role == role)
        if status == "active":
            conditions.append(_accounts.c.is_active == 1)
        elif status == "inactive":
            conditions.append(_accounts.c.is_active == 0)
        if department:
            conditions.append(_accounts.c.department == department)
        if employment_status:
            conditions.append(_accounts.c.employment_status == employment_status)

        query = _accounts.select().where(*conditions)
        count_query = select(func.count()).select_from(_accounts).where(*conditions)
        offset = (max(page, 1) - 1) * limit
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(
                query.order_by(_accounts.c.created_at.desc(), _accounts.c.id.desc()).limit(limit).offset(offset)
            ).fetchall()
        return [_row_to_account(r) for r in rows], total

    def count_active(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts).where(_accounts.c.is_active == 1))
            return result.scalar() or 0

    def count_all(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_accounts)).scalar() or 0

    def staff_stats(self) -> dict:
        """Aggregate counts for GET /staff/stats.

        by_department and by_role only count active accounts; by_employment_status
        covers everyone so terminated and resigned staff remain visible.
        """
        active = _accounts.c.is_active == 1
        with self.engine.connect() as conn:
            dept_rows = conn.execute(
                select(_accounts.c.department, _accounts.c.position, func.count().label("n"))
                .where(active)
                .group_by(_accounts.c.department, _accounts.c.position)
            ).fetchall()
            role_rows = conn.execute(
                select(_accounts.c.role, func.count().label("n")).where(active).group_by(_accounts.c.role)
            ).fetchall()
            status_rows = conn.execute(
                select(_accounts.c.employment_status, func.count().label("n")).group_by(
                    _accounts.c.employment_status
                )
            ).fetchall()
        departments: dict[str, dict] = {}
        for row in dept_rows:
            name = row.department or "Unassigned"
            entry = departments.setdefault(name, {"department": name, "count": 0, "positions": []})
            entry["count"] += row.n
            if row.position and row.position not in entry["positions"]:
                entry["positions"].append(row.position)
        by_status = {row.employment_status: row.n for row in status_rows}
        return {
            "by_department": sorted(departments.values(), key=lambda d: d["count"], reverse=True),
            "by_role": {row.role: row.n for row in role_rows},
            "by_employment_status": by_status,
            "total_staff": sum(by_status.values()),
            "total_active": sum(row.n for row in role_rows),
        }

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        employee_id=row.employee_id,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        permissions=json.loads(row.permissions) if row.permissions else [],
        is_active=bool(row.is_active),
        password_must_change=bool(row.password_must_change),
        password_changed_at=row.password_changed_at,
        login_attempts=row.login_attempts or 0,
        account_locked=bool(row.account_locked),
        account_locked_until=row.account_locked_until,
        last_login=row.last_login,
        phone=row.phone,
        date_of_birth=row.date_of_birth,
        gender=row.gender,
        marital_status=row.marital_status or "Single",
        nin=row.nin,
        address=json.loads(row.address) if row.address else {},
        emergency_contact=json.loads(row.emergency_contact) if row.emergency_contact else {},
        photo_url=row.photo_url,
        position=row.position,
        department=row.department,
        date_hired=row.date_hired,
        employment_status=row.employment_status,
        employment_type=row.employment_type,
        salary=row.salary,
        created_by=row.created_by,
        last_modified_by=row.last_modified_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
