"""
auth/models.py -- Domain dataclass for staff accounts.

Pattern: Data class (pure data container, zero logic). Mirrors records/models.py
-- dataclasses own domain shape; stores, the guard and routes do the work.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Account:
    """One staff member with system access.

    employee_id is assigned by AccountStore.create_account() and is None
    before insert. hashed_password is only ever written by create_account()
    and change_password(); update_account() refuses to touch it.

    permissions holds the explicit permission strings stored on the record.
    The effective set is computed by auth.policy (role defaults plus these).

    Timestamps are ISO 8601 strings in UTC. Dates (date_of_birth, date_hired)
    are YYYY-MM-DD strings.
    """

    email: str
    first_name: str
    last_name: str
    role: str = "staff"  # super_admin | admin | manager | staff | volunteer | read_only
    id: int | None = None
    employee_id: str | None = None
    hashed_password: str | None = None
    permissions: list[str] = field(default_factory=list)
    is_active: bool = True
    password_must_change: bool = True
    password_changed_at: str | None = None

    # Lockout state (maintained by auth.guard.AccountGuard)
    login_attempts: int = 0
    account_locked: bool = False
    account_locked_until: str | None = None
    last_login: str | None = None

    # Personal
    phone: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    marital_status: str = "Single"
    nin: str | None = None
    address: dict = field(default_factory=dict)
    emergency_contact: dict = field(default_factory=dict)
    photo_url: str | None = None

    # Employment
    position: str | None = None
    department: str | None = None
    date_hired: str | None = None
    employment_status: str = "Active"
    employment_type: str = "Full-time"
    salary: float | None = None

    # Audit
    created_by: int | None = None  # None for accounts seeded from the CLI
    last_modified_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
