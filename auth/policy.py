"""
auth/policy.py -- Role hierarchy, default permissions and the access decision.

Every protected handler reaches authorize() through a FastAPI dependency
(auth.dependencies.require_capability). No handler compares role names or
permission strings on its own.

Decision order for authorize(role, permissions, capability):
  1. super_admin (or the legacy spelling "superadmin")  -> allow
  2. the literal permission "all"                       -> allow
  3. admin                                              -> allow (privileged bypass)
  4. manage_<module> in the effective permission set    -> allow
  5. the action-specific permission (view_/create_/update_/export_<module>)
     in the effective permission set                   -> allow
  6. otherwise                                          -> deny

Effective permissions = role defaults UNION the explicit permissions stored on
the account. Explicit permissions only ever add; they never revoke a default.

Layer rule: pure functions over strings. No imports from api/ or records/,
no database access.
"""

from __future__ import annotations

from dataclasses import dataclass

# Highest privilege first. The index is the rank (lower = more privileged).
ROLES: tuple[str, ...] = ("super_admin", "admin", "manager", "staff", "volunteer", "read_only")

_ROLE_ALIASES = {"superadmin": "super_admin"}

PRIVILEGED_ROLES = frozenset({"super_admin", "admin"})

MODULES: tuple[str, ...] = ("children", "staff", "reports", "settings")
ACTIONS: tuple[str, ...] = ("read", "create", "update", "delete", "export")

PERMISSIONS: tuple[str, ...] = (
    "all",
    "manage_children",
    "view_children",
    "update_children",
    "create_children",
    "manage_staff",
    "view_staff",
    "update_staff",
    "create_staff",
    "view_reports",
    "create_reports",
    "export_reports",
    "manage_settings",
    "view_settings",
)

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "super_admin": ("all",),
    "admin": (
        "manage_children",
        "manage_staff",
        "view_reports",
        "create_reports",
        "export_reports",
        "view_settings",
    ),
    "manager": ("manage_children", "view_staff", "update_staff", "view_reports", "create_reports"),
    "staff": ("view_children", "create_children", "update_children", "view_staff", "create_reports"),
    "volunteer": ("view_children",),
    "read_only": ("view_children", "view_reports"),
}

# delete has no verb of its own; only manage_<module> grants it.
_ACTION_VERBS = {"read": "view", "create": "create", "update": "update", "export": "export"}


@dataclass(frozen=True)
class Capability:
    """A (module, action) pair a handler requires, e.g. Capability("children", "update")."""

    module: str
    action: str

    def __post_init__(self) -> None:
        if self.module not in MODULES:
            raise ValueError(f"Unknown module: {self.module!r}")
        if self.action not in ACTIONS:
            raise ValueError(f"Unknown action: {self.action!r}")

    def __str__(self) -> str:
        return f"{self.action} {self.module}"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


def normalize_role(role: str) -> str:
    """Map legacy spellings onto the canonical role names."""
    return _ROLE_ALIASES.get(role, role)


def role_rank(role: str) -> int:
    """Return the rank of a role (0 = most privileged). Unknown roles rank last."""
    role = normalize_role(role)
    return ROLES.index(role) if role in ROLES else len(ROLES)


def default_permissions(role: str) -> list[str]:
    """Return a fresh list of the default permissions for a role."""
    return list(ROLE_PERMISSIONS.get(normalize_role(role), ()))


def effective_permissions(role: str, permissions) -> set[str]:
    return set(ROLE_PERMISSIONS.get(normalize_role(role), ())) | set(permissions or ())


def can_assign_role(actor_role: str, target_role: str) -> bool:
    """An actor may grant any role at or below their own rank, never above it."""
    if not is_privileged(actor_role):
        return False
    return role_rank(target_role) >= role_rank(actor_role)


def can_manage_account(actor_role: str, target_role: str) -> bool:
    """Only a super-admin may modify another super-admin."""
    if normalize_role(target_role) == "super_admin":
        return normalize_role(actor_role) == "super_admin"
    return is_privileged(actor_role)


def is_privileged(role: str) -> bool:
    return normalize_role(role) in PRIVILEGED_ROLES


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


def authorize(role: str, permissions, capability: Capability) -> Decision:
    """Decide whether an account with this role and permission set holds capability."""
    role = normalize_role(role)
    if role == "super_admin":
        return Decision(True, "super_admin role")
    granted = effective_permissions(role, permissions)
    if "all" in granted:
        return Decision(True, "permission 'all'")
    if role == "admin":
        return Decision(True, "admin role")
    manage = f"manage_{capability.module}"
    if manage in granted:
        return Decision(True, f"permission '{manage}'")
    verb = _ACTION_VERBS.get(capability.action)
    if verb is not None:
        specific = f"{verb}_{capability.module}"
        if specific in granted:
            return Decision(True, f"permission '{specific}'")
    return Decision(False, f"Role '{role}' is not permitted to {capability}.")


def authorize_permission(role: str, permissions, permission: str) -> Decision:
    """Evaluate a raw permission string such as "manage_staff" or "view_reports".

    Splits the string into verb and module and defers to authorize(), so both
    entry points share one policy.
    """
    if permission == "all":
        role = normalize_role(role)
        allowed = role == "super_admin" or "all" in effective_permissions(role, permissions)
        return Decision(allowed, "full access" if allowed else f"Role '{role}' does not hold 'all'.")
    verb, _, module = permission.partition("_")
    if verb == "manage":
        # manage_<module> is only satisfied by itself or a bypass, so ask for delete.
        return authorize(role, permissions, Capability(module, "delete"))
    action = {v: a for a, v in _ACTION_VERBS.items()}.get(verb)
    if action is None or module not in MODULES:
        raise ValueError(f"Unknown permission: {permission!r}")
    return authorize(role, permissions, Capability(module, action))
