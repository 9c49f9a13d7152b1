"""
API request and response models for the Tabitha Home records REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
records/models.py, which own the internal domain representation. Route
handlers map between the two; the from_* factory methods keep that mapping
next to the output models.

Every response uses the same envelope:
  success: {"status": "success", "data": ..., "results"?, "pagination"?, "message"?}
  4xx:     {"status": "fail",  "code": ..., "message": ..., "errors"?: [...]}
  5xx:     {"status": "error", "code": ..., "message": ...}
"""

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import Account
from auth.policy import effective_permissions, normalize_role
from core.constants import (
    NIN_PATTERN,
    PHONE_PATTERN,
    BloodType,
    ChildStatus,
    Department,
    EducationLevel,
    EmploymentStatus,
    EmploymentType,
    Gender,
    Genotype,
    Language,
    MaritalStatus,
    NigerianState,
    Position,
    Religion,
)
from records.models import Attachment, Child
from records.store import age_in_years

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# At least one lowercase, one uppercase, one digit and one of @$!%*?&.
_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"\d"), "one number"),
    (re.compile(r"[@$!%*?&]"), "one special character (@$!%*?&)"),
)

T = TypeVar("T")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def check_password_strength(value: str) -> str:
    missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(value)]
    if missing:
        raise ValueError(f"Password must contain at least {', '.join(missing)}.")
    return value


def _past_date(value: Optional[date]) -> Optional[date]:
    if value is not None and value >= _today():
        raise ValueError("Date must be in the past.")
    return value


def _not_future(value: Optional[date]) -> Optional[date]:
    if value is not None and value > _today():
        raise ValueError("Date cannot be in the future.")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    super_admin = "super_admin"
    admin = "admin"
    manager = "manager"
    staff = "staff"
    volunteer = "volunteer"
    read_only = "read_only"


class PermissionEnum(str, Enum):
    all = "all"
    manage_children = "manage_children"
    view_children = "view_children"
    update_children = "update_children"
    create_children = "create_children"
    manage_staff = "manage_staff"
    view_staff = "view_staff"
    update_staff = "update_staff"
    create_staff = "create_staff"
    view_reports = "view_reports"
    create_reports = "create_reports"
    export_reports = "export_reports"
    manage_settings = "manage_settings"
    view_settings = "view_settings"


class AccountActionEnum(str, Enum):
    activate = "activate"
    deactivate = "deactivate"
    unlock = "unlock"
    reset_password = "reset_password"


class AccountStatusFilter(str, Enum):
    active = "active"
    inactive = "inactive"


class AutocompleteField(str, Enum):
    first_name = "first_name"
    last_name = "last_name"
    medical_conditions = "medical_conditions"


# ---------------------------------------------------------------------------
# Envelope and errors
# ---------------------------------------------------------------------------


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)


class Envelope(BaseModel, Generic[T]):
    """Success envelope. results is set for list payloads, pagination for paged lists."""

    model_config = ConfigDict(frozen=True)

    status: str = "success"
    data: T
    results: Optional[int] = None
    pagination: Optional[Pagination] = None
    message: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "success"
    message: str


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    status: str = "fail"
    code: str
    message: str
    errors: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Nested value objects
# ---------------------------------------------------------------------------


class Address(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    street: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[NigerianState] = None
    lga: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=10)


class EmergencyContact(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    relationship: str = Field(min_length=1, max_length=50)
    phone: str = Field(pattern=PHONE_PATTERN)
    address: Optional[str] = Field(default=None, max_length=200)


class ChildContact(BaseModel):
    """Emergency contact on a child record; every part is optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=100)
    relationship: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class MedicalCondition(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    condition: str = Field(min_length=1, max_length=100)
    diagnosed_date: Optional[date] = None
    current_treatment: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)


class Immunization(BaseModel):
    bcg: bool = False
    polio: bool = False
    dpt: bool = False
    measles: bool = False
    yellow_fever: bool = False
    hepatitis_b: bool = False
    last_updated: Optional[date] = None


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class PasswordUpdate(BaseModel):
    """Request body for PATCH /api/v1/auth/updatePassword.

    password_current may be omitted only while the account is flagged
    password_must_change (first login after creation or an admin reset).
    """

    password_current: Optional[str] = Field(default=None, max_length=128)
    password: str = Field(min_length=8, max_length=128)
    password_confirm: str = Field(max_length=128)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordUpdate":
        if self.password != self.password_confirm:
            raise ValueError("Passwords do not match.")
        return self


_CREDENTIAL_KEYS = ("password", "password_confirm", "password_current", "hashed_password")


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/auth/updateMe -- whitelisted self-service fields only."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    address: Optional[Address] = None

    @model_validator(mode="before")
    @classmethod
    def reject_credentials(cls, data: Any) -> Any:
        if isinstance(data, dict) and any(key in data for key in _CREDENTIAL_KEYS):
            raise ValueError("This route is not for password updates. Please use /auth/updatePassword.")
        return data

    @model_validator(mode="after")
    def names_not_cleared(self) -> "ProfileUpdate":
        for name in ("first_name", "last_name"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared.")
        return self


class _RoleField(BaseModel):
    @field_validator("role", mode="before", check_fields=False)
    @classmethod
    def legacy_role(cls, value: Any) -> Any:
        return normalize_role(value) if isinstance(value, str) else value


class AccountCreate(_RoleField):
    """Request body for POST /api/v1/auth/accounts.

    No password field: the server generates a temporary password, returns it
    once, and flags the account password_must_change.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    role: RoleEnum = RoleEnum.staff
    permissions: list[PermissionEnum] = Field(default_factory=list, max_length=len(PermissionEnum))
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    marital_status: MaritalStatus = MaritalStatus.single
    nin: Optional[str] = Field(default=None, pattern=NIN_PATTERN)
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    position: Optional[Position] = None
    department: Optional[Department] = None
    date_hired: Optional[date] = None
    employment_status: EmploymentStatus = EmploymentStatus.active
    employment_type: EmploymentType = EmploymentType.full_time
    salary: Optional[float] = Field(default=None, ge=0)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("date_of_birth")
    @classmethod
    def born_in_past(cls, value: Optional[date]) -> Optional[date]:
        return _past_date(value)

    @field_validator("date_hired")
    @classmethod
    def hired_not_future(cls, value: Optional[date]) -> Optional[date]:
        return _not_future(value)


class AccountAction(BaseModel):
    """Request body for PATCH /api/v1/auth/accounts/{id}."""

    action: AccountActionEnum


class StaffUpdate(BaseModel):
    """Request body for PATCH /api/v1/staff/{id}.

    Role, permissions and credentials are deliberately absent; they have
    their own endpoints. Unknown keys are rejected with 400.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    marital_status: Optional[MaritalStatus] = None
    nin: Optional[str] = Field(default=None, pattern=NIN_PATTERN)
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    position: Optional[Position] = None
    department: Optional[Department] = None
    date_hired: Optional[date] = None
    employment_status: Optional[EmploymentStatus] = None
    employment_type: Optional[EmploymentType] = None
    salary: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def reject_access_fields(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if any(key in data for key in _CREDENTIAL_KEYS):
                raise ValueError("Passwords cannot be changed through this route.")
            if "role" in data or "permissions" in data:
                raise ValueError("Use PATCH /staff/{id}/permissions to change role or permissions.")
        return data

    @model_validator(mode="after")
    def required_not_cleared(self) -> "StaffUpdate":
        for name in ("first_name", "last_name", "employment_status", "employment_type"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared.")
        return self

    @field_validator("date_of_birth")
    @classmethod
    def born_in_past(cls, value: Optional[date]) -> Optional[date]:
        return _past_date(value)


class PermissionUpdate(_RoleField):
    """Request body for PATCH /api/v1/staff/{id}/permissions. Replaces the explicit permission list."""

    permissions: list[PermissionEnum] = Field(max_length=len(PermissionEnum))
    role: Optional[RoleEnum] = None


# ---------------------------------------------------------------------------
# Children -- requests
# ---------------------------------------------------------------------------


_REQUIRED_CHILD_FIELDS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "gender",
    "genotype",
    "arrival_circumstances",
    "current_status",
    "nationality",
    "preferred_language",
    "blood_type",
    "admission_date",
)


class _ChildFields(BaseModel):
    """Optional fields shared by create and update."""

    model_config = ConfigDict(str_strip_whitespace=True)

    middle_name: Optional[str] = Field(default=None, max_length=50)
    state_of_origin: Optional[NigerianState] = None
    lga: Optional[str] = Field(default=None, max_length=100)
    nationality: Optional[str] = Field(default=None, max_length=50)
    preferred_language: Optional[Language] = None
    religion: Optional[Religion] = None
    tribal_marks: Optional[str] = Field(default=None, max_length=200)
    blood_type: Optional[BloodType] = None
    height_cm: Optional[float] = Field(default=None, ge=30, le=250)
    weight_kg: Optional[float] = Field(default=None, ge=1, le=200)
    allergies: Optional[list[str]] = Field(default=None, max_length=50)
    medical_conditions: Optional[list[MedicalCondition]] = Field(default=None, max_length=50)
    immunization_status: Optional[Immunization] = None
    admission_date: Optional[date] = None
    room_assignment: Optional[str] = Field(default=None, max_length=50)
    bed_number: Optional[str] = Field(default=None, max_length=20)
    birth_certificate_number: Optional[str] = Field(default=None, max_length=50)
    government_registration_number: Optional[str] = Field(default=None, max_length=50)
    court_case_number: Optional[str] = Field(default=None, max_length=50)
    legal_guardian_name: Optional[str] = Field(default=None, max_length=100)
    legal_guardian_contact: Optional[str] = Field(default=None, max_length=100)
    next_of_kin_name: Optional[str] = Field(default=None, max_length=100)
    next_of_kin_contact: Optional[str] = Field(default=None, max_length=100)
    emergency_contact: Optional[ChildContact] = None
    behavioral_assessment_score: Optional[int] = Field(default=None, ge=1, le=10)
    social_worker_notes: Optional[str] = Field(default=None, max_length=5000)
    ambition: Optional[str] = Field(default=None, max_length=300)
    education_level: Optional[EducationLevel] = None
    school_name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("admission_date")
    @classmethod
    def admitted_not_future(cls, value: Optional[date]) -> Optional[date]:
        return _not_future(value)


class ChildCreate(_ChildFields):
    """Request body for POST /api/v1/children. child_id is assigned by the server."""

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    date_of_birth: date
    gender: Gender
    genotype: Genotype
    arrival_circumstances: str = Field(min_length=10, max_length=500)

    @field_validator("date_of_birth")
    @classmethod
    def born_in_past(cls, value: date) -> date:
        return _past_date(value)


class ChildUpdate(_ChildFields):
    """Request body for PATCH /api/v1/children/{id}. Every field optional; child_id is immutable."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    genotype: Optional[Genotype] = None
    arrival_circumstances: Optional[str] = Field(default=None, min_length=10, max_length=500)
    current_status: Optional[ChildStatus] = None
    exit_date: Optional[date] = None
    exit_reason: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="before")
    @classmethod
    def reject_identifier(cls, data: Any) -> Any:
        if isinstance(data, dict) and "child_id" in data:
            raise ValueError("child_id is assigned on admission and cannot be changed.")
        return data

    @model_validator(mode="after")
    def required_not_cleared(self) -> "ChildUpdate":
        for name in _REQUIRED_CHILD_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared.")
        return self

    @field_validator("date_of_birth")
    @classmethod
    def born_in_past(cls, value: Optional[date]) -> Optional[date]:
        return _past_date(value)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class AccountOut(BaseModel):
    """Account as returned to clients. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    employee_id: Optional[str]
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: str
    permissions: list[str]
    effective_permissions: list[str]
    is_active: bool
    password_must_change: bool
    account_locked: bool
    last_login: Optional[str]
    phone: Optional[str]
    date_of_birth: Optional[str]
    gender: Optional[str]
    marital_status: Optional[str]
    nin: Optional[str]
    address: dict
    emergency_contact: dict
    photo_url: Optional[str]
    position: Optional[str]
    department: Optional[str]
    date_hired: Optional[str]
    employment_status: str
    employment_type: str
    salary: Optional[float]
    created_by: Optional[int]
    last_modified_by: Optional[int]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_account(cls, account: Account) -> "AccountOut":
        return cls(
            id=account.id,
            employee_id=account.employee_id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            full_name=f"{account.first_name} {account.last_name}",
            role=normalize_role(account.role),
            permissions=account.permissions,
            effective_permissions=sorted(effective_permissions(account.role, account.permissions)),
            is_active=account.is_active,
            password_must_change=account.password_must_change,
            account_locked=account.account_locked,
            last_login=account.last_login,
            phone=account.phone,
            date_of_birth=account.date_of_birth,
            gender=account.gender,
            marital_status=account.marital_status,
            nin=account.nin,
            address=account.address,
            emergency_contact=account.emergency_contact,
            photo_url=account.photo_url,
            position=account.position,
            department=account.department,
            date_hired=account.date_hired,
            employment_status=account.employment_status,
            employment_type=account.employment_type,
            salary=account.salary,
            created_by=account.created_by,
            last_modified_by=account.last_modified_by,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class LoginData(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    must_change_password: bool
    account: AccountOut


class TokenData(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int


class LoginCredentials(BaseModel):
    """Shown exactly once, when an account is created or its password is reset."""

    model_config = ConfigDict(frozen=True)

    email: str
    employee_id: Optional[str]
    temporary_password: str


class AccountCreated(BaseModel):
    model_config = ConfigDict(frozen=True)

    account: AccountOut
    login_credentials: LoginCredentials


class AccountActionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    account: AccountOut
    login_credentials: Optional[LoginCredentials] = None


class AttachmentOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    entity_type: str
    entity_id: int
    kind: str
    document_type: Optional[str]
    filename: str
    original_name: Optional[str]
    url: str
    content_type: str
    size_bytes: int
    is_primary: bool
    uploaded_by: Optional[int]
    uploaded_at: str

    @classmethod
    def from_attachment(cls, attachment: Attachment) -> "AttachmentOut":
        return cls(
            id=attachment.id,
            entity_type=attachment.entity_type,
            entity_id=attachment.entity_id,
            kind=attachment.kind,
            document_type=attachment.document_type,
            filename=attachment.filename,
            original_name=attachment.original_name,
            url=attachment_url(attachment),
            content_type=attachment.content_type,
            size_bytes=attachment.size_bytes,
            is_primary=attachment.is_primary,
            uploaded_by=attachment.uploaded_by,
            uploaded_at=attachment.uploaded_at,
        )


def attachment_url(attachment: Attachment) -> str:
    return f"/api/v1/uploads/{attachment.entity_type}/{attachment.entity_id}/files/{attachment.id}"


class ChildOut(BaseModel):
    """Child record as returned to clients, with derived age and full_name."""

    model_config = ConfigDict(frozen=True)

    id: int
    child_id: str
    first_name: str
    middle_name: Optional[str]
    last_name: str
    full_name: str
    date_of_birth: str
    age: Optional[int]
    gender: str
    state_of_origin: Optional[str]
    lga: Optional[str]
    nationality: str
    preferred_language: str
    religion: Optional[str]
    tribal_marks: Optional[str]
    blood_type: str
    genotype: str
    height_cm: Optional[float]
    weight_kg: Optional[float]
    allergies: list[str]
    medical_conditions: list[dict]
    immunization_status: dict
    admission_date: str
    arrival_circumstances: str
    current_status: str
    exit_date: Optional[str]
    exit_reason: Optional[str]
    room_assignment: Optional[str]
    bed_number: Optional[str]
    birth_certificate_number: Optional[str]
    government_registration_number: Optional[str]
    court_case_number: Optional[str]
    legal_guardian_name: Optional[str]
    legal_guardian_contact: Optional[str]
    next_of_kin_name: Optional[str]
    next_of_kin_contact: Optional[str]
    emergency_contact: dict
    behavioral_assessment_score: Optional[int]
    social_worker_notes: Optional[str]
    ambition: Optional[str]
    education_level: Optional[str]
    school_name: Optional[str]
    created_by: int
    last_modified_by: Optional[int]
    created_at: str
    updated_at: str
    photos: list[AttachmentOut] = Field(default_factory=list)
    documents: list[AttachmentOut] = Field(default_factory=list)

    @classmethod
    def from_child(cls, child: Child, attachments: Optional[list[Attachment]] = None) -> "ChildOut":
        """Factory Method: domain Child (plus optional attachments) -> response model."""
        attachments = attachments or []
        names = [child.first_name, child.middle_name, child.last_name]
        return cls(
            id=child.id,
            child_id=child.child_id,
            first_name=child.first_name,
            middle_name=child.middle_name,
            last_name=child.last_name,
            full_name=" ".join(n for n in names if n),
            date_of_birth=child.date_of_birth,
            age=age_in_years(child.date_of_birth),
            gender=child.gender,
            state_of_origin=child.state_of_origin,
            lga=child.lga,
            nationality=child.nationality,
            preferred_language=child.preferred_language,
            religion=child.religion,
            tribal_marks=child.tribal_marks,
            blood_type=child.blood_type,
            genotype=child.genotype,
            height_cm=child.height_cm,
            weight_kg=child.weight_kg,
            allergies=child.allergies,
            medical_conditions=child.medical_conditions,
            immunization_status=child.immunization_status,
            admission_date=child.admission_date,
            arrival_circumstances=child.arrival_circumstances,
            current_status=child.current_status,
            exit_date=child.exit_date,
            exit_reason=child.exit_reason,
            room_assignment=child.room_assignment,
            bed_number=child.bed_number,
            birth_certificate_number=child.birth_certificate_number,
            government_registration_number=child.government_registration_number,
            court_case_number=child.court_case_number,
            legal_guardian_name=child.legal_guardian_name,
            legal_guardian_contact=child.legal_guardian_contact,
            next_of_kin_name=child.next_of_kin_name,
            next_of_kin_contact=child.next_of_kin_contact,
            emergency_contact=child.emergency_contact,
            behavioral_assessment_score=child.behavioral_assessment_score,
            social_worker_notes=child.social_worker_notes,
            ambition=child.ambition,
            education_level=child.education_level,
            school_name=child.school_name,
            created_by=child.created_by,
            last_modified_by=child.last_modified_by,
            created_at=child.created_at,
            updated_at=child.updated_at,
            photos=[AttachmentOut.from_attachment(a) for a in attachments if a.kind == "photo"],
            documents=[AttachmentOut.from_attachment(a) for a in attachments if a.kind == "document"],
        )


