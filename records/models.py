"""
records/models.py -- Domain dataclasses for child records and file attachments.

These are pure data containers with zero logic. Identifier allocation,
archiving and aggregation live in records/store.py and records/reports.py.

Dates (date_of_birth, admission_date, exit_date) are YYYY-MM-DD strings;
timestamps are ISO 8601 strings in UTC.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Child:
    """One ward of the home.

    child_id (TH-YYYY-NNN) is assigned by RecordStore.create_child() and never
    changes afterwards. "Deleting" a child sets current_status to Exited;
    the row itself is kept.

    id and child_id are None before the record is written to the database.
    """

    first_name: str
    last_name: str
    date_of_birth: str
    gender: str  # "Male" | "Female"
    genotype: str
    arrival_circumstances: str
    created_by: int
    id: Optional[int] = None
    child_id: Optional[str] = None
    middle_name: Optional[str] = None

    # Origin
    state_of_origin: Optional[str] = None
    lga: Optional[str] = None
    nationality: str = "Nigerian"
    preferred_language: str = "English"
    religion: Optional[str] = None
    tribal_marks: Optional[str] = None

    # Medical
    blood_type: str = "Unknown"
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    allergies: list[str] = field(default_factory=list)
    medical_conditions: list[dict] = field(default_factory=list)
    immunization_status: dict = field(default_factory=dict)

    # Administrative
    admission_date: str = ""  # defaults to today on insert
    current_status: str = "Active"
    exit_date: Optional[str] = None
    exit_reason: Optional[str] = None
    room_assignment: Optional[str] = None
    bed_number: Optional[str] = None

    # Legal
    birth_certificate_number: Optional[str] = None
    government_registration_number: Optional[str] = None
    court_case_number: Optional[str] = None
    legal_guardian_name: Optional[str] = None
    legal_guardian_contact: Optional[str] = None
    next_of_kin_name: Optional[str] = None
    next_of_kin_contact: Optional[str] = None
    emergency_contact: dict = field(default_factory=dict)

    # Care and education
    behavioral_assessment_score: Optional[int] = None
    social_worker_notes: Optional[str] = None
    ambition: Optional[str] = None
    education_level: Optional[str] = None
    school_name: Optional[str] = None

    # Audit
    last_modified_by: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Attachment:
    """A photo or document stored under the upload directory.

    entity_type is "children" or "staff"; entity_id is the owning row's
    primary key. path is relative to the upload root; clients fetch the
    file through the authorized download route, never by path.

    id is None before the record is written to the database.
    """

    entity_type: str
    entity_id: int
    kind: str  # "photo" | "document"
    filename: str
    path: str
    content_type: str
    size_bytes: int
    original_name: Optional[str] = None
    document_type: Optional[str] = None
    is_primary: bool = False
    uploaded_by: Optional[int] = None
    uploaded_at: str = ""
    id: Optional[int] = None
