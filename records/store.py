"""
records/store.py -- SQLAlchemy Core persistence for child records and attachments.

Uses SQLAlchemy Core (not ORM) so the dataclasses in records/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. RecordStore is the repository;
_row_to_child / _row_to_attachment are the mappers. Route handlers never
touch SQL directly.

Invariants enforced here:
  - child_id is allocated inside the INSERT transaction (core/sequences.py)
    and update_child() refuses to change it.
  - archive_child() is a status transition (Exited + exit_date + exit_reason);
    nothing in this module issues a DELETE against the children table.
  - add_attachment() with is_primary=True clears the primary flag on every
    other photo of the same entity in the same transaction.

Security: all queries use bound parameters. Sort and filter column names come
from fixed whitelists.
"""

import json
import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.constants import AGE_GROUPS, ChildStatus
from core.sequences import SequenceAllocator
from records.models import Attachment, Child

logger = logging.getLogger("tabitha.records")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_children = Table(
    "children",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("child_id", String(20), nullable=False, unique=True),
    Column("first_name", String(50), nullable=False),
    Column("middle_name", String(50)),
    Column("last_name", String(50), nullable=False),
    Column("date_of_birth", String(10), nullable=False),
    Column("gender", String(10), nullable=False),
    Column("state_of_origin", String(30)),
    Column("lga", String(100)),
    Column("nationality", String(50), nullable=False, server_default="Nigerian"),
    Column("preferred_language", String(20), nullable=False, server_default="English"),
    Column("religion", String(20)),
    Column("tribal_marks", String(200)),
    Column("blood_type", String(10), nullable=False, server_default="Unknown"),
    Column("genotype", String(10), nullable=False),
    Column("height_cm", Float),
    Column("weight_kg", Float),
    Column("allergies", Text),  # JSON array of strings
    Column("medical_conditions", Text),  # JSON array of objects
    Column("immunization_status", Text),  # JSON object
    Column("admission_date", String(10), nullable=False),
    Column("arrival_circumstances", Text, nullable=False),
    Column("current_status", String(30), nullable=False, server_default="Active"),
    Column("exit_date", String(10)),
    Column("exit_reason", Text),
    Column("room_assignment", String(50)),
    Column("bed_number", String(20)),
    Column("birth_certificate_number", String(50), unique=True),
    Column("government_registration_number", String(50)),
    Column("court_case_number", String(50)),
    Column("legal_guardian_name", String(100)),
    Column("legal_guardian_contact", String(100)),
    Column("next_of_kin_name", String(100)),
    Column("next_of_kin_contact", String(100)),
    Column("emergency_contact", Text),  # JSON object
    Column("behavioral_assessment_score", Integer),
    Column("social_worker_notes", Text),
    Column("ambition", String(300)),
    Column("education_level", String(30)),
    Column("school_name", String(100)),
    Column("created_by", Integer, nullable=False),
    Column("last_modified_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_attachments = Table(
    "attachments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String(20), nullable=False),
    Column("entity_id", Integer, nullable=False),
    Column("kind", String(20), nullable=False),
    Column("document_type", String(30)),
    Column("filename", String(255), nullable=False),
    Column("original_name", String(255)),
    Column("path", Text, nullable=False),
    Column("content_type", String(100), nullable=False),
    Column("size_bytes", Integer, nullable=False),
    Column("is_primary", Integer, nullable=False, server_default="0"),
    Column("uploaded_by", Integer),
    Column("uploaded_at", String(32), nullable=False),
)

_JSON_LIST_FIELDS = ("allergies", "medical_conditions")
_JSON_DICT_FIELDS = ("immunization_status", "emergency_contact")

# Columns update_child() refuses to touch.
_IMMUTABLE_FIELDS = frozenset({"id", "child_id", "created_by", "created_at", "updated_at", "last_modified_by"})

SORTABLE_FIELDS = frozenset(
    {"admission_date", "first_name", "last_name", "date_of_birth", "child_id", "created_at", "current_status"}
)
FILTERABLE_FIELDS = ("current_status", "gender", "state_of_origin", "education_level", "room_assignment")
AUTOCOMPLETE_FIELDS = ("first_name", "last_name", "medical_conditions")

_SEARCH_COLUMNS = (
    "child_id",
    "first_name",
    "middle_name",
    "last_name",
    "state_of_origin",
    "lga",
    "room_assignment",
    "school_name",
    "arrival_circumstances",
    "social_worker_notes",
)
# Relevance weight per matched column; unlisted search columns weigh 1.
_SEARCH_WEIGHTS = {"child_id": 5, "first_name": 3, "middle_name": 3, "last_name": 3}
# Columns the list endpoint's search parameter matches.
_LIST_SEARCH_COLUMNS = ("first_name", "middle_name", "last_name", "child_id")

ARCHIVE_REASON = "Record archived"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _today() -> date:
    return datetime.now(timezone.utc).date()


def age_in_years(date_of_birth: str, today: Optional[date] = None) -> Optional[int]:
    """Whole years between date_of_birth and today. None for an unparsable date."""
    try:
        born = date.fromisoformat(date_of_birth[:10])
    except (TypeError, ValueError):
        return None
    today = today or _today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def age_group_label(age: Optional[int]) -> Optional[str]:
    """Return the AGE_GROUPS label an age falls into, or None."""
    if age is None:
        return None
    for label, low, high in AGE_GROUPS:
        if low <= age <= high:
            return label
    return None


def parse_sort(sort: str) -> tuple[str, bool]:
    """Parse "-admission_date" into ("admission_date", descending=True).

    Raises ValueError for a column outside SORTABLE_FIELDS.
    """
    descending = sort.startswith("-")
    name = sort.lstrip("-+")
    if name not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {name!r}")
    return name, descending


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (set per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RecordStore:
    """Repository for Child and Attachment entities.

    Usage:
        store = RecordStore("sqlite:///:memory:")
        pk = store.create_child(child)
        store.get_child(pk).child_id   # "TH-2024-001"
        store.archive_child(pk, modified_by=1)
        store.close()
    """

    def __init__(self, db_url: Optional[str] = None, child_id_prefix: Optional[str] = None) -> None:
        settings = get_settings()
        db_url = db_url or settings.database_url
        self.child_id_prefix = child_id_prefix or settings.child_id_prefix
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a threadpool; connections cross threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self.sequences = SequenceAllocator(self.engine)

    # ------------------------------------------------------------------
    # Children -- writes
    # ------------------------------------------------------------------

    def create_child(self, child: Child, year: Optional[int] = None) -> int:
        """Insert a child record, allocating its child_id, and return the database ID.

        Raises sqlalchemy.exc.IntegrityError on a duplicate birth certificate
        number. The counter increment rolls back with the failed INSERT.
        """
        now = _now_iso()
        year = year or _today().year
        with self.engine.begin() as conn:
            child_id = self.sequences.allocate(conn, self.child_id_prefix, year, _children.c.child_id)
            result = conn.execute(
                _children.insert().values(
                    child_id=child_id,
                    first_name=child.first_name,
                    middle_name=child.middle_name,
                    last_name=child.last_name,
                    date_of_birth=child.date_of_birth,
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
                    allergies=json.dumps(child.allergies),
                    medical_conditions=json.dumps(child.medical_conditions),
                    immunization_status=json.dumps(child.immunization_status),
                    admission_date=child.admission_date or _today().isoformat(),
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
                    emergency_contact=json.dumps(child.emergency_contact),
                    behavioral_assessment_score=child.behavioral_assessment_score,
                    social_worker_notes=child.social_worker_notes,
                    ambition=child.ambition,
                    education_level=child.education_level,
                    school_name=child.school_name,
                    created_by=child.created_by,
                    last_modified_by=child.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            pk = result.inserted_primary_key[0]
        logger.info("Child record created: %s (%s)", child_id, pk)
        return pk

    def update_child(self, pk: int, modified_by: int, **fields) -> bool:
        """Update mutable fields on a child record.

        Raises ValueError when asked to change child_id or another immutable
        column. Moving current_status away from Active stamps exit_date with
        today unless the caller supplies one.

        Returns True if a row was updated, False if pk was not found.
        """
        blocked = set(fields) & _IMMUTABLE_FIELDS
        if blocked:
            raise ValueError(f"Immutable fields cannot be updated: {sorted(blocked)!r}")
        unknown = set(fields) - set(_children.c.keys())
        if unknown:
            raise ValueError(f"Unknown child fields: {sorted(unknown)!r}")
        for name in _JSON_LIST_FIELDS:
            if name in fields:
                fields[name] = json.dumps(fields[name] or [])
        for name in _JSON_DICT_FIELDS:
            if name in fields:
                fields[name] = json.dumps(fields[name] or {})
        status = fields.get("current_status")
        if status is not None and status != "Active" and not fields.get("exit_date"):
            fields["exit_date"] = _today().isoformat()
        fields["updated_at"] = _now_iso()
        fields["last_modified_by"] = modified_by
        with self.engine.connect() as conn:
            result = conn.execute(_children.update().where(_children.c.id == pk).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def archive_child(self, pk: int, modified_by: int, reason: str = ARCHIVE_REASON) -> bool:
        """Soft delete: status Exited, exit_date today. The row is kept."""
        archived = self.update_child(
            pk,
            modified_by=modified_by,
            current_status="Exited",
            exit_date=_today().isoformat(),
            exit_reason=reason,
        )
        if archived:
            logger.info("Child record %s archived by account %s", pk, modified_by)
        return archived

    # ------------------------------------------------------------------
    # Children -- reads
    # ------------------------------------------------------------------

    def get_child(self, pk: int) -> Optional[Child]:
        with self.engine.connect() as conn:
            row = conn.execute(_children.select().where(_children.c.id == pk)).fetchone()
        return _row_to_child(row) if row is not None else None

    def get_by_child_id(self, child_id: str) -> Optional[Child]:
        with self.engine.connect() as conn:
            row = conn.execute(_children.select().where(_children.c.child_id == child_id.upper())).fetchone()
        return _row_to_child(row) if row is not None else None

    def list_children(
        self,
        page: int = 1,
        limit: int = 20,
        sort: str = "-admission_date",
        search: Optional[str] = None,
        admitted_from: Optional[str] = None,
        admitted_to: Optional[str] = None,
        **filters,
    ) -> tuple[list[Child], int]:
        """Return one page of children plus the total matching count.

        filters accepts the keys in FILTERABLE_FIELDS (exact match). None
        values are ignored. Raises ValueError for an unknown filter or sort key.
        """
        unknown = set(filters) - set(FILTERABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown filters: {sorted(unknown)!r}")
        sort_column, descending = parse_sort(sort)

        conditions = [_children.c[name] == value for name, value in filters.items() if value is not None]
        if search:
            needle = search.strip()
            conditions.append(
                or_(*(_children.c[name].icontains(needle, autoescape=True) for name in _LIST_SEARCH_COLUMNS))
            )
        if admitted_from:
            conditions.append(_children.c.admission_date >= admitted_from)
        if admitted_to:
            conditions.append(_children.c.admission_date <= admitted_to)

        order = _children.c[sort_column].desc() if descending else _children.c[sort_column].asc()
        offset = (max(page, 1) - 1) * limit
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_children).where(*conditions)).scalar() or 0
            rows = conn.execute(
                _children.select().where(*conditions).order_by(order, _children.c.id.desc()).limit(limit).offset(offset)
            ).fetchall()
        return [_row_to_child(r) for r in rows], total

    def all_children(
        self,
        status: Optional[str] = None,
        admitted_from: Optional[str] = None,
        admitted_to: Optional[str] = None,
    ) -> list[Child]:
        """Unpaginated read used by the report aggregations."""
        conditions = []
        if status:
            conditions.append(_children.c.current_status == status)
        if admitted_from:
            conditions.append(_children.c.admission_date >= admitted_from)
        if admitted_to:
            conditions.append(_children.c.admission_date <= admitted_to)
        with self.engine.connect() as conn:
            rows = conn.execute(_children.select().where(*conditions).order_by(_children.c.id)).fetchall()
        return [_row_to_child(r) for r in rows]

    def count_children(self, status: Optional[str] = None) -> int:
        query = select(func.count()).select_from(_children)
        if status:
            query = query.where(_children.c.current_status == status)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def search_children(self, query: str, limit: int = 20) -> list[Child]:
        """Free-text search across names, identifiers and case notes.

        Every whitespace-separated term is matched case-insensitively against
        the search columns. Results are ranked by weighted column hits; a
        record whose child_id equals the whole query always comes first.
        """
        terms = [t for t in query.split() if t]
        if not terms:
            return []
        clauses = [_children.c[col].icontains(term, autoescape=True) for term in terms for col in _SEARCH_COLUMNS]
        with self.engine.connect() as conn:
            rows = conn.execute(_children.select().where(or_(*clauses))).fetchall()

        exact = query.strip().upper()
        scored: list[tuple[int, Child]] = []
        for row in rows:
            child = _row_to_child(row)
            if child.child_id == exact:
                score = 1_000_000
            else:
                score = 0
                for term in terms:
                    needle = term.lower()
                    for col in _SEARCH_COLUMNS:
                        value = getattr(child, col) or ""
                        if needle in value.lower():
                            score += _SEARCH_WEIGHTS.get(col, 1)
            scored.append((score, child))
        scored.sort(key=lambda pair: (-pair[0], pair[1].last_name.lower(), pair[1].first_name.lower()))
        return [child for _, child in scored[:limit]]

    def autocomplete(self, field: str, query: str, limit: int = 10) -> list[str]:
        """Distinct prefix matches for a field among Active children, at most limit values.

        medical_conditions is stored as JSON, so its values are matched in
        Python after loading the active records.
        """
        if field not in AUTOCOMPLETE_FIELDS:
            raise ValueError(f"Autocomplete is not available for {field!r}")
        prefix = query.strip()
        if not prefix:
            return []
        active = _children.c.current_status == "Active"
        if field == "medical_conditions":
            with self.engine.connect() as conn:
                rows = conn.execute(select(_children.c.medical_conditions).where(active)).scalars().all()
            seen: dict[str, str] = {}
            for raw in rows:
                for entry in json.loads(raw) if raw else []:
                    name = (entry or {}).get("condition") or ""
                    if name.lower().startswith(prefix.lower()) and name.lower() not in seen:
                        seen[name.lower()] = name
            return sorted(seen.values(), key=str.lower)[:limit]
        column = _children.c[field]
        matches = active & column.istartswith(prefix, autoescape=True)
        query = select(column).where(matches).distinct().order_by(column).limit(limit)
        with self.engine.connect() as conn:
            values = conn.execute(query).scalars().all()
        return list(values)

    def child_stats(self, today: Optional[date] = None) -> dict:
        """Counts for GET /children/stats.

        by_status      -- every status with its count and average age
        by_gender      -- Active children only
        by_age_group   -- Active children only, buckets from core.constants.AGE_GROUPS
        """
        today = today or _today()
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_children.c.current_status, _children.c.gender, _children.c.date_of_birth)
            ).fetchall()

        counts: dict[str, int] = {s.value: 0 for s in ChildStatus}
        ages: dict[str, list[int]] = {s.value: [] for s in ChildStatus}
        gender_counts: dict[str, int] = {}
        age_groups = {label: 0 for label, _, _ in AGE_GROUPS}
        for row in rows:
            status = row.current_status
            counts[status] = counts.get(status, 0) + 1
            age = age_in_years(row.date_of_birth, today)
            if age is not None:
                ages.setdefault(status, []).append(age)
            if status != "Active":
                continue
            gender_counts[row.gender] = gender_counts.get(row.gender, 0) + 1
            label = age_group_label(age)
            if label is not None:
                age_groups[label] += 1

        by_status = [
            {
                "status": status,
                "count": count,
                "average_age": round(sum(ages[status]) / len(ages[status]), 1) if ages.get(status) else None,
            }
            for status, count in counts.items()
        ]
        return {
            "total": len(rows),
            "by_status": by_status,
            "by_gender": gender_counts,
            "by_age_group": age_groups,
        }

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def add_attachment(self, attachment: Attachment) -> int:
        """Insert an attachment row and return its ID.

        A primary photo demotes every other photo of the same entity inside
        the same transaction.
        """
        with self.engine.begin() as conn:
            if attachment.is_primary:
                conn.execute(
                    _attachments.update()
                    .where(
                        (_attachments.c.entity_type == attachment.entity_type)
                        & (_attachments.c.entity_id == attachment.entity_id)
                        & (_attachments.c.kind == "photo")
                    )
                    .values(is_primary=0)
                )
            result = conn.execute(
                _attachments.insert().values(
                    entity_type=attachment.entity_type,
                    entity_id=attachment.entity_id,
                    kind=attachment.kind,
                    document_type=attachment.document_type,
                    filename=attachment.filename,
                    original_name=attachment.original_name,
                    path=attachment.path,
                    content_type=attachment.content_type,
                    size_bytes=attachment.size_bytes,
                    is_primary=1 if attachment.is_primary else 0,
                    uploaded_by=attachment.uploaded_by,
                    uploaded_at=attachment.uploaded_at or _now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_attachment(self, attachment_id: int) -> Optional[Attachment]:
        with self.engine.connect() as conn:
            row = conn.execute(_attachments.select().where(_attachments.c.id == attachment_id)).fetchone()
        return _row_to_attachment(row) if row is not None else None

    def list_attachments(self, entity_type: str, entity_id: int, kind: Optional[str] = None) -> list[Attachment]:
        """Return attachments for an entity, newest first."""
        conditions = [(_attachments.c.entity_type == entity_type), (_attachments.c.entity_id == entity_id)]
        if kind:
            conditions.append(_attachments.c.kind == kind)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _attachments.select().where(*conditions).order_by(_attachments.c.id.desc())
            ).fetchall()
        return [_row_to_attachment(r) for r in rows]

    def delete_attachment(self, attachment_id: int) -> bool:
        """Remove an attachment row. The caller deletes the file itself."""
        with self.engine.connect() as conn:
            result = conn.execute(_attachments.delete().where(_attachments.c.id == attachment_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """True if the database answers a trivial query. Used by the health check."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_child(row) -> Child:
    return Child(
        id=row.id,
        child_id=row.child_id,
        first_name=row.first_name,
        middle_name=row.middle_name,
        last_name=row.last_name,
        date_of_birth=row.date_of_birth,
        gender=row.gender,
        state_of_origin=row.state_of_origin,
        lga=row.lga,
        nationality=row.nationality,
        preferred_language=row.preferred_language,
        religion=row.religion,
        tribal_marks=row.tribal_marks,
        blood_type=row.blood_type,
        genotype=row.genotype,
        height_cm=row.height_cm,
        weight_kg=row.weight_kg,
        allergies=json.loads(row.allergies) if row.allergies else [],
        medical_conditions=json.loads(row.medical_conditions) if row.medical_conditions else [],
        immunization_status=json.loads(row.immunization_status) if row.immunization_status else {},
        admission_date=row.admission_date,
        arrival_circumstances=row.arrival_circumstances,
        current_status=row.current_status,
        exit_date=row.exit_date,
        exit_reason=row.exit_reason,
        room_assignment=row.room_assignment,
        bed_number=row.bed_number,
        birth_certificate_number=row.birth_certificate_number,
        government_registration_number=row.government_registration_number,
        court_case_number=row.court_case_number,
        legal_guardian_name=row.legal_guardian_name,
        legal_guardian_contact=row.legal_guardian_contact,
        next_of_kin_name=row.next_of_kin_name,
        next_of_kin_contact=row.next_of_kin_contact,
        emergency_contact=json.loads(row.emergency_contact) if row.emergency_contact else {},
        behavioral_assessment_score=row.behavioral_assessment_score,
        social_worker_notes=row.social_worker_notes,
        ambition=row.ambition,
        education_level=row.education_level,
        school_name=row.school_name,
        created_by=row.created_by,
        last_modified_by=row.last_modified_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_attachment(row) -> Attachment:
    return Attachment(
        id=row.id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        kind=row.kind,
        document_type=row.document_type,
        filename=row.filename,
        original_name=row.original_name,
        path=row.path,
        content_type=row.content_type,
        size_bytes=row.size_bytes,
        is_primary=bool(row.is_primary),
        uploaded_by=row.uploaded_by,
        uploaded_at=row.uploaded_at,
    )
