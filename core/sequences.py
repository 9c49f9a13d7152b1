"""
core/sequences.py -- Year-scoped human-readable identifier allocation.

Child records and staff accounts carry identifiers of the form
PREFIX-YEAR-NNN (TH-2024-003, THS-2024-017). Allocation must never hand the
same identifier to two callers, even when records are created concurrently.

Pattern: atomic counter row. One row per (prefix, year) in the `sequences`
table. allocate() runs inside the caller's transaction:

  1. UPDATE sequences SET value = value + 1 WHERE prefix = :p AND year = :y
     The UPDATE takes the row (PostgreSQL) or database (SQLite) write lock,
     so every other allocator for the same key waits until this transaction
     commits or rolls back.
  2. If no row matched, seed one from the highest numeric suffix already
     present in the record table (INSERT ... ON CONFLICT DO NOTHING, so a
     concurrent seeder is harmless) and repeat the UPDATE.
  3. SELECT the new value and format it.

Because the increment and the record INSERT share a transaction, a failed
record insert rolls the counter back too. Gaps are possible only when a
caller allocates outside a record insert (next_identifier()).

The identifier columns keep their UNIQUE constraints as a backstop for rows
written by other tools.

Layer rule: core/ is the kernel. No imports from api/, auth/, or records/.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, PrimaryKeyConstraint, String, Table, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger("tabitha.sequences")

_metadata = MetaData()

_sequences = Table(
    "sequences",
    _metadata,
    Column("prefix", String(16), nullable=False),
    Column("year", Integer, nullable=False),
    Column("value", Integer, nullable=False),
    PrimaryKeyConstraint("prefix", "year", name="pk_sequences"),
)

_PREFIX_RE = re.compile(r"^[A-Z][A-Z0-9]{0,15}$")


class SequenceAllocationError(RuntimeError):
    """Raised when a counter row cannot be created or read back."""


def format_identifier(prefix: str, year: int, number: int) -> str:
    """Return PREFIX-YEAR-NNN, zero-padded to at least three digits."""
    return f"{prefix}-{year}-{number:03d}"


def parse_suffix(identifier: str, prefix: str, year: int) -> int | None:
    """Return the numeric suffix of an identifier, or None if it does not belong to prefix/year."""
    head = f"{prefix}-{year}-"
    if not identifier or not identifier.startswith(head):
        return None
    tail = identifier[len(head) :]
    return int(tail) if tail.isdigit() else None


class SequenceAllocator:
    """Allocates PREFIX-YEAR-NNN identifiers from per-year counter rows.

    Usage:
        allocator = SequenceAllocator(engine)
        with engine.begin() as conn:
            child_id = allocator.allocate(conn, "TH", 2024, children.c.child_id)
            conn.execute(children.insert().values(child_id=child_id, ...))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(engine)

    def allocate(self, conn: Connection, prefix: str, year: int, source: Column) -> str:
        """Reserve the next identifier for (prefix, year) inside conn's transaction.

        source is the identifier column of the record table. It is only read
        when the counter row does not exist yet.
        """
        if not _PREFIX_RE.match(prefix):
            raise ValueError(f"Invalid identifier prefix: {prefix!r}")
        if self._increment(conn, prefix, year) == 0:
            floor = self._highest_suffix(conn, prefix, year, source)
            self._seed(conn, prefix, year, floor)
            if self._increment(conn, prefix, year) == 0:
                raise SequenceAllocationError(f"Counter row for {prefix}-{year} could not be created")
        value = conn.execute(
            select(_sequences.c.value).where((_sequences.c.prefix == prefix) & (_sequences.c.year == year))
        ).scalar_one()
        return format_identifier(prefix, year, value)

    def next_identifier(self, prefix: str, source: Column, year: int | None = None) -> str:
        """Allocate an identifier in its own transaction. The number is consumed even if unused."""
        year = year or datetime.now(timezone.utc).year
        with self.engine.begin() as conn:
            return self.allocate(conn, prefix, year, source)

    def current_value(self, prefix: str, year: int) -> int:
        """Return the last number handed out for (prefix, year), 0 if none."""
        with self.engine.connect() as conn:
            value = conn.execute(
                select(_sequences.c.value).where((_sequences.c.prefix == prefix) & (_sequences.c.year == year))
            ).scalar()
        return value or 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _increment(self, conn: Connection, prefix: str, year: int) -> int:
        result = conn.execute(
            _sequences.update()
            .where((_sequences.c.prefix == prefix) & (_sequences.c.year == year))
            .values(value=_sequences.c.value + 1)
        )
        return result.rowcount

    def _highest_suffix(self, conn: Connection, prefix: str, year: int, source: Column) -> int:
        """Scan existing identifiers so a fresh counter continues after imported data.

        The maximum is taken numerically in Python; a lexicographic MAX()
        would rank TH-2024-999 above TH-2024-1000.
        """
        rows = conn.execute(select(source).where(source.like(f"{prefix}-{year}-%"))).scalars()
        suffixes = [n for n in (parse_suffix(r, prefix, year) for r in rows) if n is not None]
        highest = max(suffixes, default=0)
        if highest:
            logger.info("Seeding %s-%d counter from existing records at %d", prefix, year, highest)
        return highest

    def _seed(self, conn: Connection, prefix: str, year: int, value: int) -> None:
        values = {"prefix": prefix, "year": year, "value": value}
        dialect = conn.dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(_sequences).values(**values).on_conflict_do_nothing()
        elif dialect == "postgresql":
            stmt = pg_insert(_sequences).values(**values).on_conflict_do_nothing()
        else:
            stmt = _sequences.insert().values(**values)
        conn.execute(stmt)
