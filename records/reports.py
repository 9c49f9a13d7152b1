"""
records/reports.py -- Read-only aggregations behind the /reports endpoints.

Each function takes a RecordStore and returns a plain dict ready for the
response envelope. Aggregation is grouping and counting in Python over the
rows the store returns; the home holds hundreds of records, not millions.

Staff figures come from auth.store.AccountStore. records/ may not import
auth/, so the route passes the active staff count in.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timezone
from typing import Optional

from core.constants import AGE_GROUPS, VACCINES, BloodType, Genotype
from records.models import Child
from records.store import RecordStore, age_group_label, age_in_years


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _ranked(counter: Counter, key: str) -> list[dict]:
    """[{key: value, "count": n}, ...] ordered by count, then name."""
    return [{key: name, "count": n} for name, n in sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))]


def _month_keys(today: date, months: int = 12) -> list[str]:
    """The last `months` calendar months ending with today's, oldest first, as YYYY-MM."""
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _age_distribution(children: list[Child], today: date) -> dict[str, int]:
    groups = {label: 0 for label, _, _ in AGE_GROUPS}
    for child in children:
        label = age_group_label(age_in_years(child.date_of_birth, today))
        if label is not None:
            groups[label] += 1
    return groups


def _summary(child: Child, today: date) -> dict:
    return {
        "id": child.id,
        "child_id": child.child_id,
        "first_name": child.first_name,
        "last_name": child.last_name,
        "admission_date": child.admission_date,
        "age": age_in_years(child.date_of_birth, today),
        "current_status": child.current_status,
    }


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def dashboard_summary(store: RecordStore, active_staff: int, today: Optional[date] = None) -> dict:
    """Landing-page figures: headline counts, age/gender split and the latest admissions."""
    today = today or _today()
    active = store.all_children(status="Active")
    new_this_month = store.all_children(admitted_from=today.replace(day=1).isoformat())
    recent, _total = store.list_children(page=1, limit=5, sort="-admission_date")
    return {
        "overview": {
            "total_active_children": len(active),
            "new_admissions_this_month": len(new_this_month),
            "total_active_staff": active_staff,
        },
        "age_distribution": _age_distribution(active, today),
        "gender_distribution": dict(Counter(c.gender for c in active)),
        "recent_admissions": [_summary(c, today) for c in recent],
    }


def demographics_report(
    store: RecordStore,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    today: Optional[date] = None,
) -> dict:
    """Origin, language and education distributions plus a 12-month admissions trend.

    start_date / end_date (YYYY-MM-DD, inclusive) restrict the distributions
    by admission date. The monthly trend always covers the twelve months
    ending with the current one.
    """
    today = today or _today()
    children = store.all_children(admitted_from=start_date, admitted_to=end_date)

    months = _month_keys(today)
    trend = dict.fromkeys(months, 0)
    for child in store.all_children(admitted_from=f"{months[0]}-01"):
        key = (child.admission_date or "")[:7]
        if key in trend:
            trend[key] += 1

    return {
        "period": {"start_date": start_date, "end_date": end_date},
        "total": len(children),
        "by_state_of_origin": _ranked(Counter(c.state_of_origin or "Unknown" for c in children), "state"),
        "by_language": _ranked(Counter(c.preferred_language for c in children), "language"),
        "by_education_level": _ranked(Counter(c.education_level or "Unknown" for c in children), "education_level"),
        "monthly_admissions": [{"month": m, "count": n} for m, n in trend.items()],
    }


def health_report(store: RecordStore, top_conditions: int = 10) -> dict:
    """Genotype and blood type distributions, common conditions and immunization coverage (Active children)."""
    children = store.all_children(status="Active")
    total = len(children)

    genotypes = dict.fromkeys((g.value for g in Genotype), 0)
    blood_types = dict.fromkeys((b.value for b in BloodType), 0)
    conditions: Counter = Counter()
    display: dict[str, str] = {}
    coverage = dict.fromkeys(VACCINES, 0)

    for child in children:
        genotypes[child.genotype] = genotypes.get(child.genotype, 0) + 1
        blood_types[child.blood_type] = blood_types.get(child.blood_type, 0) + 1
        # A child listing the same condition twice counts once.
        names: dict[str, str] = {}
        for entry in child.medical_conditions:
            name = ((entry or {}).get("condition") or "").strip()
            if name:
                names.setdefault(name.lower(), name)
        for key, name in names.items():
            conditions[key] += 1
            display.setdefault(key, name)
        for vaccine in VACCINES:
            if child.immunization_status.get(vaccine):
                coverage[vaccine] += 1

    return {
        "total_active_children": total,
        "genotype_distribution": genotypes,
        "blood_type_distribution": blood_types,
        "top_medical_conditions": [
            {"condition": display[key], "count": n}
            for key, n in sorted(conditions.items(), key=lambda kv: (-kv[1], kv[0]))[:top_conditions]
        ],
        "immunization_coverage": {
            vaccine: {
                "immunized": n,
                "percentage": round(100 * n / total, 1) if total else 0.0,
            }
            for vaccine, n in coverage.items()
        },
    }
