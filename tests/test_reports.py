"""Unit tests for records/reports.py aggregations."""

from datetime import date

import pytest

from records.models import Child
from records.reports import _month_keys, dashboard_summary, demographics_report, health_report
from records.store import RecordStore

TODAY = date(2025, 6, 15)


def _child(**overrides) -> Child:
    fields = {
        "first_name": "Ife",
        "last_name": "Ojo",
        "date_of_birth": "2016-04-01",
        "gender": "Female",
        "genotype": "AA",
        "arrival_circumstances": "Brought in by a community leader after a flood.",
        "created_by": 1,
        "admission_date": "2025-06-02",
    }
    fields.update(overrides)
    return Child(**fields)


@pytest.fixture
def store():
    s = RecordStore("sqlite:///:memory:")
    yield s
    s.close()


class TestMonthKeys:
    def test_wraps_across_the_year(self) -> None:
        keys = _month_keys(date(2025, 2, 10), months=4)
        assert keys == ["2024-11", "2024-12", "2025-01", "2025-02"]


class TestDashboardSummary:
    def test_overview_and_distributions(self, store: RecordStore) -> None:
        store.create_child(_child())
        store.create_child(_child(gender="Male", date_of_birth="2024-01-01", admission_date="2025-01-10"))
        gone = store.create_child(_child(admission_date="2025-06-03"))
        store.archive_child(gone, modified_by=1)

        summary = dashboard_summary(store, active_staff=4, today=TODAY)
        assert summary["overview"] == {
            "total_active_children": 2,
            "new_admissions_this_month": 2,
            "total_active_staff": 4,
        }
        assert summary["gender_distribution"] == {"Female": 1, "Male": 1}
        assert summary["age_distribution"]["0-2"] == 1
        assert summary["age_distribution"]["6-11"] == 1
        assert summary["recent_admissions"][0]["admission_date"] == "2025-06-03"
        assert len(summary["recent_admissions"]) == 3

    def test_empty_store(self, store: RecordStore) -> None:
        summary = dashboard_summary(store, active_staff=0, today=TODAY)
        assert summary["overview"]["total_active_children"] == 0
        assert summary["recent_admissions"] == []


class TestDemographicsReport:
    def test_distributions_are_ranked(self, store: RecordStore) -> None:
        store.create_child(_child(state_of_origin="Oyo", preferred_language="Yoruba"))
        store.create_child(_child(state_of_origin="Oyo", preferred_language="Yoruba"))
        store.create_child(_child(state_of_origin="Kano", preferred_language="Hausa", education_level="Primary 2"))
        report = demographics_report(store, today=TODAY)
        assert report["total"] == 3
        assert report["by_state_of_origin"] == [{"state": "Oyo", "count": 2}, {"state": "Kano", "count": 1}]
        assert report["by_language"][0] == {"language": "Yoruba", "count": 2}
        assert {"education_level": "Unknown", "count": 2} in report["by_education_level"]

    def test_date_range_limits_distributions_not_trend(self, store: RecordStore) -> None:
        store.create_child(_child(admission_date="2024-09-01"))
        store.create_child(_child(admission_date="2025-05-20"))
        report = demographics_report(store, start_date="2025-01-01", end_date="2025-12-31", today=TODAY)
        assert report["total"] == 1
        trend = {m["month"]: m["count"] for m in report["monthly_admissions"]}
        assert len(trend) == 12
        assert trend["2024-09"] == 1
        assert trend["2025-05"] == 1
        assert trend["2025-06"] == 0


class TestHealthReport:
    def test_distributions_conditions_and_coverage(self, store: RecordStore) -> None:
        store.create_child(
            _child(
                genotype="SS",
                blood_type="O+",
                medical_conditions=[{"condition": "Sickle Cell"}, {"condition": "sickle cell"}],
                immunization_status={"bcg": True, "measles": True},
            )
        )
        store.create_child(
            _child(
                medical_conditions=[{"condition": "Malaria"}, {"condition": "Sickle Cell"}],
                immunization_status={"bcg": True},
            )
        )
        gone = store.create_child(_child(genotype="AS"))
        store.archive_child(gone, modified_by=1)

        report = health_report(store)
        assert report["total_active_children"] == 2
        assert report["genotype_distribution"]["SS"] == 1
        assert report["genotype_distribution"]["AS"] == 0
        assert report["blood_type_distribution"]["O+"] == 1
        assert report["blood_type_distribution"]["Unknown"] == 1
        assert report["top_medical_conditions"][0] == {"condition": "Sickle Cell", "count": 2}
        assert report["immunization_coverage"]["bcg"] == {"immunized": 2, "percentage": 100.0}
        assert report["immunization_coverage"]["measles"] == {"immunized": 1, "percentage": 50.0}
        assert report["immunization_coverage"]["polio"]["percentage"] == 0.0

    def test_empty_store_has_zero_coverage(self, store: RecordStore) -> None:
        report = health_report(store)
        assert report["total_active_children"] == 0
        assert report["immunization_coverage"]["bcg"]["percentage"] == 0.0
