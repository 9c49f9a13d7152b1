"""Unit tests for records/store.py -- child records and attachment rows.

Covers:
- Create/read round trip including JSON columns
- child_id cannot be changed through update_child
- Leaving Active stamps exit_date; archive keeps the row
- Filtering, sorting and pagination
- Ranked free-text search and autocomplete over Active children
- Status/gender/age-group statistics
- Primary photo demotion
"""

from datetime import date

import pytest

from records.models import Attachment, Child
from records.store import RecordStore, age_group_label, age_in_years, parse_sort


def _child(**overrides) -> Child:
    fields = {
        "first_name": "Chidi",
        "last_name": "Nwosu",
        "date_of_birth": "2014-08-02",
        "gender": "Male",
        "genotype": "AA",
        "arrival_circumstances": "Found at the motor park and referred by police.",
        "created_by": 1,
        "admission_date": "2023-02-10",
    }
    fields.update(overrides)
    return Child(**fields)


@pytest.fixture
def store():
    s = RecordStore("sqlite:///:memory:", child_id_prefix="TH")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestAgeHelpers:
    def test_birthday_not_yet_reached(self) -> None:
        assert age_in_years("2015-06-02", today=date(2025, 6, 1)) == 9
        assert age_in_years("2015-06-01", today=date(2025, 6, 1)) == 10

    def test_unparsable_date(self) -> None:
        assert age_in_years("not-a-date") is None

    def test_age_groups(self) -> None:
        assert age_group_label(0) == "0-2"
        assert age_group_label(12) == "12-17"
        assert age_group_label(19) == "18+"
        assert age_group_label(None) is None

    def test_parse_sort(self) -> None:
        assert parse_sort("-admission_date") == ("admission_date", True)
        assert parse_sort("last_name") == ("last_name", False)
        with pytest.raises(ValueError):
            parse_sort("arrival_circumstances")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestCreateAndUpdate:
    def test_round_trip_with_nested_fields(self, store: RecordStore) -> None:
        pk = store.create_child(
            _child(
                allergies=["Peanuts"],
                medical_conditions=[{"condition": "Asthma", "medication": "Inhaler"}],
                immunization_status={"bcg": True, "polio": False},
                emergency_contact={"name": "Mama Ngozi", "phone": "08031234567"},
            ),
            year=2024,
        )
        child = store.get_child(pk)
        assert child.child_id == "TH-2024-001"
        assert child.allergies == ["Peanuts"]
        assert child.medical_conditions[0]["condition"] == "Asthma"
        assert child.immunization_status["bcg"] is True
        assert child.nationality == "Nigerian"
        assert child.last_modified_by == 1

    def test_missing_admission_date_defaults_to_today(self, store: RecordStore) -> None:
        child = store.get_child(store.create_child(_child(admission_date="")))
        assert date.fromisoformat(child.admission_date) >= date(2024, 1, 1)

    def test_lookup_by_child_id_is_case_insensitive(self, store: RecordStore) -> None:
        store.create_child(_child(), year=2024)
        assert store.get_by_child_id("th-2024-001").first_name == "Chidi"

    def test_child_id_is_immutable(self, store: RecordStore) -> None:
        pk = store.create_child(_child(), year=2024)
        with pytest.raises(ValueError):
            store.update_child(pk, modified_by=2, child_id="TH-2024-999")
        assert store.get_child(pk).child_id == "TH-2024-001"

    def test_unknown_field_is_rejected(self, store: RecordStore) -> None:
        pk = store.create_child(_child())
        with pytest.raises(ValueError):
            store.update_child(pk, modified_by=2, favourite_colour="blue")

    def test_update_records_modifier(self, store: RecordStore) -> None:
        pk = store.create_child(_child())
        assert store.update_child(pk, modified_by=7, room_assignment="Room 3")
        child = store.get_child(pk)
        assert child.room_assignment == "Room 3"
        assert child.last_modified_by == 7

    def test_update_missing_row_returns_false(self, store: RecordStore) -> None:
        assert not store.update_child(404, modified_by=1, room_assignment="Room 1")

    def test_leaving_active_stamps_exit_date(self, store: RecordStore) -> None:
        pk = store.create_child(_child())
        store.update_child(pk, modified_by=1, current_status="Adopted")
        assert store.get_child(pk).exit_date is not None

    def test_explicit_exit_date_is_kept(self, store: RecordStore) -> None:
        pk = store.create_child(_child())
        store.update_child(pk, modified_by=1, current_status="Transferred", exit_date="2024-03-01")
        assert store.get_child(pk).exit_date == "2024-03-01"

    def test_archive_keeps_the_row(self, store: RecordStore) -> None:
        pk = store.create_child(_child())
        assert store.archive_child(pk, modified_by=3)
        child = store.get_child(pk)
        assert child is not None
        assert child.current_status == "Exited"
        assert child.exit_reason == "Record archived"
        assert store.count_children() == 1
        assert store.count_children(status="Active") == 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestListChildren:
    @pytest.fixture
    def populated(self, store: RecordStore) -> RecordStore:
        store.create_child(_child(first_name="Ada", admission_date="2023-01-05", state_of_origin="Lagos"))
        store.create_child(_child(first_name="Bola", gender="Female", admission_date="2023-05-05"))
        store.create_child(_child(first_name="Chika", gender="Female", admission_date="2024-02-01"))
        return store

    def test_default_sort_is_newest_admission_first(self, populated: RecordStore) -> None:
        children, total = populated.list_children()
        assert total == 3
        assert [c.first_name for c in children] == ["Chika", "Bola", "Ada"]

    def test_pagination(self, populated: RecordStore) -> None:
        children, total = populated.list_children(page=2, limit=2, sort="first_name")
        assert total == 3
        assert [c.first_name for c in children] == ["Chika"]

    def test_filters_and_date_range(self, populated: RecordStore) -> None:
        children, total = populated.list_children(gender="Female", admitted_from="2024-01-01")
        assert total == 1
        assert children[0].first_name == "Chika"

    def test_search_matches_names(self, populated: RecordStore) -> None:
        _, total = populated.list_children(search="bol")
        assert total == 1

    def test_search_wildcards_match_literally(self, populated: RecordStore) -> None:
        assert populated.list_children(search="%")[1] == 0
        assert populated.list_children(search="_")[1] == 0

    def test_unknown_filter_raises(self, populated: RecordStore) -> None:
        with pytest.raises(ValueError):
            populated.list_children(genotype="AA")


class TestSearch:
    def test_name_hits_outrank_note_hits(self, store: RecordStore) -> None:
        store.create_child(_child(first_name="Musa", social_worker_notes="Sibling of Grace"))
        store.create_child(_child(first_name="Grace"))
        results = store.search_children("grace")
        assert [c.first_name for c in results] == ["Grace", "Musa"]

    def test_exact_child_id_comes_first(self, store: RecordStore) -> None:
        store.create_child(_child(), year=2024)
        store.create_child(_child(social_worker_notes="Transferred with TH-2024-001"), year=2024)
        results = store.search_children("TH-2024-001")
        assert results[0].child_id == "TH-2024-001"

    def test_blank_query_returns_nothing(self, store: RecordStore) -> None:
        store.create_child(_child())
        assert store.search_children("   ") == []

    def test_underscore_is_not_a_wildcard(self, store: RecordStore) -> None:
        store.create_child(_child(first_name="Kemi", room_assignment="Block_A"))
        store.create_child(_child(first_name="Lola", room_assignment="BlockXA"))
        assert [c.first_name for c in store.search_children("block_a")] == ["Kemi"]

    def test_limit(self, store: RecordStore) -> None:
        for _ in range(4):
            store.create_child(_child())
        assert len(store.search_children("Chidi", limit=2)) == 2


class TestAutocomplete:
    def test_distinct_prefix_matches_among_active(self, store: RecordStore) -> None:
        store.create_child(_child(first_name="Emeka"))
        store.create_child(_child(first_name="Emeka"))
        store.create_child(_child(first_name="Efe"))
        exited = store.create_child(_child(first_name="Esther"))
        store.archive_child(exited, modified_by=1)
        assert store.autocomplete("first_name", "e") == ["Efe", "Emeka"]

    def test_medical_conditions(self, store: RecordStore) -> None:
        store.create_child(_child(medical_conditions=[{"condition": "Asthma"}, {"condition": "Anaemia"}]))
        store.create_child(_child(medical_conditions=[{"condition": "asthma"}]))
        assert store.autocomplete("medical_conditions", "as") == ["Asthma"]

    def test_wildcard_prefix_matches_nothing(self, store: RecordStore) -> None:
        store.create_child(_child(first_name="Efe"))
        assert store.autocomplete("first_name", "%") == []
        assert store.autocomplete("first_name", "_fe") == []

    def test_unsupported_field(self, store: RecordStore) -> None:
        with pytest.raises(ValueError):
            store.autocomplete("social_worker_notes", "a")


class TestChildStats:
    def test_counts_by_status_gender_and_age(self, store: RecordStore) -> None:
        store.create_child(_child(date_of_birth="2024-01-01"))
        store.create_child(_child(gender="Female", date_of_birth="2013-01-01"))
        gone = store.create_child(_child(date_of_birth="2010-01-01"))
        store.archive_child(gone, modified_by=1)

        stats = store.child_stats(today=date(2025, 6, 1))
        by_status = {s["status"]: s for s in stats["by_status"]}
        assert stats["total"] == 3
        assert by_status["Active"]["count"] == 2
        assert by_status["Exited"]["count"] == 1
        assert by_status["Exited"]["average_age"] == 15.0
        assert by_status["Adopted"]["count"] == 0
        assert by_status["Adopted"]["average_age"] is None
        assert stats["by_gender"] == {"Male": 1, "Female": 1}
        assert stats["by_age_group"]["0-2"] == 1
        assert stats["by_age_group"]["12-17"] == 1


class TestAttachments:
    def _photo(self, primary: bool) -> Attachment:
        return Attachment(
            entity_type="children",
            entity_id=1,
            kind="photo",
            filename="photo-x.png",
            path="children/1/photo-x.png",
            content_type="image/png",
            size_bytes=10,
            is_primary=primary,
        )

    def test_new_primary_demotes_the_old_one(self, store: RecordStore) -> None:
        first = store.add_attachment(self._photo(True))
        second = store.add_attachment(self._photo(True))
        assert not store.get_attachment(first).is_primary
        assert store.get_attachment(second).is_primary

    def test_list_filters_by_kind_newest_first(self, store: RecordStore) -> None:
        first = store.add_attachment(self._photo(False))
        second = store.add_attachment(self._photo(False))
        assert [a.id for a in store.list_attachments("children", 1, kind="photo")] == [second, first]
        assert store.list_attachments("children", 1, kind="document") == []
        assert store.list_attachments("staff", 1) == []

    def test_delete(self, store: RecordStore) -> None:
        attachment_id = store.add_attachment(self._photo(False))
        assert store.delete_attachment(attachment_id)
        assert store.get_attachment(attachment_id) is None
        assert not store.delete_attachment(attachment_id)

    def test_ping(self, store: RecordStore) -> None:
        assert store.ping()
