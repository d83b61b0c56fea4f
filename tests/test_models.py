"""Tests for Orgbook record schemas."""

import pytest

from orgbook.models import (
    AuditAction,
    AuditLog,
    AuditLogFilters,
    Contact,
    ContactKind,
    EntityKind,
    EntityRecord,
    Industry,
    Person,
    RecordDecodeError,
)


class TestEntityRecord:
    """Tests for EntityRecord decoding."""

    def test_from_api(self):
        """Test decoding a company with free attributes."""
        record = EntityRecord.from_api({
            "record_id": 12,
            "company_group_print_name": "Acme Foods",
            "company_group_data_type": "Company",
            "parent_id": 3,
            "legal_name": "Acme Foods Ltd",
            "other_names": "",
            "ownership_type": "Private",
            "founding_year": 1990,
        })

        assert record.id == "12"
        assert record.parent_id == "3"
        assert record.kind is EntityKind.COMPANY
        assert record.legal_name == "Acme Foods Ltd"
        assert record.other_names is None
        assert record.attributes == {"ownership_type": "Private", "founding_year": 1990}

    def test_default_kind(self):
        """Test that a kind-specific endpoint can supply the kind."""
        record = EntityRecord.from_api(
            {"record_id": "g1", "group_print_name": "Holding"},
            default_kind=EntityKind.GROUP,
        )
        assert record.kind is EntityKind.GROUP
        assert record.display_name == "Holding"

    def test_missing_id(self):
        """Test that a record without an id is rejected."""
        with pytest.raises(RecordDecodeError):
            EntityRecord.from_api({"company_group_print_name": "No id", "company_group_data_type": "Company"})

    def test_unknown_kind(self):
        """Test that an unknown type is rejected."""
        with pytest.raises(RecordDecodeError, match="Unknown entity type"):
            EntityRecord.from_api({"record_id": 1, "company_group_data_type": "Branch"})

    def test_wrong_field_types(self):
        """Test that validation failures surface as RecordDecodeError."""
        with pytest.raises(RecordDecodeError, match="Invalid entity record"):
            EntityRecord.from_api(
                {"record_id": 1, "company_group_print_name": 123, "company_group_data_type": "Company"}
            )
        with pytest.raises(RecordDecodeError):
            EntityRecord.from_api(["not", "a", "record"])

    def test_to_payload_keeps_attributes(self):
        """Test that encoding carries attributes and named fields."""
        record = EntityRecord(
            id="5",
            display_name="Bolt",
            kind=EntityKind.DIVISION,
            parent_id="4",
            attributes={"ntn_no": "123"},
        )
        payload = record.to_payload()

        assert payload["ntn_no"] == "123"
        assert payload["company_group_print_name"] == "Bolt"
        assert payload["company_group_data_type"] == "Division"
        assert payload["parent_id"] == "4"
        assert payload["legal_name"] == ""

    def test_collection_paths(self):
        """Test each kind's backend collection."""
        assert EntityKind.COMPANY.collection_path == "/companies/"
        assert EntityKind.GROUP.collection_path == "/groups/"
        assert EntityKind.DIVISION.collection_path == "/divisions/"


class TestIndustry:
    """Tests for Industry decoding."""

    def test_from_api(self):
        """Test decoding an industry."""
        industry = Industry.from_api(
            {"id": "7", "industry_name": "Textiles", "category": "sub", "parent_id": 2}
        )
        assert industry.id == 7
        assert industry.display_name == "Textiles"
        assert industry.parent_id == 2

    def test_bad_id(self):
        """Test that a non-numeric id is rejected."""
        with pytest.raises(RecordDecodeError):
            Industry.from_api({"id": "abc", "industry_name": "X"})


class TestPerson:
    """Tests for Person decoding."""

    def test_from_api(self):
        """Test decoding a person with attached companies."""
        person = Person.from_api({
            "record_id": 4,
            "person_print_name": "A. Khan",
            "full_name": "Ali Khan",
            "designation": "CFO",
            "attached_companies": ["1", 2],
            "nic_no": "xyz",
        })
        assert person.id == 4
        assert person.display_name == "A. Khan"
        assert person.attached_companies == [1, 2]
        assert person.attributes == {"nic_no": "xyz"}

    def test_falls_back_to_full_name(self):
        """Test the display name fallback."""
        assert Person.from_api({"record_id": 1, "full_name": "Sara"}).display_name == "Sara"

    def test_bad_company_id(self):
        """Test that a non-numeric attached company is rejected."""
        with pytest.raises(RecordDecodeError):
            Person.from_api({"record_id": 1, "attached_companies": ["x"]})

    def test_to_payload_round_trips_attributes(self):
        """Test that unknown fields survive an edit and blanks are sent empty."""
        person = Person.from_api({"record_id": 4, "person_print_name": "A. Khan", "nic_no": "xyz"})
        person.attached_companies = [7]
        payload = person.to_payload()
        assert payload["nic_no"] == "xyz"
        assert payload["person_print_name"] == "A. Khan"
        assert payload["gender"] == ""
        assert payload["attached_companies"] == [7]
        assert "record_id" not in payload


class TestContact:
    """Tests for Contact decoding."""

    @pytest.mark.parametrize(
        "kind,id_field,label_field",
        [
            (ContactKind.PHONE, "phone_id", "phone_number"),
            (ContactKind.EMAIL, "email_id", "email_address"),
            (ContactKind.LOCATION, "location_id", "location_name"),
        ],
    )
    def test_field_names_per_kind(self, kind, id_field, label_field):
        """Test that each kind reads its own id and label fields."""
        contact = Contact.from_api(kind, {id_field: 3, label_field: "value", "associations": []})
        assert contact.id == 3
        assert contact.label == "value"
        assert contact.kind is kind

    def test_associations_decoded(self):
        """Test that embedded associations become links."""
        contact = Contact.from_api(
            ContactKind.PHONE,
            {
                "phone_id": 1,
                "phone_number": "+92 300 0000000",
                "associations": [
                    {"association_id": 9, "company_id": 2, "departments": ["Sales"]},
                    {"association_id": 10, "person_id": 5},
                ],
            },
        )
        assert [link.key for link in contact.associations] == ["2-", "-5"]
        assert contact.associations[0].departments == ["Sales"]

    def test_missing_id(self):
        """Test that a contact without its id field is rejected."""
        with pytest.raises(RecordDecodeError):
            Contact.from_api(ContactKind.EMAIL, {"email_address": "a@b.c"})

    def test_paths(self):
        """Test contact URL segments."""
        assert ContactKind.PHONE.path == "/cell-phones"
        assert ContactKind.EMAIL.path == "/emails"
        assert ContactKind.LOCATION.path == "/locations"

    def test_record_keys(self):
        """Test the keys that wrap a record in a create request."""
        assert ContactKind.PHONE.record_key == "phone"
        assert ContactKind.EMAIL.record_key == "email"
        assert ContactKind.LOCATION.record_key == "location"


class TestAuditLog:
    """Tests for audit log records and filters."""

    def test_from_api(self):
        """Test decoding an audit entry."""
        entry = AuditLog.from_api({
            "id": 1,
            "table_name": "companies",
            "record_id": 12,
            "field_name": "legal_name",
            "action_type": "UPDATE",
            "old_value": "Old",
            "new_value": "New",
            "user_id": 3,
            "timestamp": "2026-01-17T10:00:00",
        })
        assert entry.record_id == "12"
        assert entry.user_id == "3"
        assert entry.action_type is AuditAction.UPDATE

    def test_invalid_entry(self):
        """Test that a malformed entry is rejected."""
        with pytest.raises(RecordDecodeError):
            AuditLog.from_api({"id": 1, "action_type": "RENAME"})

    def test_null_id(self):
        """Test that a null id is a decode error rather than a TypeError."""
        with pytest.raises(RecordDecodeError):
            AuditLog.from_api({
                "id": None,
                "table_name": "companies",
                "record_id": 1,
                "action_type": "CREATE",
                "timestamp": "2026-01-17T10:00:00",
            })

    def test_filters_drop_unset(self):
        """Test that only set filters become query parameters."""
        filters = AuditLogFilters(table_name="persons", action_type=AuditAction.DELETE, limit=10)
        assert filters.to_params() == {"table_name": "persons", "action_type": "DELETE", "limit": "10"}
