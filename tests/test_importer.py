"""Tests for the import pipeline: row pass, dedup and gateway handoff."""

import pytest

from leads.importer import DUPLICATE_IN_FILE, ImportConfig, LeadImporter, PhoneDeduplicator
from leads.mapping import detect_mappings
from leads.models import BulkImportError, BulkImportResult, CSVParseError, FieldKey, MappingError

from tests.conftest import InMemoryGateway, RaisingGateway, make_csv

FIVE_ROWS = make_csv(
    "Name,Phone,Email",
    "Ann,5550000001,ann@x.com",
    "Ben,5550000002,ben@x.com",
    "Cal,5550000003,cal@x.com",
    "Dee,5550000004,dee@x.com",
    "Eve,5550000005,eve@x.com",
)


class TestPhoneDeduplicator:
    def test_first_occurrence_wins(self):
        dedup = PhoneDeduplicator()
        assert dedup.check_and_add("(555) 123-4567") is False
        assert dedup.check_and_add("555-123-4567") is True
        assert len(dedup) == 1

    def test_country_code_is_a_different_identity(self):
        dedup = PhoneDeduplicator()
        dedup.add("15551234567")
        assert not dedup.seen("5551234567")


def test_end_to_end_duplicate_in_file(importer, gateway):
    text = make_csv(
        "Name,Phone,Email",
        '"John Smith","(555) 123-4567","john@x.com"',
        '"Jane Doe","555-123-4567","jane@x.com"',
    )

    result = importer.import_text(text)

    assert (result.success, result.duplicates, result.db_duplicates, result.failed) == (1, 1, 0, 0)
    assert [(e.row, e.error) for e in result.errors] == [(3, DUPLICATE_IN_FILE)]
    assert result.errors[0].data == ["Jane Doe", "555-123-4567", "jane@x.com"]
    assert len(gateway.calls) == 1
    assert [r["name"] for r in gateway.calls[0]] == ["John Smith"]


def test_same_file_twice_hits_store_duplicates(importer, gateway):
    first = importer.import_text(FIVE_ROWS)
    second = importer.import_text(FIVE_ROWS)

    assert (first.success, first.db_duplicates) == (5, 0)
    assert (second.success, second.db_duplicates) == (0, 5)
    assert [e.row for e in second.errors] == [2, 3, 4, 5, 6]
    assert {e.error for e in second.errors} == {"Phone number already exists"}


def test_bad_phone_is_never_sent(importer, gateway):
    text = make_csv("Name,Phone", "John,123", "Jane,5551234567")

    result = importer.import_text(text)

    assert result.failed == 1
    assert result.errors[0].row == 2
    assert result.errors[0].error == "Invalid phone number format"
    assert [r["phone"] for r in gateway.calls[0]] == ["5551234567"]


def test_every_row_accounted_for(importer):
    text = make_csv(
        "Name,Phone,Email,Score",
        "A,5550000001,a@x.com,90",
        "B,123,,",
        "C,5550000001,,",
        "D,5550000004,bad-email,",
        ",5550000005,,",
        "F,5550000006,f@x.com,101",
    )

    result = importer.import_text(text)

    assert result.total_processed == 6
    assert (result.success, result.failed, result.duplicates) == (2, 3, 1)
    assert [e.row for e in result.errors] == [3, 4, 5, 6]


def test_header_only_file_never_reaches_gateway(importer, gateway):
    with pytest.raises(CSVParseError):
        importer.import_text("Name,Phone\n")
    assert gateway.calls == []


def test_row_cap_checked_before_normalizing(gateway):
    rows = [f"Lead {i},555{i:07d}" for i in range(101)]
    importer = LeadImporter(gateway, ImportConfig(max_rows=100))

    with pytest.raises(CSVParseError, match="Your file has 101 rows"):
        importer.import_text(make_csv("Name,Phone", *rows))
    assert gateway.calls == []


def test_unmapped_phone_blocks_run(importer, gateway):
    with pytest.raises(MappingError) as excinfo:
        importer.import_text(make_csv("Name,Cell", "John,5551234567"))

    assert excinfo.value.missing == ["phone"]
    assert gateway.calls == []


def test_manual_override_enables_run(importer):
    text = make_csv("Name,Cell", "John,5551234567")
    mappings = detect_mappings(["Name", "Cell"], ["John", "5551234567"])
    mappings[1].mapped_field = FieldKey.PHONE

    result = importer.import_text(text, mappings)

    assert result.success == 1


def test_no_candidates_skips_gateway(importer, gateway):
    result = importer.import_text(make_csv("Name,Phone", "John,12", "Jane,34"))

    assert result.failed == 2
    assert gateway.calls == []


def test_store_failures_are_itemized():
    class FlakyGateway(InMemoryGateway):
        def bulk_import(self, records):
            return BulkImportResult(
                success=[records[0]],
                failed=[{"record": records[1], "error": "value too long"}],
            )

    result = LeadImporter(FlakyGateway()).import_text(
        make_csv("Name,Phone", "Ann,5550000001", "Ben,5550000002")
    )

    assert (result.success, result.failed) == (1, 1)
    assert [(e.row, e.error) for e in result.errors] == [(3, "value too long")]
    assert result.total_processed == 2


def test_gateway_exception_fails_every_candidate():
    gateway = RaisingGateway(ConnectionError("connection refused"))
    text = make_csv("Name,Phone", "Ann,5550000001", "Ben,123", "Cal,5550000003")

    result = LeadImporter(gateway).import_text(text)

    assert result.success == 0
    assert result.failed == 3
    assert result.gateway_error == "connection refused"
    assert [(e.row, e.error) for e in result.errors] == [
        (2, "Database error: connection refused"),
        (3, "Invalid phone number format"),
        (4, "Database error: connection refused"),
    ]


def test_gateway_exception_with_partial_counts_is_honored():
    partial = BulkImportResult(success=[{"phone": "5550000001"}], duplicates=[{"phone": "5550000002"}])
    gateway = RaisingGateway(BulkImportError("timeout", import_results=partial, details={"code": "57014"}))
    text = make_csv("Name,Phone", "Ann,5550000001", "Ben,5550000002", "Cal,5550000003")

    result = LeadImporter(gateway).import_text(text)

    assert (result.success, result.db_duplicates, result.failed) == (1, 1, 1)
    assert result.total_processed == 3
    assert result.gateway_error == "timeout"
    assert result.errors[0].row == 0
    assert result.errors[0].error == "Database error: timeout"
    assert result.errors[0].data == {"code": "57014"}
    assert [(e.row, e.error) for e in result.errors[1:]] == [
        (3, "Phone number already exists"),
        (4, "Database error: timeout"),
    ]


def test_gateway_exception_with_empty_partial_fails_every_candidate():
    gateway = RaisingGateway(BulkImportError("boom", import_results=BulkImportResult()))
    text = make_csv("Name,Phone", "Ann,5550000001", "Ben,5550000002")

    result = LeadImporter(gateway).import_text(text)

    assert result.failed == 2
    assert result.total_processed == 2
    assert [(e.row, e.error) for e in result.errors] == [
        (2, "Database error: boom"),
        (3, "Database error: boom"),
    ]


def test_unmatched_store_record_keeps_cells_as_a_list():
    class StrayGateway(InMemoryGateway):
        def bulk_import(self, records):
            stray = {"name": "Zed", "phone": "5559999999"}
            return BulkImportResult(success=list(records), failed=[{"record": stray, "error": "orphan"}])

    result = LeadImporter(StrayGateway()).import_text(make_csv("Name,Phone", "Ann,5550000001"))

    assert result.errors[0].row == 0
    assert result.errors[0].data == ["Zed", "5559999999"]


def test_import_csv_from_disk(tmp_path, importer):
    path = tmp_path / "leads.csv"
    path.write_text(FIVE_ROWS, encoding="utf-8")

    result = importer.import_csv(str(path))

    assert result.success == 5
    assert result.as_dict()["dbDuplicates"] == 0


def test_import_requires_gateway():
    with pytest.raises(ValueError, match="gateway"):
        LeadImporter().import_text(FIVE_ROWS)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("LEADS_IMPORT_MAX_ROWS", "25")
    assert ImportConfig.from_env().max_rows == 25

    monkeypatch.setenv("LEADS_IMPORT_MAX_ROWS", "0")
    with pytest.raises(ValueError):
        ImportConfig.from_env()
