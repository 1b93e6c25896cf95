import pytest

from leads.importer import ImportSession, ImportState, InvalidStateError
from leads.models import CSVParseError, FieldKey, MappingError, ValidationError

from tests.conftest import make_csv

TEXT = make_csv("Contact Name,Cell,Email", "John Smith,(555) 123-4567,john@x.com")


@pytest.fixture()
def session(importer):
    return ImportSession(importer)


def test_full_lifecycle(session, gateway):
    assert session.state is ImportState.IDLE

    mappings = session.load_text(TEXT)
    assert session.state is ImportState.MAPPING_PENDING
    assert [m.mapped_field for m in mappings] == [FieldKey.CONTACT_NAME, None, FieldKey.EMAIL]

    session.set_mapping(1, "phone")
    result = session.run()

    assert session.state is ImportState.COMPLETED
    assert result.success == 1
    assert gateway.calls[0][0]["name"] == "John Smith"

    session.reset()
    assert session.state is ImportState.IDLE
    assert session.result is None


def test_rejected_mapping_keeps_session_pending(session, gateway):
    session.load_text(TEXT)

    with pytest.raises(MappingError):
        session.run()

    assert session.state is ImportState.MAPPING_PENDING
    assert gateway.calls == []


def test_cancel_only_before_processing(session):
    session.load_text(TEXT)
    session.cancel()
    assert session.state is ImportState.IDLE
    assert session.mappings == []

    with pytest.raises(InvalidStateError):
        session.cancel()


def test_parse_failure_leaves_session_idle(session):
    with pytest.raises(CSVParseError):
        session.load_text("Name,Phone")
    assert session.state is ImportState.IDLE


def test_mapping_edits_rejected_after_completion(session):
    session.load_text(TEXT)
    session.set_mapping(1, FieldKey.PHONE)
    session.run()

    with pytest.raises(InvalidStateError):
        session.set_mapping(0, "name")
    with pytest.raises(InvalidStateError):
        session.load_text(TEXT)


def test_load_file_requires_csv_extension(session, tmp_path):
    path = tmp_path / "leads.txt"
    path.write_text(TEXT, encoding="utf-8")

    with pytest.raises(ValidationError, match="Please select a CSV file"):
        session.load_file(str(path))


def test_load_file(session, tmp_path):
    path = tmp_path / "leads.CSV"
    path.write_text(TEXT, encoding="utf-8")

    session.load_file(str(path))

    assert session.headers == ["Contact Name", "Cell", "Email"]
    assert session.rows == [["John Smith", "(555) 123-4567", "john@x.com"]]
