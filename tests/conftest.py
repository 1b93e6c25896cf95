import pytest

from leads.importer import LeadImporter
from leads.models import BulkImportResult
from leads.normalize import phone_identity


class InMemoryGateway:
    """Stores records in a dict keyed by phone digits."""

    def __init__(self):
        self.stored = {}
        self.calls = []

    def bulk_import(self, records):
        self.calls.append(list(records))
        result = BulkImportResult()
        for record in records:
            key = phone_identity(record["phone"])
            if key in self.stored:
                result.duplicates.append(record)
            else:
                self.stored[key] = record
                result.success.append(record)
        return result


class RaisingGateway:
    def __init__(self, error):
        self.error = error
        self.calls = []

    def bulk_import(self, records):
        self.calls.append(list(records))
        raise self.error


@pytest.fixture()
def gateway():
    return InMemoryGateway()


@pytest.fixture()
def importer(gateway):
    return LeadImporter(gateway)


def make_csv(header, *rows):
    return "\n".join([header, *rows]) + "\n"
