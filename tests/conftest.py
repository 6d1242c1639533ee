import copy
import threading
from datetime import date
from types import SimpleNamespace

import pytest

from metrocal.data_models import Equipment


class FakeStore:
    """In-memory document store with the same contract as SqliteDocumentStore."""

    def __init__(self):
        self.docs = {}
        self.upserts = []
        self.fail_on = None  # callable(collection, doc_id, record) -> bool
        self._lock = threading.Lock()

    def list(self, collection):
        return [copy.deepcopy(d) for d in self.docs.get(collection, {}).values()]

    def get(self, collection, doc_id):
        doc = self.docs.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def query(self, collection, field, value):
        return [d for d in self.list(collection) if d.get(field) == value]

    def upsert(self, collection, doc_id, record):
        if self.fail_on is not None and self.fail_on(collection, doc_id, record):
            raise ConnectionError(f"write refused for {collection}/{doc_id}")
        with self._lock:
            existing = self.docs.setdefault(collection, {}).get(doc_id, {})
            merged = dict(existing)
            merged.update(copy.deepcopy(record))
            self.docs[collection][doc_id] = merged
            self.upserts.append((collection, doc_id))

    def delete(self, collection, doc_id):
        self.docs.get(collection, {}).pop(doc_id, None)

    def delete_batch(self, collection, doc_ids):
        deleted = 0
        for doc_id in doc_ids:
            if self.docs.get(collection, {}).pop(doc_id, None) is not None:
                deleted += 1
        return deleted


class FakeNarrative:
    def __init__(self, text="PARECER GERADO POR IA: conforme."):
        self.text = text
        self.calls = []

    def analyze(self, equipment, record):
        self.calls.append((equipment.id, record.id))
        return self.text


class FakeMessages:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        blocks = [] if self.text is None else [SimpleNamespace(type="text", text=self.text)]
        return SimpleNamespace(content=blocks)


class FakeAnthropicClient:
    def __init__(self, text=None, error=None):
        self.messages = FakeMessages(text, error)


class FakeAuth:
    def __init__(self, display_name=None):
        self.current_user = SimpleNamespace(display_name=display_name, email="tec@example.com") if display_name else None


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def today():
    return date(2024, 6, 15)


@pytest.fixture
def caliper():
    return Equipment(
        id="PAQ-001",
        tag="PAQ-001",
        name="Paquímetro Digital",
        manufacturer="Mitutoyo",
        model="500-196",
        serial_number="SN123",
        range="0-150 mm",
        resolution="0.01 mm",
        accuracy="±0.03 mm",
        next_calibration_date="2024-07-01",
        created_at="2024-01-01T00:00:00",
    )


@pytest.fixture
def stored_caliper(store, caliper):
    store.upsert("equipment", caliper.id, caliper.to_dict())
    return caliper
