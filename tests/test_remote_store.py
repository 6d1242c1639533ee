from types import SimpleNamespace

import pytest
import requests

from metrocal.errors import CollaboratorFailure
from metrocal.remote_store import RemoteDocumentStore


class FakeSession:
    def __init__(self, status_code=200, payload=None, error=None):
        self.status_code = status_code
        self.payload = payload
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        status_code, payload = self.status_code, self.payload

        def raise_for_status():
            if status_code >= 400:
                raise requests.HTTPError(str(status_code), response=SimpleNamespace(status_code=status_code))
        return SimpleNamespace(
            status_code=status_code,
            content=b"{}" if payload is not None else b"",
            json=lambda: payload,
            raise_for_status=raise_for_status,
        )


class FakeAuth:
    def get_auth_headers(self):
        return {"Authorization": "Bearer abc"}


def test_upsert_sends_merge_put_with_auth():
    session = FakeSession()
    store = RemoteDocumentStore("http://srv/", auth=FakeAuth(), session=session)
    store.upsert("equipment", "A", {"id": "A"})
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("PUT", "http://srv/collections/equipment/A")
    assert kwargs["params"] == {"merge": "true"}
    assert kwargs["json"] == {"id": "A"}
    assert kwargs["headers"] == {"Authorization": "Bearer abc"}


def test_get_missing_document_returns_none():
    store = RemoteDocumentStore("http://srv", session=FakeSession(status_code=404))
    assert store.get("equipment", "X") is None


def test_query_and_delete_batch():
    session = FakeSession(payload=[{"id": "c1"}])
    store = RemoteDocumentStore("http://srv", session=session)
    assert store.query("calibrations", "equipmentId", "A") == [{"id": "c1"}]
    assert session.calls[0][2]["params"] == {"equipmentId": "A"}

    session.payload = {"deleted": 3}
    assert store.delete_batch("equipment", ["a", "b", "c"]) == 3
    assert session.calls[1][1] == "http://srv/collections/equipment:batchDelete"
    assert store.delete_batch("equipment", []) == 0


@pytest.mark.parametrize("status, fragment", [(401, "401"), (403, "permissão"), (500, "conectar")])
def test_http_errors_become_collaborator_failures(status, fragment):
    store = RemoteDocumentStore("http://srv", session=FakeSession(status_code=status))
    with pytest.raises(CollaboratorFailure, match=fragment):
        store.list("equipment")


def test_network_error_and_connection_check():
    store = RemoteDocumentStore("http://srv", session=FakeSession(error=requests.ConnectionError("down")))
    with pytest.raises(CollaboratorFailure):
        store.upsert("equipment", "A", {})
    assert store.check_connection() is False
