# metrocal/remote_store.py
import logging

import requests

from metrocal import config
from metrocal.errors import CollaboratorFailure


class RemoteDocumentStore:
    """
    Cliente HTTP do banco de documentos hospedado.

    Mesmo contrato do SqliteDocumentStore: list / get / query / upsert /
    delete / delete_batch. Falhas de rede viram CollaboratorFailure.
    """

    def __init__(self, base_url=None, auth=None, session=None, timeout=30):
        self.base_url = (base_url or config.SERVER_URL).rstrip('/')
        self.auth = auth
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> dict:
        return self.auth.get_auth_headers() if self.auth is not None else {}

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
            if response.status_code == 404 and method == "GET":
                return None
            response.raise_for_status()
            return response.json() if response.content else None
        except requests.RequestException as e:
            status = getattr(e.response, 'status_code', None)
            if status == 401:
                message = "Erro de autenticação (401). A sessão pode ter expirado."
            elif status == 403:
                message = "Erro de permissão no banco de dados."
            else:
                message = "Não foi possível conectar ao banco de dados. Verifique a conexão e o endereço no config.ini."
            logging.error(f"{method} {url} falhou: {e}", exc_info=True)
            raise CollaboratorFailure(message) from e

    def check_connection(self) -> bool:
        try:
            self._request("GET", "/collections/equipment", params={"limit": 1})
            return True
        except CollaboratorFailure:
            return False

    def list(self, collection: str) -> list:
        return self._request("GET", f"/collections/{collection}") or []

    def get(self, collection: str, doc_id: str):
        return self._request("GET", f"/collections/{collection}/{doc_id}")

    def query(self, collection: str, field: str, value) -> list:
        return self._request("GET", f"/collections/{collection}", params={field: value}) or []

    def upsert(self, collection: str, doc_id: str, record: dict) -> None:
        self._request("PUT", f"/collections/{collection}/{doc_id}", json=record, params={"merge": "true"})

    def delete(self, collection: str, doc_id: str) -> None:
        self._request("DELETE", f"/collections/{collection}/{doc_id}")

    def delete_batch(self, collection: str, doc_ids) -> int:
        doc_ids = list(doc_ids)
        if not doc_ids:
            return 0
        result = self._request("POST", f"/collections/{collection}:batchDelete", json={"ids": doc_ids}) or {}
        return result.get("deleted", len(doc_ids))
