# database.py (banco de documentos local em SQLite)
import sqlite3
import json
import os
import logging
from datetime import datetime, timezone
from metrocal import config

DB_PATH = config.DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    data_json TEXT NOT NULL,
    last_modified TEXT NOT NULL,
    PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents (collection);
"""

# ==============================================================================
# SEÇÃO 1: GERENCIADOR DE CONTEXTO DA CONEXÃO
# ==============================================================================

class DatabaseConnection:
    """
    Gerenciador de contexto para a conexão SQLite.
    Abre, fecha, faz commit ou rollback automaticamente.
    """
    def __init__(self, db_name=DB_PATH):
        self.db_name = db_name
        self.conn = None

    def __enter__(self):
        try:
            self.conn = sqlite3.connect(self.db_name, timeout=30)
            self.conn.row_factory = sqlite3.Row
            logging.debug("Conexão com o banco aberta.")
            return self.conn
        except sqlite3.Error as e:
            logging.error(f"Erro de conexão com o banco: {e}", exc_info=True)
            raise

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logging.warning(f"Exceção durante a transação, rollback executado. Erro: {exc_val}")
            if self.conn is not None:
                self.conn.rollback()
        else:
            if self.conn is not None:
                self.conn.commit()

        if self.conn is not None:
            self.conn.close()
        logging.debug("Conexão com o banco fechada.")
        return False  # não suprime exceções


def _decode(row):
    if not row:
        return None
    try:
        return json.loads(row['data_json'])
    except (json.JSONDecodeError, TypeError):
        logging.error(f"Documento corrompido em {row['collection']}/{row['doc_id']}.")
        raise


# ==============================================================================
# SEÇÃO 2: BANCO DE DOCUMENTOS
# ==============================================================================

class SqliteDocumentStore:
    """
    Banco de documentos local: um documento JSON por linha, chaveado por
    (coleção, id). O upsert faz merge dos campos de primeiro nível.
    """

    def __init__(self, db_path=DB_PATH):
        self.db_path = db_path
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
        with DatabaseConnection(self.db_path) as conn:
            conn.executescript(SCHEMA)
        logging.info(f"Banco de documentos pronto em {self.db_path}")

    def list(self, collection: str) -> list:
        with DatabaseConnection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE collection = ? ORDER BY doc_id", (collection,)
            ).fetchall()
            return [_decode(r) for r in rows]

    def get(self, collection: str, doc_id: str):
        with DatabaseConnection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND doc_id = ?", (collection, doc_id)
            ).fetchone()
            return _decode(row)

    def query(self, collection: str, field: str, value) -> list:
        with DatabaseConnection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND json_extract(data_json, ?) = ?",
                (collection, f"$.{field}", value),
            ).fetchall()
            return [_decode(r) for r in rows]

    def upsert(self, collection: str, doc_id: str, record: dict) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        with DatabaseConnection(self.db_path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND doc_id = ?", (collection, doc_id)
            ).fetchone()
            merged = _decode(row) or {}
            merged.update(record)
            conn.execute(
                """
                INSERT INTO documents (collection, doc_id, data_json, last_modified)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(collection, doc_id) DO UPDATE SET
                    data_json = excluded.data_json,
                    last_modified = excluded.last_modified
                """,
                (collection, doc_id, json.dumps(merged, ensure_ascii=False), timestamp),
            )
        logging.debug(f"Documento {collection}/{doc_id} gravado.")

    def delete(self, collection: str, doc_id: str) -> None:
        with DatabaseConnection(self.db_path) as conn:
            conn.execute("DELETE FROM documents WHERE collection = ? AND doc_id = ?", (collection, doc_id))
        logging.info(f"Documento {collection}/{doc_id} excluído.")

    def delete_batch(self, collection: str, doc_ids) -> int:
        doc_ids = list(doc_ids)
        if not doc_ids:
            return 0
        with DatabaseConnection(self.db_path) as conn:
            cursor = conn.executemany(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                [(collection, doc_id) for doc_id in doc_ids],
            )
            deleted = cursor.rowcount
        logging.info(f"Lote de {deleted} documentos excluído de '{collection}'.")
        return deleted
