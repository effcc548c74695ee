"""
Document store over SQLite.
Visions and products are JSON documents; every mutation is a single-document transaction.
Link maps on two different documents are never updated together.
"""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .db import get_db, init_db, COLLECTIONS
from util.logging import logger


def _now() -> str:
    return datetime.now().isoformat()


def _check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    return collection


def _set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted path like 'linked_vision.<id>', creating intermediate maps."""
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value


def _get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    target = doc
    for part in path.split("."):
        if not isinstance(target, dict) or part not in target:
            return default
        target = target[part]
    return target


def _unset_path(doc: Dict[str, Any], path: str) -> bool:
    parts = path.split(".")
    target = _get_path(doc, ".".join(parts[:-1])) if len(parts) > 1 else doc
    if isinstance(target, dict) and parts[-1] in target:
        del target[parts[-1]]
        return True
    return False


class DocumentStore:
    """SQLite-backed JSON document store keyed by collection and id."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path
        init_db(db_path)

    def _where(self, criteria: Dict[str, Any]):
        clauses = []
        params = []
        for field, value in criteria.items():
            if not field.replace("_", "").isalnum():
                raise ValueError(f"Invalid field name: {field}")
            clauses.append(f"json_extract(body, '$.{field}') = ?")
            params.append(value)
        sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return sql, params

    def _mutate(self, collection: str, doc_id: str, mutator) -> bool:
        """Read-modify-write one document inside a single transaction."""
        _check_collection(collection)
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            cursor.execute(f"SELECT body FROM {collection} WHERE id = ?", (doc_id,))
            row = cursor.fetchone()
            if not row:
                conn.rollback()
                return False

            doc = json.loads(row[0])
            mutator(doc)
            doc["updated_at"] = _now()
            cursor.execute(
                f"UPDATE {collection} SET body = ? WHERE id = ?",
                (json.dumps(doc), doc_id)
            )
            conn.commit()
            return True

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a document by id, or None."""
        _check_collection(collection)
        if not doc_id:
            return None

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT body FROM {collection} WHERE id = ?", (doc_id,))
            row = cursor.fetchone()
            return json.loads(row[0]) if row else None

    def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        """Insert a document and return its assigned id."""
        _check_collection(collection)
        doc = dict(doc)
        doc_id = doc.get("id") or uuid.uuid4().hex
        now = _now()
        doc["id"] = doc_id
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"INSERT INTO {collection} (id, body) VALUES (?, ?)",
                (doc_id, json.dumps(doc))
            )
            conn.commit()

        logger.log_document_operation("inserted", collection, doc_id)
        return doc_id

    def update_fields(self, collection: str, doc_id: str, partial: Dict[str, Any],
                      defaults: Dict[str, Any] = None) -> bool:
        """
        Set one or more (dotted) paths on a document in one write.

        Paths in ``defaults`` are only written when currently missing, which is
        how click counters get their 0 entry without resetting existing counts.
        Returns False if the document does not exist.
        """
        def mutator(doc):
            for path, value in partial.items():
                _set_path(doc, path, value)
            for path, value in (defaults or {}).items():
                if _get_path(doc, path) is None:
                    _set_path(doc, path, value)

        return self._mutate(collection, doc_id, mutator)

    def unset_field(self, collection: str, doc_id: str, path: str) -> bool:
        """Remove a (dotted) path from a document. Returns False if it does not exist."""
        return self._mutate(collection, doc_id, lambda doc: _unset_path(doc, path))

    def increment_field(self, collection: str, doc_id: str, path: str, amount: int = 1) -> Optional[int]:
        """Add to a numeric path, treating a missing value as 0. Returns the new value."""
        result = {}

        def mutator(doc):
            value = int(_get_path(doc, path, 0) or 0) + amount
            _set_path(doc, path, value)
            result["value"] = value

        if not self._mutate(collection, doc_id, mutator):
            return None
        return result["value"]

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if a row was removed."""
        _check_collection(collection)
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"DELETE FROM {collection} WHERE id = ?", (doc_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            logger.log_document_operation("deleted", collection, doc_id)
        return deleted

    def count_where(self, collection: str, **criteria) -> int:
        """Count documents whose top-level fields equal the given values."""
        _check_collection(collection)
        where, params = self._where(criteria)
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT COUNT(*) FROM {collection}{where}", params)
            result = cursor.fetchone()
            return result[0] if result else 0

    def find(self, collection: str, skip: int = 0, limit: int = None, **criteria) -> List[Dict[str, Any]]:
        """List matching documents, newest first."""
        _check_collection(collection)
        where, params = self._where(criteria)
        sql = (
            f"SELECT body FROM {collection}{where} "
            f"ORDER BY json_extract(body, '$.created_at') DESC, id"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = params + [limit, skip]
        elif skip:
            sql += " LIMIT -1 OFFSET ?"
            params = params + [skip]

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            return [json.loads(row[0]) for row in cursor.fetchall()]

    def find_one(self, collection: str, **criteria) -> Optional[Dict[str, Any]]:
        """Return the newest matching document, or None."""
        results = self.find(collection, limit=1, **criteria)
        return results[0] if results else None
