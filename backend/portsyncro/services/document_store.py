# backend/portsyncro/services/document_store.py
"""
SQL-backed document store.

Each document is one row of the ``documents`` table, addressed by a
slash-separated key:

    users/<uid>/portfolio            - current holdings
    users/<uid>/history/<YYYY-MM-DD> - one snapshot per day

Semantics:
- get: the stored dict, or None
- set: full replacement; nothing of the previous document survives
- update: shallow merge of top-level fields; creates the document if absent
- list: every document whose key starts with ``prefix``, ordered by key

Usage:
    store = SqlDocumentStore(SessionLocal)
    store.set("users/u1/portfolio", {"stocks": [], "crypto": []})
    store.update("users/u1/portfolio", {"cash": []})
"""

import copy
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from portsyncro.models import Document

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlDocumentStore:
    """
    DocumentStore backed by SQLAlchemy.

    Opens a short-lived session per call so the store can be shared as a
    singleton.

    Args:
        session_factory: Callable returning a new Session (e.g. SessionLocal)
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> dict[str, Any] | None:
        with self._session_factory() as db:
            document = db.get(Document, key)
            if document is None:
                return None
            return copy.deepcopy(document.data)

    def set(self, key: str, data: dict[str, Any]) -> None:
        with self._session_factory() as db:
            document = db.get(Document, key)
            if document is None:
                db.add(Document(key=key, data=copy.deepcopy(data)))
            else:
                # Reassign so the JSON column registers the change
                document.data = copy.deepcopy(data)
            db.commit()
        logger.debug(f"Document {key} written")

    def update(self, key: str, data: dict[str, Any]) -> dict[str, Any]:
        with self._session_factory() as db:
            document = db.get(Document, key)
            if document is None:
                merged = copy.deepcopy(data)
                db.add(Document(key=key, data=merged))
            else:
                merged = {**document.data, **copy.deepcopy(data)}
                document.data = merged
            db.commit()
        logger.debug(f"Document {key} merged ({len(data)} fields)")
        return copy.deepcopy(merged)

    def list(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(Document)
                .where(Document.key.like(f"{_escape_like(prefix)}%", escape="\\"))
                .order_by(Document.key)
            ).all()
            return [(row.key, copy.deepcopy(row.data)) for row in rows]
