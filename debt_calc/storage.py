"""Key-value persistence backends for the loan store.

The store keeps its whole state in a single JSON blob under a fixed key. This
module abstracts where that blob lives: an in-memory dictionary for tests and
throwaway sessions, or any SQLAlchemy-compatible database (SQLite by default)
for the CLI and web app.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

STATE_KEY = "debtcalc.state.v1"
DEFAULT_DATABASE_URL = "sqlite:///debtcalc.sqlite3"

Base = declarative_base()


class StorageError(Exception):
    """Raised when a backend cannot read or write a value."""


class KeyValueStorage:
    """Interface of the key-value collaborator used by the store."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    """Dictionary-backed storage with an optional per-value size quota."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, *, max_bytes: Optional[int] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})
        self._max_bytes = max_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._max_bytes is not None and len(value.encode("utf-8")) > self._max_bytes:
            raise StorageError(f"Quota exceeded writing {key!r}")
        self._items[key] = value


class KeyValueModel(Base):
    __tablename__ = "kv_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SqlStorage(KeyValueStorage):
    """Database-backed key-value storage."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def get_item(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                row = session.get(KeyValueModel, key)
                return row.value if row else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {key!r}: {exc}") from exc

    def set_item(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                row = session.get(KeyValueModel, key)
                if row is None:
                    session.add(KeyValueModel(key=key, value=value))
                else:
                    row.value = value
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write {key!r}: {exc}") from exc

    def dispose(self) -> None:
        self._engine.dispose()


def create_storage_from_env(url: Optional[str]) -> SqlStorage:
    return SqlStorage(url or DEFAULT_DATABASE_URL)
