"""
Storage backends for dashboard records.

Records are flat snake_case dicts grouped in named collections. The backend is
chosen once at startup (build_storage_backend); callers never branch on it.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import (
    ComplianceRecord,
    Deliverable,
    ExternalPartner,
    FinancialRecord,
    Partner,
    Personnel,
)
from app.models.base import new_record_id

logger = logging.getLogger(__name__)

# Collection keys.
MASTER_REGISTER = "masterRegister"
EXTERNAL_PARTNERS = "externalPartners"
KEY_PERSONNEL = "keyPersonnel"
DELIVERABLES = "deliverables"
FINANCIALS = "financials"
COMPLIANCE = "compliance"

COLLECTIONS = (
    MASTER_REGISTER,
    EXTERNAL_PARTNERS,
    KEY_PERSONNEL,
    DELIVERABLES,
    FINANCIALS,
    COMPLIANCE,
)

COLLECTION_MODELS: dict[str, type] = {
    MASTER_REGISTER: Partner,
    EXTERNAL_PARTNERS: ExternalPartner,
    KEY_PERSONNEL: Personnel,
    DELIVERABLES: Deliverable,
    FINANCIALS: FinancialRecord,
    COMPLIANCE: ComplianceRecord,
}

_MANAGED_FIELDS = frozenset({"id", "created_at", "updated_at"})


class PersistenceError(Exception):
    """A read or write against the record store failed."""

    def __init__(self, message: str, collection: str | None = None):
        self.message = message
        self.collection = collection
        super().__init__(message)


class StorageConfigurationError(PersistenceError):
    """The store cannot serve a required collection."""


class StorageBackend(ABC):
    """Record store over named collections."""

    name: str = "abstract"

    @abstractmethod
    def find_one(self, collection: str, **criteria: Any) -> dict[str, Any] | None:
        """First record whose fields equal all criteria, or None."""

    @abstractmethod
    def list_all(self, collection: str) -> list[dict[str, Any]]:
        """Every record in the collection."""

    @abstractmethod
    def create(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record; id and timestamps are assigned when absent."""

    @abstractmethod
    def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Merge data into an existing record and refresh updated_at."""

    @abstractmethod
    def check(self) -> None:
        """Raise StorageConfigurationError if a required collection is unusable."""


class RelationalBackend(StorageBackend):
    """Collections mapped to ORM models; each write is its own committed transaction."""

    name = "relational"

    def __init__(
        self,
        session_factory: Callable[[], Session],
        models: dict[str, type] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.models = dict(models if models is not None else COLLECTION_MODELS)

    def _model(self, collection: str) -> type:
        model = self.models.get(collection)
        if model is None:
            raise StorageConfigurationError(
                f"No model registered for collection {collection!r}", collection
            )
        return model

    def _columns(self, model: type) -> set[str]:
        return {c.key for c in model.__table__.columns}  # type: ignore[attr-defined]

    def _clean(self, model: type, data: dict[str, Any]) -> dict[str, Any]:
        """Keep only mapped columns; id and timestamps are owned by the store."""
        columns = self._columns(model)
        return {k: v for k, v in data.items() if k in columns and k not in _MANAGED_FIELDS}

    def check(self) -> None:
        session = self.session_factory()
        try:
            inspector = inspect(session.get_bind())
            for collection in COLLECTIONS:
                model = self._model(collection)
                table = model.__tablename__  # type: ignore[attr-defined]
                if not inspector.has_table(table):
                    raise StorageConfigurationError(
                        f"Table {table!r} for collection {collection!r} does not exist",
                        collection,
                    )
        except SQLAlchemyError as e:
            raise StorageConfigurationError(f"Record store unreachable: {e}") from e
        finally:
            session.close()

    def find_one(self, collection: str, **criteria: Any) -> dict[str, Any] | None:
        model = self._model(collection)
        columns = self._columns(model)
        unknown = set(criteria) - columns
        if unknown:
            raise PersistenceError(f"Unknown fields for {collection}: {sorted(unknown)}", collection)
        session = self.session_factory()
        try:
            row = session.query(model).filter_by(**criteria).first()
            return row.to_dict() if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Lookup in {collection} failed: {e}", collection) from e
        finally:
            session.close()

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        model = self._model(collection)
        session = self.session_factory()
        try:
            return [row.to_dict() for row in session.query(model).all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Listing {collection} failed: {e}", collection) from e
        finally:
            session.close()

    def create(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        model = self._model(collection)
        # Null values are left out so column defaults apply
        values = {k: v for k, v in self._clean(model, data).items() if v is not None}
        session = self.session_factory()
        try:
            row = model(id=data.get("id") or new_record_id(), **values)
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.to_dict()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Insert into {collection} failed: {e}", collection) from e
        finally:
            session.close()

    def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        model = self._model(collection)
        table = model.__table__  # type: ignore[attr-defined]
        # A blank cell never clears a NOT NULL column
        values = {
            k: v for k, v in self._clean(model, data).items()
            if v is not None or table.c[k].nullable
        }
        session = self.session_factory()
        try:
            row = session.get(model, record_id)
            if row is None:
                raise PersistenceError(f"{collection} record {record_id} not found", collection)
            for key, value in values.items():
                setattr(row, key, value)
            row.updated_at = datetime.now(UTC)
            session.commit()
            session.refresh(row)
            return row.to_dict()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Update of {collection} failed: {e}", collection) from e
        finally:
            session.close()


class DocumentBackend(StorageBackend):
    """
    Single JSON document keyed by collection name. Every write reloads the
    document and replaces the file atomically (temp file + rename) under a lock.
    """

    name = "document"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, list[dict[str, Any]]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read document store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Document store {self.path} is not a JSON object")
        return data

    def _write(self, data: dict[str, list[dict[str, Any]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp, self.path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write document store {self.path}: {e}") from e

    @staticmethod
    def _now() -> str:
        return datetime.now(UTC).isoformat()

    def check(self) -> None:
        try:
            data = self._load()
        except PersistenceError as e:
            raise StorageConfigurationError(e.message) from e
        for collection, records in data.items():
            if not isinstance(records, list):
                raise StorageConfigurationError(
                    f"Collection {collection!r} is not a list", collection
                )

    def find_one(self, collection: str, **criteria: Any) -> dict[str, Any] | None:
        with self._lock:
            records = self._load().get(collection, [])
        for record in records:
            if all(record.get(k) == v for k, v in criteria.items()):
                return dict(record)
        return None

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._load().get(collection, [])]

    def create(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        now = self._now()
        record = {k: v for k, v in data.items() if k not in _MANAGED_FIELDS}
        record["id"] = data.get("id") or new_record_id()
        record["created_at"] = now
        record["updated_at"] = now
        with self._lock:
            doc = self._load()
            doc.setdefault(collection, []).append(record)
            self._write(doc)
        return dict(record)

    def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            doc = self._load()
            for record in doc.get(collection, []):
                if record.get("id") == record_id:
                    record.update({k: v for k, v in data.items() if k not in _MANAGED_FIELDS})
                    record["updated_at"] = self._now()
                    self._write(doc)
                    return dict(record)
        raise PersistenceError(f"{collection} record {record_id} not found", collection)


def build_storage_backend(settings, session_factory: Callable[[], Session] | None = None) -> StorageBackend:
    """Select the configured backend once; callers only see StorageBackend."""
    if settings.STORAGE_BACKEND == "document":
        backend: StorageBackend = DocumentBackend(settings.DOCUMENT_STORE_PATH)
    else:
        if session_factory is None:
            from app.core.database import SessionLocal

            session_factory = SessionLocal
        backend = RelationalBackend(session_factory)
    logger.info("Record store backend: %s", backend.name)
    return backend
