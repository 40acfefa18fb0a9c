"""Record store gateway used by the deal lifecycle.

The engine needs only get/put/list-by-owner semantics over a handful of
named collections, so the store is modelled as a generic key-value record
store. Two backends ship: a SQL table of JSON documents for the web app and
an in-memory store with an optional record capacity.

Writes are last-write-wins per record. Two sessions modifying the same
owner's records concurrently can overwrite each other; no locking is done.
"""
from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salesdesk.core.deals import PROJECTS, SETS, SNAPSHOTS
from salesdesk.models import StoredRecord

logger = logging.getLogger(__name__)

COLLECTIONS = (SETS, PROJECTS, SNAPSHOTS)


class StorageError(Exception):
    """The underlying store rejected a read or write."""


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection '{collection}'.")


class RecordGateway(ABC):
    """Contract every record store backend fulfils."""

    @abstractmethod
    def list_by_owner(self, collection: str, owner_id: int) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def get_all(self, collection: str) -> list[dict[str, Any]]:
        """Every record in a collection. Callers must restrict this to admins."""

    @abstractmethod
    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def put(self, collection: str, record: dict[str, Any]) -> None:
        """Upsert by ``record['id']``."""

    @abstractmethod
    def remove(self, collection: str, record_id: str) -> None:
        ...

    def evict_snapshots(self, owner_id: int) -> int:
        """Drop an owner's cached summaries; returns how many were removed."""

        removed = 0
        for record in self.list_by_owner(SNAPSHOTS, owner_id):
            self.remove(SNAPSHOTS, record["id"])
            removed += 1
        return removed


class InMemoryRecordGateway(RecordGateway):
    """Dictionary-backed store; ``capacity`` bounds the total record count."""

    def __init__(self, capacity: int | None = None) -> None:
        self.capacity = capacity
        self._data: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in COLLECTIONS}

    def _size(self) -> int:
        return sum(len(items) for items in self._data.values())

    def list_by_owner(self, collection: str, owner_id: int) -> list[dict[str, Any]]:
        _check_collection(collection)
        return [
            copy.deepcopy(record)
            for record in self._data[collection].values()
            if record.get("owner_id") == owner_id
        ]

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        _check_collection(collection)
        return [copy.deepcopy(record) for record in self._data[collection].values()]

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        _check_collection(collection)
        record = self._data[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def put(self, collection: str, record: dict[str, Any]) -> None:
        _check_collection(collection)
        record_id = record.get("id")
        if not record_id:
            raise ValueError("Records must carry an 'id'.")
        is_new = record_id not in self._data[collection]
        if is_new and self.capacity is not None and self._size() >= self.capacity:
            raise StorageError(
                f"Record store is full ({self.capacity} records); cannot write {collection}/{record_id}."
            )
        self._data[collection][record_id] = copy.deepcopy(record)

    def remove(self, collection: str, record_id: str) -> None:
        _check_collection(collection)
        self._data[collection].pop(record_id, None)


class SqlRecordGateway(RecordGateway):
    """Stores each record as a JSON document in the ``records`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @staticmethod
    def _decode(row: StoredRecord) -> dict[str, Any]:
        return json.loads(row.payload)

    def list_by_owner(self, collection: str, owner_id: int) -> list[dict[str, Any]]:
        _check_collection(collection)
        stmt = (
            select(StoredRecord)
            .where(StoredRecord.collection == collection, StoredRecord.owner_id == owner_id)
            .order_by(StoredRecord.record_id)
        )
        try:
            rows = self.db.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not read {collection} for owner {owner_id}.") from exc
        return [self._decode(row) for row in rows]

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        _check_collection(collection)
        stmt = select(StoredRecord).where(StoredRecord.collection == collection)
        try:
            rows = self.db.execute(stmt.order_by(StoredRecord.record_id)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not read {collection}.") from exc
        return [self._decode(row) for row in rows]

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        _check_collection(collection)
        try:
            row = self.db.get(StoredRecord, (collection, record_id))
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not read {collection}/{record_id}.") from exc
        return self._decode(row) if row is not None else None

    def put(self, collection: str, record: dict[str, Any]) -> None:
        _check_collection(collection)
        record_id = record.get("id")
        if not record_id:
            raise ValueError("Records must carry an 'id'.")
        payload = json.dumps(record, sort_keys=True)
        try:
            row = self.db.get(StoredRecord, (collection, record_id))
            if row is None:
                row = StoredRecord(
                    collection=collection,
                    record_id=record_id,
                    owner_id=record["owner_id"],
                    payload=payload,
                )
                self.db.add(row)
            else:
                row.owner_id = record["owner_id"]
                row.payload = payload
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Write of %s/%s failed: %s", collection, record_id, exc)
            raise StorageError(f"Could not write {collection}/{record_id}.") from exc

    def remove(self, collection: str, record_id: str) -> None:
        _check_collection(collection)
        try:
            row = self.db.get(StoredRecord, (collection, record_id))
            if row is not None:
                self.db.delete(row)
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Could not remove {collection}/{record_id}.") from exc
