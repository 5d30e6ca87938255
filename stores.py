"""
Record stores

A record store keeps one collection (products, orders or admins). There are
two implementations with the same contract:

- FileStore keeps the collection as one JSON array on disk and rewrites the
  whole file on every mutation. There is no locking: two concurrent writers
  can lose an update, the last snapshot written wins.
- MongoStore keeps the collection in MongoDB and validates every write
  against the pydantic schema of the collection.

Both return plain dicts with a string "id" and timezone-aware timestamps, and
both convert driver and filesystem errors into the errors in errors.py.
"""

import json
import logging
import os
import secrets
import string
import tempfile
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from bson import ObjectId
from pydantic import BaseModel, Field, ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import InvalidDataError, StoreUnavailableError
from schemas import Admin, Order, Product, SettingsDocument

logger = logging.getLogger(__name__)

ID_KEYS = ("id", "_id")
_DIGITS = string.digits + string.ascii_lowercase


class CollectionLayout(BaseModel):
    schema_model: Type[BaseModel]
    created_field: str
    updated_field: Optional[str] = None


COLLECTIONS: Dict[str, CollectionLayout] = {
    "products": CollectionLayout(schema_model=Product, created_field="createdAt", updated_field="updatedAt"),
    "orders": CollectionLayout(schema_model=Order, created_field="orderDate"),
    "admins": CollectionLayout(schema_model=Admin, created_field="createdAt"),
}
SETTINGS_FILE = "settings.json"


def base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _DIGITS[r] + out
        if n == 0:
            return out


def new_id() -> str:
    """Millisecond clock in base 36 followed by a random base-36 suffix."""
    return base36(int(time.time() * 1000)) + base36(secrets.randbelow(36 ** 10)).rjust(10, "0")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def parse_timestamp(value):
    if isinstance(value, datetime):
        return as_aware(value)
    if isinstance(value, str):
        try:
            return as_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    return value


def strip_ids(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in ID_KEYS}


class RecordFilter(BaseModel):
    """Equality on plain fields plus an optional stock window [min_stock, stock_below)."""

    equals: Dict[str, Any] = Field(default_factory=dict)
    min_stock: Optional[int] = None
    stock_below: Optional[int] = None

    def matches(self, record: Dict[str, Any]) -> bool:
        for key, value in self.equals.items():
            if record.get(key) != value:
                return False
        stock = record.get("stock") or 0
        if self.min_stock is not None and stock < self.min_stock:
            return False
        if self.stock_below is not None and stock >= self.stock_below:
            return False
        return True

    def to_query(self) -> Dict[str, Any]:
        query = dict(self.equals)
        stock = {}
        if self.min_stock is not None:
            stock["$gte"] = self.min_stock
        if self.stock_below is not None:
            stock["$lt"] = self.stock_below
        if stock:
            query["stock"] = stock
        return query


class RecordStore(ABC):
    def __init__(self, layout: CollectionLayout):
        self.layout = layout

    @abstractmethod
    def list(self, filt: Optional[RecordFilter] = None, newest_first: bool = False) -> List[dict]:
        ...

    @abstractmethod
    def get(self, record_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def create(self, fields: Dict[str, Any]) -> dict:
        ...

    @abstractmethod
    def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[dict]:
        ...

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        ...

    @abstractmethod
    def count(self, filt: Optional[RecordFilter] = None) -> int:
        ...

    def _timestamp_fields(self):
        return [f for f in (self.layout.created_field, self.layout.updated_field) if f]


# File-backed

def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def read_json(path: str, default):
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        logger.error("Data file %s is missing", path)
    except (OSError, ValueError) as exc:
        logger.error("Error reading data file %s: %s", path, exc)
    return default


def write_json(path: str, data) -> None:
    """Write to a temp file in the same directory, then rename over the target."""
    directory = os.path.dirname(path) or "."
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=directory, prefix=".tmp-", suffix=".json", delete=False
        ) as fh:
            tmp_path = fh.name
            json.dump(data, fh, ensure_ascii=False, indent=2, default=_json_default)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as exc:
        logger.error("Error writing data file %s: %s", path, exc)
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise StoreUnavailableError(f"Could not write {os.path.basename(path)}") from exc


class FileStore(RecordStore):
    def __init__(self, path: str, layout: CollectionLayout):
        super().__init__(layout)
        self.path = path

    def ensure(self) -> None:
        if not os.path.exists(self.path):
            write_json(self.path, [])

    def _load(self) -> List[dict]:
        data = read_json(self.path, [])
        if not isinstance(data, list):
            logger.error("Data file %s does not hold a JSON array", self.path)
            return []
        return [d for d in data if isinstance(d, dict)]

    def _to_record(self, raw: dict) -> dict:
        rec = dict(raw)
        rid = rec.pop("_id", None) or rec.get("id")
        rec["id"] = str(rid) if rid is not None else None
        for field in self._timestamp_fields():
            if field in rec:
                rec[field] = parse_timestamp(rec[field])
        return rec

    @staticmethod
    def _index(records: List[dict], record_id: str) -> int:
        for i, raw in enumerate(records):
            if str(raw.get("_id", raw.get("id"))) == str(record_id):
                return i
        return -1

    def list(self, filt=None, newest_first=False):
        # file order is kept as-is; callers sort when they need newest first
        filt = filt or RecordFilter()
        records = [self._to_record(r) for r in self._load()]
        return [r for r in records if filt.matches(r)]

    def get(self, record_id):
        records = self._load()
        idx = self._index(records, record_id)
        return self._to_record(records[idx]) if idx >= 0 else None

    def create(self, fields):
        records = self._load()
        now = utcnow()
        raw = {"_id": new_id(), **strip_ids(fields)}
        for field in self._timestamp_fields():
            raw[field] = now
        records.append(raw)
        write_json(self.path, records)
        return self._to_record(raw)

    def update(self, record_id, patch):
        records = self._load()
        idx = self._index(records, record_id)
        if idx == -1:
            return None
        raw = {**records[idx], **strip_ids(patch)}
        updated_field = self.layout.updated_field
        if updated_field:
            previous = parse_timestamp(records[idx].get(updated_field))
            now = utcnow()
            raw[updated_field] = max(now, previous) if isinstance(previous, datetime) else now
        records[idx] = raw
        write_json(self.path, records)
        return self._to_record(raw)

    def delete(self, record_id):
        records = self._load()
        idx = self._index(records, record_id)
        if idx == -1:
            return False
        del records[idx]
        write_json(self.path, records)
        return True

    def count(self, filt=None):
        return len(self.list(filt))


# MongoDB-backed

def id_query(record_id: str) -> Dict[str, Any]:
    if ObjectId.is_valid(record_id):
        return {"_id": {"$in": [ObjectId(record_id), record_id]}}
    return {"_id": record_id}


def doc_to_record(doc: dict) -> dict:
    rec = {}
    for key, value in doc.items():
        if isinstance(value, datetime):
            value = as_aware(value)
        rec[key] = value
    rec["id"] = str(rec.pop("_id"))
    return rec


class MongoStore(RecordStore):
    def __init__(self, collection, layout: CollectionLayout):
        super().__init__(layout)
        self.collection = collection

    def _validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.layout.schema_model.model_validate(data).model_dump()
        except ValidationError as exc:
            raise InvalidDataError.from_validation(exc) from exc

    def list(self, filt=None, newest_first=False):
        filt = filt or RecordFilter()
        try:
            cursor = self.collection.find(filt.to_query())
            if newest_first:
                cursor = cursor.sort(self.layout.created_field, -1)
            return [doc_to_record(d) for d in cursor]
        except PyMongoError as exc:
            logger.error("Error reading %s: %s", self.collection.name, exc)
            return []

    def get(self, record_id):
        try:
            doc = self.collection.find_one(id_query(str(record_id)))
        except PyMongoError as exc:
            logger.error("Error reading %s/%s: %s", self.collection.name, record_id, exc)
            return None
        return doc_to_record(doc) if doc else None

    def create(self, fields):
        doc = self._validate(strip_ids(fields))
        now = utcnow()
        for field in self._timestamp_fields():
            doc[field] = now
        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise InvalidDataError("Duplicate value for a unique field") from exc
        except PyMongoError as exc:
            logger.error("Error writing %s: %s", self.collection.name, exc)
            raise StoreUnavailableError(f"Could not write {self.collection.name}") from exc
        doc["_id"] = result.inserted_id
        return doc_to_record(doc)

    def update(self, record_id, patch):
        query = id_query(str(record_id))
        changes = strip_ids(patch)
        try:
            existing = self.collection.find_one(query)
            if not existing:
                return None
            self._validate({**existing, **changes})
            updated_field = self.layout.updated_field
            if updated_field:
                previous = existing.get(updated_field)
                now = utcnow()
                changes[updated_field] = max(now, as_aware(previous)) if isinstance(previous, datetime) else now
            if not changes:
                return doc_to_record(existing)
            doc = self.collection.find_one_and_update(
                {"_id": existing["_id"]},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise InvalidDataError("Duplicate value for a unique field") from exc
        except PyMongoError as exc:
            logger.error("Error updating %s/%s: %s", self.collection.name, record_id, exc)
            raise StoreUnavailableError(f"Could not write {self.collection.name}") from exc
        return doc_to_record(doc) if doc else None

    def delete(self, record_id):
        try:
            res = self.collection.delete_one(id_query(str(record_id)))
        except PyMongoError as exc:
            logger.error("Error deleting %s/%s: %s", self.collection.name, record_id, exc)
            raise StoreUnavailableError(f"Could not write {self.collection.name}") from exc
        return res.deleted_count > 0

    def count(self, filt=None):
        filt = filt or RecordFilter()
        try:
            return self.collection.count_documents(filt.to_query())
        except PyMongoError as exc:
            logger.error("Error counting %s: %s", self.collection.name, exc)
            return 0


# Settings document

class FileSettingsStore:
    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[dict]:
        """Return the stored document, None when absent. Raise when it cannot be read."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.error("Error reading settings file %s: %s", self.path, exc)
            raise StoreUnavailableError("Could not read settings") from exc
        if not isinstance(data, dict):
            logger.error("Settings file %s does not hold a JSON object", self.path)
            raise StoreUnavailableError("Could not read settings")
        return data

    def save(self, document: dict) -> None:
        write_json(self.path, document)


class MongoSettingsStore:
    DOC_ID = "global"

    def __init__(self, collection):
        self.collection = collection

    def load(self) -> Optional[dict]:
        """Return the stored document, None when absent. Raise when it cannot be read."""
        try:
            doc = self.collection.find_one({"_id": self.DOC_ID})
        except PyMongoError as exc:
            logger.error("Error reading settings: %s", exc)
            raise StoreUnavailableError("Could not read settings") from exc
        if not doc:
            return None
        doc.pop("_id", None)
        return doc

    def save(self, document: dict) -> None:
        try:
            self.collection.replace_one({"_id": self.DOC_ID}, document, upsert=True)
        except PyMongoError as exc:
            logger.error("Error writing settings: %s", exc)
            raise StoreUnavailableError("Could not write settings") from exc


# Backends: one object per storage engine handing out its stores

def directory_size(path: str) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError:
                continue
    return total


class FileBackend:
    mode = "file"

    def __init__(self, data_dir: str, uploads_dir: Optional[str] = None):
        self.data_dir = data_dir
        self.uploads_dir = uploads_dir
        self._stores = {
            name: FileStore(os.path.join(data_dir, f"{name}.json"), layout)
            for name, layout in COLLECTIONS.items()
        }
        self._settings = FileSettingsStore(os.path.join(data_dir, SETTINGS_FILE))

    def initialize(self) -> None:
        """Create the data directory, empty collections and default settings."""
        os.makedirs(self.data_dir, exist_ok=True)
        for store in self._stores.values():
            store.ensure()
        if not os.path.exists(self._settings.path):
            self._settings.save(SettingsDocument().model_dump())

    def store(self, name: str) -> FileStore:
        return self._stores[name]

    def settings(self) -> FileSettingsStore:
        return self._settings

    def usage(self) -> Dict[str, Any]:
        dirs = [d for d in (self.uploads_dir, self.data_dir) if d]
        return {
            "usedBytes": sum(directory_size(d) for d in dirs),
            "details": {"directories": dirs},
        }


class MongoBackend:
    mode = "database"

    def __init__(self, db):
        self.db = db
        self._stores = {name: MongoStore(db[name], layout) for name, layout in COLLECTIONS.items()}
        self._settings = MongoSettingsStore(db["settings"])

    def ensure_indexes(self) -> None:
        try:
            self.db["admins"].create_index("username", unique=True)
            self.db["admins"].create_index("email", unique=True)
        except PyMongoError as exc:
            logger.error("Could not create indexes: %s", exc)

    def store(self, name: str) -> MongoStore:
        return self._stores[name]

    def settings(self) -> MongoSettingsStore:
        return self._settings

    def usage(self) -> Dict[str, Any]:
        try:
            stats = self.db.command("dbstats")
        except PyMongoError as exc:
            logger.error("Error reading database stats: %s", exc)
            raise StoreUnavailableError("Could not read database stats") from exc
        return {
            "usedBytes": int(stats.get("storageSize", 0) or 0),
            "details": {
                "db": self.db.name,
                "collections": stats.get("collections"),
                "dataSize": stats.get("dataSize", 0),
                "storageSize": stats.get("storageSize", 0),
                "indexSize": stats.get("indexSize", 0),
            },
        }
