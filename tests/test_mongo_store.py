import uuid

import mongomock
import pytest
from pymongo.errors import PyMongoError

from conftest import product_fields
from errors import InvalidDataError, StoreUnavailableError
from stores import COLLECTIONS, MongoSettingsStore, MongoStore, RecordFilter


@pytest.fixture
def db():
    return mongomock.MongoClient()[f"storefront_{uuid.uuid4().hex}"]


@pytest.fixture
def products(db):
    return MongoStore(db["products"], COLLECTIONS["products"])


def test_create_and_get_round_trip(products):
    rec = products.create(product_fields())
    assert len(rec["id"]) == 24
    got = products.get(rec["id"])
    assert got["name"] == "Classic Shirt"
    assert got["createdAt"].tzinfo is not None
    assert "_id" not in got


def test_schema_rejects_invalid_writes(products):
    with pytest.raises(InvalidDataError):
        products.create(product_fields(price=-1))
    with pytest.raises(InvalidDataError):
        products.create(product_fields(images=[]))
    with pytest.raises(InvalidDataError):
        products.create(product_fields(sizes=["XXXL"]))
    assert products.count() == 0


def test_update_validates_merged_document(products):
    rec = products.create(product_fields())
    with pytest.raises(InvalidDataError):
        products.update(rec["id"], {"stock": -3})
    assert products.get(rec["id"])["stock"] == 25

    updated = products.update(rec["id"], {"stock": 4})
    assert updated["stock"] == 4
    assert updated["updatedAt"] >= rec["updatedAt"]


def test_string_ids_are_accepted(db, products):
    db["products"].insert_one({"_id": "prod-001", **product_fields(name="Seeded")})
    assert products.get("prod-001")["name"] == "Seeded"
    assert products.get("not-an-object-id-or-known") is None
    assert products.delete("prod-001") is True


def test_missing_ids(products):
    missing = "0123456789abcdef01234567"
    assert products.get(missing) is None
    assert products.update(missing, {"stock": 1}) is None
    assert products.delete(missing) is False


def test_list_sorts_newest_first_on_request(products):
    first = products.create(product_fields(name="first"))
    second = products.create(product_fields(name="second"))
    products.collection.update_one({"name": "first"}, {"$set": {"createdAt": second["createdAt"].replace(year=2000)}})
    names = [r["name"] for r in products.list(newest_first=True)]
    assert names == ["second", "first"]
    assert first["id"] in {r["id"] for r in products.list()}


def test_threshold_filters_match_file_semantics(products):
    products.create(product_fields(name="a", stock=5))
    products.create(product_fields(name="b", stock=15))
    products.create(product_fields(name="c", stock=30, featured=False))
    assert products.count(RecordFilter(stock_below=15)) == 1
    assert products.count(RecordFilter(min_stock=15)) == 2
    assert [r["name"] for r in products.list(RecordFilter(equals={"featured": False}))] == ["c"]


def test_read_errors_degrade_to_empty(products, monkeypatch):
    def boom(*args, **kwargs):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(products.collection, "find", boom)
    monkeypatch.setattr(products.collection, "find_one", boom)
    monkeypatch.setattr(products.collection, "count_documents", boom)
    assert products.list() == []
    assert products.get("0123456789abcdef01234567") is None
    assert products.count() == 0


def test_write_errors_raise_unavailable(products, monkeypatch):
    def boom(*args, **kwargs):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(products.collection, "insert_one", boom)
    with pytest.raises(StoreUnavailableError):
        products.create(product_fields())


def test_settings_document_round_trip(db):
    store = MongoSettingsStore(db["settings"])
    assert store.load() is None
    store.save({"orders": {"prefix": "X-"}})
    store.save({"orders": {"prefix": "Y-"}})
    assert store.load() == {"orders": {"prefix": "Y-"}}
    assert db["settings"].count_documents({}) == 1


def test_settings_read_errors_raise_unavailable(db, monkeypatch):
    store = MongoSettingsStore(db["settings"])
    store.save({"orders": {"prefix": "X-"}})

    def boom(*args, **kwargs):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(store.collection, "find_one", boom)
    with pytest.raises(StoreUnavailableError):
        store.load()
