import uuid

import mongomock
import pytest

from database import BackendSelector, ConnectionState
from repositories import Storefront
from stores import FileBackend, MongoBackend


def product_fields(**overrides):
    fields = {
        "name": "Classic Shirt",
        "description": "Cotton shirt",
        "price": 100.0,
        "images": ["/images/shirt.jpg"],
        "category": "Shirts",
        "stock": 25,
        "sizes": ["M", "L"],
        "colors": ["White"],
        "featured": True,
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def file_backend(tmp_path):
    backend = FileBackend(str(tmp_path / "data"), str(tmp_path / "uploads"))
    backend.initialize()
    return backend


@pytest.fixture
def mongo_backend():
    client = mongomock.MongoClient()
    return MongoBackend(client[f"storefront_{uuid.uuid4().hex}"])


@pytest.fixture
def file_shop(file_backend, mongo_backend):
    return Storefront(BackendSelector(file_backend, mongo_backend, ConnectionState.DISCONNECTED))


@pytest.fixture
def mongo_shop(file_backend, mongo_backend):
    return Storefront(BackendSelector(file_backend, mongo_backend, ConnectionState.CONNECTED))


@pytest.fixture(params=["file", "database"])
def shop(request, file_backend, mongo_backend):
    state = ConnectionState.CONNECTED if request.param == "database" else ConnectionState.DISCONNECTED
    return Storefront(BackendSelector(file_backend, mongo_backend, state))
