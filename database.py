"""
Database connection and backend selection

The MongoDB client reports topology changes to ConnectionStateListener, which
is the only thing that moves the connection state. BackendSelector reads that
state on every call and hands out the MongoDB stores while connected and the
JSON file stores otherwise. Nothing is copied between the two when the
connection comes back; they are independent stores.
"""

import logging
from enum import Enum
from typing import Optional

from pymongo import MongoClient, monitoring

import config
from stores import FileBackend, MongoBackend

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNKNOWN = "unknown"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class BackendSelector:
    def __init__(self, file_backend: FileBackend, mongo_backend: Optional[MongoBackend] = None,
                 state: ConnectionState = ConnectionState.UNKNOWN):
        self.file_backend = file_backend
        self.mongo_backend = mongo_backend
        self.state = state

    def mark_connected(self) -> None:
        if self.state != ConnectionState.CONNECTED:
            logger.info("MongoDB is connected, using the database backend")
        self.state = ConnectionState.CONNECTED

    def mark_disconnected(self) -> None:
        if self.state == ConnectionState.CONNECTED:
            logger.warning("MongoDB connection lost, switching to the file backend")
        self.state = ConnectionState.DISCONNECTED

    @property
    def backend(self):
        if self.state == ConnectionState.CONNECTED and self.mongo_backend is not None:
            return self.mongo_backend
        return self.file_backend

    @property
    def mode(self) -> str:
        return self.backend.mode

    def store(self, name: str):
        return self.backend.store(name)

    def settings(self):
        return self.backend.settings()

    def usage(self):
        return self.backend.usage()


class ConnectionStateListener(monitoring.TopologyListener):
    """Flips the selector whenever a writable server appears or goes away."""

    def __init__(self, selector: BackendSelector):
        self.selector = selector

    def opened(self, event):
        pass

    def description_changed(self, event):
        if event.new_description.has_writable_server():
            self.selector.mark_connected()
        else:
            self.selector.mark_disconnected()

    def closed(self, event):
        self.selector.mark_disconnected()


def connect(selector: BackendSelector, url: Optional[str] = None, name: Optional[str] = None):
    """Attach a MongoDB backend to the selector. Returns the client, or None without a URL."""
    url = url or config.DATABASE_URL
    if not url:
        logger.info("DATABASE_URL not set, running on the file backend")
        return None
    client = MongoClient(
        url,
        tz_aware=True,
        serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS,
        event_listeners=[ConnectionStateListener(selector)],
    )
    backend = MongoBackend(client[name or config.DATABASE_NAME])
    selector.mongo_backend = backend
    return client


def build_selector(data_dir: Optional[str] = None, uploads_dir: Optional[str] = None) -> BackendSelector:
    file_backend = FileBackend(data_dir or config.DATA_DIR, uploads_dir or config.UPLOADS_DIR)
    return BackendSelector(file_backend)
