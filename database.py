"""
MongoDB access for the Personal Finance API.

One MongoClient per process, created on first use and kept until close().
Concurrent first requests share a single connection attempt.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from config import Settings
from schemas import utcnow

logger = logging.getLogger(__name__)

IndexSpec = Tuple[str, List[Tuple[str, int]], Dict[str, Any]]


class DocumentStore:
    """Lazily connected, process-wide handle on the application database.

    Example:
        ```python
        store = DocumentStore("mongodb://localhost:27017", "finance")
        store.register_index("users", [("email", 1)], unique=True)
        store.create_document("users", {"email": "a@b.com"})
        store.close()
        ```
    """

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        db_name: str = "finance",
        timeout_ms: int = 5000,
        client_factory: Callable[..., MongoClient] = MongoClient,
    ):
        """Store connection parameters. No connection is made until first use."""
        self._uri = uri
        self._db_name = db_name
        self._timeout_ms = timeout_ms
        self._client_factory = client_factory
        self._indexes: List[IndexSpec] = []
        self._lock = threading.Lock()
        self._client: Optional[MongoClient] = None
        self._db: Optional[Database] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "DocumentStore":
        return cls(settings.database_url, settings.database_name, settings.database_timeout_ms, **kwargs)

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    @property
    def name(self) -> str:
        return self._db_name

    def register_index(self, collection: str, keys: List[Tuple[str, int]], **options) -> None:
        """Declare an index to be created when the connection is first established."""
        self._indexes.append((collection, keys, options))

    def get_db(self) -> Database:
        db = self._db
        if db is not None:
            return db
        with self._lock:
            if self._db is None:
                self._connect()
            return self._db

    def _connect(self) -> None:
        client = self._client_factory(
            self._uri,
            tz_aware=True,
            serverSelectionTimeoutMS=self._timeout_ms,
            connectTimeoutMS=self._timeout_ms,
            socketTimeoutMS=self._timeout_ms,
        )
        try:
            db = client[self._db_name]
            for collection, keys, options in self._indexes:
                db[collection].create_index(keys, **options)
        except Exception:
            client.close()
            raise
        self._client = client
        self._db = db
        logger.info("Connected to database %s", self._db_name)

    def collection(self, name: str) -> Collection:
        return self.get_db()[name]

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                logger.info("Closed connection to database %s", self._db_name)
            self._client = None
            self._db = None

    def ping(self) -> bool:
        self.get_db().command("ping")
        return True

    # Generic helpers

    def create_document(self, collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert ``data`` with created_at/updated_at stamps and return the stored document."""
        now = utcnow()
        document = dict(data)
        document.setdefault("created_at", now)
        document["updated_at"] = now
        result = self.collection(collection_name).insert_one(document)
        document["_id"] = result.inserted_id
        return document

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.collection(collection_name).find(filter_dict or {})
        if sort:
            cursor = cursor.sort(list(sort))
        if limit > 0:
            cursor = cursor.limit(limit)
        return list(cursor)
