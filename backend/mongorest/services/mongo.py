from typing import Optional
from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
import logging
import threading
import time

from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)

COUNTER_COLLECTION = "counter"


class MongodbService:
    """
    Holds the single MongoClient shared by every bound collection.
    The client pools connections itself; the lock only guards connect/close.
    """

    def __init__(
        self,
        uri: str,
        db_name: str,
        server_selection_timeout_ms: int = 5000,
        retries: int = 3,
        backoff_s: float = 1.0,
    ) -> None:
        self.uri = uri
        self.db_name = db_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.retries = max(1, retries)
        self.backoff_s = backoff_s
        self._lock = threading.Lock()
        self._client: Optional[MongoClient] = None

    def _open(self) -> MongoClient:
        client = MongoClient(self.uri, serverSelectionTimeoutMS=self.server_selection_timeout_ms)
        try:
            # Trigger server selection to validate connection
            client.admin.command("ping")
        except PyMongoError:
            client.close()
            raise
        return client

    def connect(self) -> MongoClient:
        with self._lock:
            if self._client is not None:
                return self._client
            last_error: Optional[Exception] = None
            for attempt in range(1, self.retries + 1):
                logger.info("mongodb connecting (attempt %d/%d)", attempt, self.retries)
                try:
                    self._client = self._open()
                    logger.info("mongodb connected")
                    return self._client
                except PyMongoError as e:
                    last_error = e
                    logger.warning("mongodb connect failed: %s", e)
                    if attempt < self.retries:
                        time.sleep(self.backoff_s * attempt)
            raise StoreUnavailable(f"Could not connect to MongoDB after {self.retries} attempts") from last_error

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client:
            client.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def get_db(self, db_name: Optional[str] = None) -> Database:
        if self._client is None:
            raise StoreUnavailable("MongoDB client is not connected")
        return self._client[db_name or self.db_name]

    def ensure_sequence(self, name: str, start: int = 0) -> None:
        """Create counter ``name`` starting at ``start`` unless it already exists."""
        counters = self.get_db()[COUNTER_COLLECTION]
        if counters.find_one({"_id": name}) is None:
            try:
                counters.insert_one({"_id": name, "seq": start})
            except DuplicateKeyError:
                # created concurrently
                pass

    def get_next_sequence(self, name: str) -> int:
        """Atomically increment counter ``name`` and return the new value."""
        doc = self.get_db()[COUNTER_COLLECTION].find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return doc["seq"]
