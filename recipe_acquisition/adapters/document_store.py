"""
Document Store Adapter for the Recipe Acquisition Pipeline.

Holds the only cross-request shared state: recipe cache entries and
rate-limit records. Every document carries a version number so callers
can run optimistic read-modify-write transactions through
compare_and_set() instead of in-process locks.
"""
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from recipe_acquisition.config import config
from recipe_acquisition.utils.logger import LayerLogger

VERSION_FIELD = "_version"


@dataclass
class VersionedDocument:
    """A stored document and the version it was read at."""
    data: Dict[str, Any]
    version: int


class DocumentStore(ABC):
    """Minimal document store contract used by the cache and rate limiter."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[VersionedDocument]:
        """Read a document, or None when absent."""

    @abstractmethod
    async def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Unconditionally overwrite a document (last write wins)."""

    @abstractmethod
    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        expected_version: Optional[int],
    ) -> bool:
        """
        Write only if the stored version still equals expected_version.

        expected_version=None means "create; fail if it already exists".
        Returns False on a conflicting concurrent write.
        """

    async def close(self) -> None:
        return None


class MemoryDocumentStore(DocumentStore):
    """
    Process-local store for development and tests.

    The check and the write in compare_and_set() happen without an await in
    between, so they are atomic with respect to other coroutines.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Tuple[Dict[str, Any], int]]] = {}

    def _collection(self, name: str) -> Dict[str, Tuple[Dict[str, Any], int]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Optional[VersionedDocument]:
        stored = self._collection(collection).get(doc_id)
        if stored is None:
            return None
        data, version = stored
        return VersionedDocument(data=copy.deepcopy(data), version=version)

    async def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        docs = self._collection(collection)
        current = docs.get(doc_id)
        version = current[1] + 1 if current else 1
        docs[doc_id] = (copy.deepcopy(data), version)

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        expected_version: Optional[int],
    ) -> bool:
        docs = self._collection(collection)
        current = docs.get(doc_id)
        if expected_version is None:
            if current is not None:
                return False
            docs[doc_id] = (copy.deepcopy(data), 1)
            return True
        if current is None or current[1] != expected_version:
            return False
        docs[doc_id] = (copy.deepcopy(data), expected_version + 1)
        return True


class MongoDocumentStore(DocumentStore):
    """
    MongoDB-backed store (motor).

    compare_and_set() filters on the stored version, so concurrent service
    instances serialize through the database rather than a local mutex.
    """

    def __init__(self, database: AsyncIOMotorDatabase, client: Optional[AsyncIOMotorClient] = None):
        self.db = database
        self.client = client
        self.logger = LayerLogger("document_store")

    @classmethod
    def from_config(cls) -> "MongoDocumentStore":
        client = AsyncIOMotorClient(config.MONGODB_URI)
        return cls(client[config.MONGODB_DB], client)

    async def get(self, collection: str, doc_id: str) -> Optional[VersionedDocument]:
        doc = await self.db[collection].find_one({"_id": doc_id})
        if doc is None:
            return None
        version = doc.pop(VERSION_FIELD, 0)
        doc.pop("_id", None)
        return VersionedDocument(data=doc, version=version)

    async def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.db[collection].update_one(
            {"_id": doc_id},
            {"$set": data, "$inc": {VERSION_FIELD: 1}},
            upsert=True,
        )

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        expected_version: Optional[int],
    ) -> bool:
        if expected_version is None:
            try:
                await self.db[collection].insert_one({"_id": doc_id, VERSION_FIELD: 1, **data})
            except DuplicateKeyError:
                return False
            return True

        result = await self.db[collection].replace_one(
            {"_id": doc_id, VERSION_FIELD: expected_version},
            {VERSION_FIELD: expected_version + 1, **data},
        )
        return result.matched_count == 1

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.logger.log_action("close_store", "completed")


def create_document_store() -> DocumentStore:
    """Build the store selected by STORE_BACKEND."""
    if config.STORE_BACKEND == "mongo":
        return MongoDocumentStore.from_config()
    return MemoryDocumentStore()
