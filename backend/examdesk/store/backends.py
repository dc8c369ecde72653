"""
Key-value storage backends for the record store.

The store only needs get/set of serialized strings by key, so any medium
that can do that can hold the four record collections.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase


class StorageBackend:
    """Async get/set of string values by key."""

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Release any underlying connection."""


class MemoryStorage(StorageBackend):
    """Process-local storage. Contents are lost on restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class MongoStorage(StorageBackend):
    """Stores each key as one document in a MongoDB collection."""

    COLLECTION = "kv_store"

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db[self.COLLECTION]

    async def get(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"key": key}, {"_id": 0, "value": 1})
        return doc["value"] if doc else None

    async def set(self, key: str, value: str) -> None:
        await self.collection.update_one(
            {"key": key},
            {"$set": {
                "key": key,
                "value": value,
                "updated_at": datetime.now(timezone.utc)
            }},
            upsert=True
        )

    async def create_indexes(self) -> None:
        await self.collection.create_index("key", unique=True)

    async def close(self) -> None:
        self.db.client.close()
