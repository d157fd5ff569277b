"""
MongoDB-backed chapter store and subscriber registry.

Collections (database MONGO_DB_NAME):
  users     { chat_id }                       one document per subscriber, unique index
  chapters  { chapter_number, latest_url }    singleton

Every pymongo failure surfaces as StoreUnavailable.
"""
from __future__ import annotations

import logging

from pydantic import ValidationError
from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from chapterbot.config import (
    CHAPTERS_COLLECTION, MONGO_DB_NAME, MONGO_MAX_POOL_SIZE, MONGO_MIN_POOL_SIZE,
    MONGO_TIMEOUT_MS, USERS_COLLECTION,
)
from chapterbot.errors import ChapterNotSeeded, StoreUnavailable
from chapterbot.models import ChapterPointer, Subscriber

log = logging.getLogger(__name__)


def create_client(mongo_uri: str) -> AsyncMongoClient:
    return AsyncMongoClient(
        mongo_uri,
        connectTimeoutMS=MONGO_TIMEOUT_MS,
        serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
        socketTimeoutMS=MONGO_TIMEOUT_MS,
        maxPoolSize=MONGO_MAX_POOL_SIZE,
        minPoolSize=MONGO_MIN_POOL_SIZE,
    )


async def ping(client: AsyncMongoClient) -> None:
    try:
        await client.admin.command("ping")
    except PyMongoError as exc:
        raise StoreUnavailable(f"failed to connect to database: {exc}") from exc


def _pointer_from_doc(doc: dict) -> ChapterPointer:
    try:
        return ChapterPointer(chapter_number=doc["chapter_number"], url=doc["latest_url"])
    except (KeyError, ValidationError) as exc:
        raise StoreUnavailable(f"malformed chapter document: {exc}") from exc


class MongoChapterStore:
    def __init__(self, db) -> None:
        self._coll = db[CHAPTERS_COLLECTION]

    async def get(self) -> ChapterPointer:
        try:
            doc = await self._coll.find_one({})
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to find one in database: {exc}") from exc
        if doc is None:
            raise ChapterNotSeeded("no latest chapter found")
        return _pointer_from_doc(doc)

    async def advance(self, expected_number: int, new_url: str) -> bool:
        # Filtering on the old number makes the update a compare-and-set:
        # both fields change in one document write or not at all.
        try:
            result = await self._coll.update_one(
                {"chapter_number": expected_number},
                {"$set": {"chapter_number": expected_number + 1, "latest_url": new_url}},
            )
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to update one in database: {exc}") from exc
        return result.matched_count == 1

    async def seed(self, pointer: ChapterPointer) -> None:
        try:
            await self._coll.replace_one(
                {},
                {"chapter_number": pointer.chapter_number, "latest_url": pointer.url},
                upsert=True,
            )
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to seed chapter: {exc}") from exc


class MongoSubscriberRegistry:
    def __init__(self, db) -> None:
        self._coll = db[USERS_COLLECTION]

    async def ensure_indexes(self) -> None:
        """Create the unique chat_id index, first dropping duplicate subscribers.

        Collections written by the old check-then-insert registration can hold
        several documents for one chat; all but one are removed.
        """
        try:
            removed = await self._drop_duplicates()
            await self._coll.create_index([("chat_id", ASCENDING)], unique=True)
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to create users index: {exc}") from exc
        if removed:
            log.warning("Removed %d duplicate subscriber documents", removed)

    async def _drop_duplicates(self) -> int:
        cursor = await self._coll.aggregate([
            {"$group": {"_id": "$chat_id", "ids": {"$push": "$_id"}, "n": {"$sum": 1}}},
            {"$match": {"n": {"$gt": 1}}},
        ])
        removed = 0
        async for group in cursor:
            result = await self._coll.delete_many({"_id": {"$in": group["ids"][1:]}})
            removed += result.deleted_count
        return removed

    async def add(self, chat_id: int) -> None:
        try:
            await self._coll.update_one(
                {"chat_id": chat_id},
                {"$setOnInsert": {"chat_id": chat_id}},
                upsert=True,
            )
        except DuplicateKeyError:
            # Concurrent upsert for the same chat won the insert
            log.debug("Subscriber %s already present", chat_id)
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to insert one in database: {exc}") from exc

    async def remove(self, chat_id: int) -> None:
        try:
            await self._coll.delete_one({"chat_id": chat_id})
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to delete one in database: {exc}") from exc

    async def list(self) -> set[int]:
        chat_ids: set[int] = set()
        try:
            async for doc in self._coll.find({}, {"_id": 0, "chat_id": 1}):
                chat_ids.add(Subscriber.model_validate(doc).chat_id)
        except ValidationError as exc:
            raise StoreUnavailable(f"failed to decode cursor: {exc}") from exc
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to find in database: {exc}") from exc
        return chat_ids

    async def count(self) -> int:
        try:
            return await self._coll.count_documents({})
        except PyMongoError as exc:
            raise StoreUnavailable(f"failed to count subscribers: {exc}") from exc
