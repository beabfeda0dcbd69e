from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Optional, Type, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from backend.config import settings
from backend.errors import MalformedRecord, RemoteCallFailure

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
    return _db


def _to_client(doc: dict[str, Any]) -> dict[str, Any]:
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def _to_query(filter_dict: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Translate ``id`` filters to ``_id``; returns None when the id can never match."""
    query = dict(filter_dict or {})
    if "id" in query:
        try:
            query["_id"] = ObjectId(str(query.pop("id")))
        except (InvalidId, TypeError):
            return None
    return query


class DataStore:
    """Request/response CRUD over named collections keyed by string ids."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def insert(self, collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
        now = datetime.utcnow()
        data_with_meta = {**data, "created_at": now, "updated_at": now}
        data_with_meta.pop("id", None)
        try:
            result = await self.db[collection_name].insert_one(data_with_meta)
            inserted = await self.db[collection_name].find_one({"_id": result.inserted_id})
        except PyMongoError as e:
            logger.error("insert into %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e
        return _to_client(inserted) if inserted else {}

    async def insert_many(self, collection_name: str, docs: list[dict[str, Any]]) -> list[str]:
        now = datetime.utcnow()
        payload = [{**d, "created_at": now, "updated_at": now} for d in docs]
        try:
            result = await self.db[collection_name].insert_many(payload)
        except PyMongoError as e:
            logger.error("insert_many into %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e
        return [str(i) for i in result.inserted_ids]

    async def find(
        self,
        collection_name: str,
        filter_dict: dict[str, Any] | None = None,
        sort: Optional[list[tuple[str, int]]] = None,
        limit: int = 500,
    ) -> list[dict[str, Any]]:
        query = _to_query(filter_dict)
        if query is None:
            return []
        try:
            cursor = self.db[collection_name].find(query)
            if sort:
                cursor = cursor.sort(sort)
            cursor = cursor.limit(limit)
            return [_to_client(d) async for d in cursor]
        except PyMongoError as e:
            logger.error("find on %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e

    async def find_one(self, collection_name: str, filter_dict: dict[str, Any]) -> Optional[dict[str, Any]]:
        query = _to_query(filter_dict)
        if query is None:
            return None
        try:
            doc = await self.db[collection_name].find_one(query)
        except PyMongoError as e:
            logger.error("find_one on %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e
        return _to_client(doc) if doc else None

    async def update(self, collection_name: str, filter_dict: dict[str, Any], changes: dict[str, Any]) -> int:
        query = _to_query(filter_dict)
        if query is None:
            return 0
        changes = {k: v for k, v in changes.items() if k != "id"}
        try:
            result = await self.db[collection_name].update_many(
                query, {"$set": {**changes, "updated_at": datetime.utcnow()}}
            )
        except PyMongoError as e:
            logger.error("update on %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e
        return result.modified_count

    async def upsert(self, collection_name: str, filter_dict: dict[str, Any], data: dict[str, Any]) -> None:
        # Upserts key on plain fields; profiles use the auth user id as ``user_id``.
        now = datetime.utcnow()
        data = {k: v for k, v in data.items() if k != "id"}
        try:
            await self.db[collection_name].update_one(
                filter_dict,
                {"$set": {**data, "updated_at": now}, "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except PyMongoError as e:
            logger.error("upsert on %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e

    async def delete(self, collection_name: str, filter_dict: dict[str, Any]) -> int:
        query = _to_query(filter_dict)
        if query is None:
            return 0
        try:
            result = await self.db[collection_name].delete_many(query)
        except PyMongoError as e:
            logger.error("delete on %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e
        return result.deleted_count

    async def count(self, collection_name: str, filter_dict: dict[str, Any] | None = None) -> int:
        query = _to_query(filter_dict)
        if query is None:
            return 0
        try:
            return await self.db[collection_name].count_documents(query)
        except PyMongoError as e:
            logger.error("count on %s failed: %s", collection_name, e)
            raise RemoteCallFailure() from e


_store: Optional[DataStore] = None


async def get_store() -> DataStore:
    """FastAPI dependency; tests override it with an in-memory store."""
    global _store
    if _store is None:
        _store = DataStore(await get_db())
    return _store


def load(model: Type[ModelT], doc: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(doc)
    except ValidationError as e:
        logger.error("malformed %s record %s: %s", model.__name__, doc.get("id"), e)
        raise MalformedRecord() from e


def load_all(model: Type[ModelT], docs: list[dict[str, Any]]) -> list[ModelT]:
    return [load(model, d) for d in docs]
