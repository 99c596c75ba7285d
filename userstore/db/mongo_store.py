"""
userstore/db/mongo_store.py

Purpose: DocumentStore backed by MongoDB (Motor)

- Storage key is the Mongo _id; it is stripped from returned documents
- SERVER_TIMESTAMP fields become $currentDate
- update() and array mutators raise DocumentNotFoundError on no match
- Batches run inside a multi-document transaction (needs a replica set)
- watch() follows a change stream in a background task
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING

from userstore.core.exceptions import DocumentNotFoundError
from userstore.core.logging import get_logger
from userstore.db.store import (
    SERVER_TIMESTAMP,
    BatchOperation,
    DeleteOperation,
    DocumentStore,
    FieldFilter,
    OrderBy,
    SetOperation,
    SnapshotCallback,
    Subscription,
    UpdateOperation,
)

logger = get_logger(__name__)

_OPERATORS = {
    "==": "$eq",
    "!=": "$ne",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
    "in": "$in",
}


def build_filter(filters: Sequence[FieldFilter]) -> Dict[str, Any]:
    """
    Translates FieldFilters into a Mongo query document. Several filters on
    the same field are combined, e.g. {"username": {"$gte": "a", "$lt": "b"}}.
    """
    query: Dict[str, Dict[str, Any]] = {}
    for flt in filters:
        value = list(flt.value) if flt.op == "in" else flt.value
        query.setdefault(flt.field, {})[_OPERATORS[flt.op]] = value
    return query


def split_update(fields: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Builds the update document for a field map, moving SERVER_TIMESTAMP
    values to $currentDate.
    """
    to_set = {path: value for path, value in fields.items() if value is not SERVER_TIMESTAMP}
    to_stamp = {path: True for path, value in fields.items() if value is SERVER_TIMESTAMP}
    update: Dict[str, Dict[str, Any]] = {}
    if to_set:
        update["$set"] = to_set
    if to_stamp:
        update["$currentDate"] = to_stamp
    return update


def _strip_id(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    return {key: value for key, value in document.items() if key != "_id"}


class MongoDocumentStore(DocumentStore):
    """
    DocumentStore over one Motor collection.

    Attributes:
        collection: The Motor collection holding the documents
    """

    def __init__(self, collection: AsyncIOMotorCollection, client: Optional[AsyncIOMotorClient] = None):
        self.collection = collection
        self._client = client if client is not None else collection.database.client

    def new_id(self) -> str:
        return str(ObjectId())

    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        return _strip_id(await self.collection.find_one({"_id": doc_id}))

    async def set(self, doc_id: str, data: Dict[str, Any], merge: bool = False, session=None) -> None:
        if merge:
            update = split_update(data)
            if update:
                await self.collection.update_one({"_id": doc_id}, update, upsert=True, session=session)
            return

        now = datetime.now(timezone.utc)
        document = {
            key: (now if value is SERVER_TIMESTAMP else value)
            for key, value in data.items()
        }
        document["_id"] = doc_id
        await self.collection.replace_one({"_id": doc_id}, document, upsert=True, session=session)

    async def update(self, doc_id: str, fields: Dict[str, Any], session=None) -> None:
        update = split_update(fields)
        if not update:
            return
        result = await self.collection.update_one({"_id": doc_id}, update, session=session)
        if result.matched_count == 0:
            raise DocumentNotFoundError(doc_id)

    async def delete(self, doc_id: str, session=None) -> None:
        await self.collection.delete_one({"_id": doc_id}, session=session)

    async def query(
        self,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.collection.find(build_filter(filters))
        if order_by is not None:
            cursor = cursor.sort(order_by.field, DESCENDING if order_by.descending else ASCENDING)
        if limit is not None:
            cursor = cursor.limit(limit)
        documents = await cursor.to_list(length=limit)
        return [_strip_id(document) for document in documents]

    async def count(self, filters: Sequence[FieldFilter] = ()) -> int:
        return await self.collection.count_documents(build_filter(filters))

    async def array_union(self, doc_id: str, field_path: str, values: Iterable[Any]) -> None:
        result = await self.collection.update_one(
            {"_id": doc_id},
            {"$addToSet": {field_path: {"$each": list(values)}}},
        )
        if result.matched_count == 0:
            raise DocumentNotFoundError(doc_id)

    async def array_remove(self, doc_id: str, field_path: str, values: Iterable[Any]) -> None:
        result = await self.collection.update_one(
            {"_id": doc_id},
            {"$pull": {field_path: {"$in": list(values)}}},
        )
        if result.matched_count == 0:
            raise DocumentNotFoundError(doc_id)

    async def commit_batch(self, operations: Sequence[BatchOperation]) -> None:
        if not operations:
            return
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                for operation in operations:
                    await self._apply(operation, session)
        logger.debug(f"Committed transaction of {len(operations)} operations")

    async def _apply(self, operation: BatchOperation, session) -> None:
        if isinstance(operation, SetOperation):
            await self.set(operation.doc_id, operation.data, merge=operation.merge, session=session)
        elif isinstance(operation, UpdateOperation):
            await self.update(operation.doc_id, operation.fields, session=session)
        elif isinstance(operation, DeleteOperation):
            await self.delete(operation.doc_id, session=session)
        else:
            raise TypeError(f"Unknown batch operation: {operation!r}")

    def watch(self, doc_id: str, callback: SnapshotCallback) -> Subscription:
        task = asyncio.get_running_loop().create_task(self._follow(doc_id, callback))
        return Subscription(task.cancel)

    async def _follow(self, doc_id: str, callback: SnapshotCallback) -> None:
        pipeline = [{"$match": {"documentKey._id": doc_id}}]
        try:
            async with self.collection.watch(pipeline, full_document="updateLookup") as stream:
                # Stream is open before the first read, so no change is missed
                callback(await self.get(doc_id), None)
                async for change in stream:
                    snapshot, finished = self._snapshot_from_change(change)
                    callback(snapshot, None)
                    if finished:
                        break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Change stream for {doc_id} failed: {e}", extra={"user_id": doc_id})
            callback(None, e)

    @staticmethod
    def _snapshot_from_change(change: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Returns (snapshot, stream_finished) for one change event.
        """
        operation = change.get("operationType")
        if operation in ("insert", "replace", "update"):
            return _strip_id(change.get("fullDocument")), False
        if operation == "delete":
            return None, False
        # drop / rename / invalidate close the stream
        return None, True
