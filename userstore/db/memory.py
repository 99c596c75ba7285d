"""
userstore/db/memory.py

Purpose: In-process DocumentStore

- Same contract as the Mongo adapter, no server needed
- Used by the test suite and for offline repositories
- Batches are applied to a staged copy and swapped in on success
- Records how often each store method was called
- Writes to chosen documents can be made to fail (fail_on)
"""

import copy
import uuid
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

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

_MISSING = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Value at a dotted path, or _MISSING."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def _matches(document: Dict[str, Any], flt: FieldFilter) -> bool:
    value = get_path(document, flt.field)
    if value is _MISSING:
        return False
    if flt.op == "==":
        return value == flt.value
    if flt.op == "!=":
        return value != flt.value
    if flt.op == "in":
        return value in flt.value
    if value is None:
        return False
    try:
        if flt.op == "<":
            return value < flt.value
        if flt.op == "<=":
            return value <= flt.value
        if flt.op == ">":
            return value > flt.value
        return value >= flt.value
    except TypeError:
        # Mixed types never match a range filter
        return False


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed DocumentStore.

    Attributes:
        calls: Counter of store method invocations, keyed by method name
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._watchers: Dict[str, List[SnapshotCallback]] = defaultdict(list)
        self._clock = clock or _utcnow
        self.calls: Counter = Counter()
        self._faults: Dict[str, BaseException] = {}

    # ── helpers ───────────────────────────────────────────

    def _resolve(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = self._clock()
        return {
            path: (now if value is SERVER_TIMESTAMP else copy.deepcopy(value))
            for path, value in fields.items()
        }

    def _check_fault(self, doc_id: str) -> None:
        if doc_id in self._faults:
            raise self._faults[doc_id]

    def _apply(self, documents: Dict[str, Dict[str, Any]], operation: BatchOperation) -> None:
        self._check_fault(operation.doc_id)
        if isinstance(operation, SetOperation):
            data = self._resolve(operation.data)
            if operation.merge:
                target = documents.setdefault(operation.doc_id, {})
                for path, value in data.items():
                    set_path(target, path, value)
            else:
                documents[operation.doc_id] = data
        elif isinstance(operation, UpdateOperation):
            if operation.doc_id not in documents:
                raise DocumentNotFoundError(operation.doc_id)
            for path, value in self._resolve(operation.fields).items():
                set_path(documents[operation.doc_id], path, value)
        elif isinstance(operation, DeleteOperation):
            documents.pop(operation.doc_id, None)
        else:
            raise TypeError(f"Unknown batch operation: {operation!r}")

    def _notify(self, doc_ids: Iterable[str]) -> None:
        for doc_id in set(doc_ids):
            snapshot = self._documents.get(doc_id)
            for callback in list(self._watchers.get(doc_id, ())):
                callback(copy.deepcopy(snapshot), None)

    def notify_error(self, doc_id: str, error: BaseException) -> None:
        """Deliver a listener error to every watcher of ``doc_id``."""
        for callback in list(self._watchers.get(doc_id, ())):
            callback(None, error)

    def fail_on(self, doc_id: str, error: Optional[BaseException]) -> None:
        """
        Make every write to ``doc_id`` raise ``error``, inside batches too.
        Pass None to clear.
        """
        if error is None:
            self._faults.pop(doc_id, None)
        else:
            self._faults[doc_id] = error

    def watcher_count(self, doc_id: str) -> int:
        return len(self._watchers.get(doc_id, ()))

    # ── DocumentStore ─────────────────────────────────────

    def new_id(self) -> str:
        self.calls["new_id"] += 1
        return uuid.uuid4().hex[:20]

    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        self.calls["get"] += 1
        document = self._documents.get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def set(self, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.calls["set"] += 1
        self._apply(self._documents, SetOperation(doc_id, data, merge))
        self._notify([doc_id])

    async def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        self.calls["update"] += 1
        self._apply(self._documents, UpdateOperation(doc_id, fields))
        self._notify([doc_id])

    async def delete(self, doc_id: str) -> None:
        self.calls["delete"] += 1
        self._apply(self._documents, DeleteOperation(doc_id))
        self._notify([doc_id])

    async def query(
        self,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self.calls["query"] += 1
        results = [
            document
            for document in self._documents.values()
            if all(_matches(document, flt) for flt in filters)
        ]
        if order_by is not None:
            results = [d for d in results if get_path(d, order_by.field) not in (_MISSING, None)]
            results.sort(key=lambda d: get_path(d, order_by.field), reverse=order_by.descending)
        if limit is not None:
            results = results[:limit]
        return copy.deepcopy(results)

    async def count(self, filters: Sequence[FieldFilter] = ()) -> int:
        self.calls["count"] += 1
        return sum(
            1
            for document in self._documents.values()
            if all(_matches(document, flt) for flt in filters)
        )

    async def array_union(self, doc_id: str, field_path: str, values: Iterable[Any]) -> None:
        self.calls["array_union"] += 1
        self._check_fault(doc_id)
        document = self._documents.get(doc_id)
        if document is None:
            raise DocumentNotFoundError(doc_id)
        current = get_path(document, field_path)
        items = list(current) if isinstance(current, list) else []
        for value in values:
            if value not in items:
                items.append(value)
        set_path(document, field_path, items)
        self._notify([doc_id])

    async def array_remove(self, doc_id: str, field_path: str, values: Iterable[Any]) -> None:
        self.calls["array_remove"] += 1
        self._check_fault(doc_id)
        document = self._documents.get(doc_id)
        if document is None:
            raise DocumentNotFoundError(doc_id)
        removed = list(values)
        current = get_path(document, field_path)
        items = list(current) if isinstance(current, list) else []
        set_path(document, field_path, [item for item in items if item not in removed])
        self._notify([doc_id])

    async def commit_batch(self, operations: Sequence[BatchOperation]) -> None:
        self.calls["commit_batch"] += 1
        staged = copy.deepcopy(self._documents)
        for operation in operations:
            self._apply(staged, operation)
        self._documents = staged
        logger.debug(f"Committed batch of {len(operations)} operations")
        self._notify(operation.doc_id for operation in operations)

    def watch(self, doc_id: str, callback: SnapshotCallback) -> Subscription:
        self.calls["watch"] += 1
        self._watchers[doc_id].append(callback)

        def cancel():
            watchers = self._watchers.get(doc_id, [])
            if callback in watchers:
                watchers.remove(callback)

        callback(copy.deepcopy(self._documents.get(doc_id)), None)
        return Subscription(cancel)
