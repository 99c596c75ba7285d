"""
Document Store Interface (DocumentStore)

Abstract base class defining the narrow set of capabilities the user
repository needs from a document database: point reads and writes,
filtered queries, atomic array mutators, all-or-nothing batches and
per-document change notifications.

Implementation guide:
- All data methods must be async
- Documents are plain dicts; the storage key is passed separately
- update() and array mutators must fail on a missing document
- SERVER_TIMESTAMP values in a field map are resolved by the store
- commit_batch() must apply every operation or none
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union


class _ServerTimestamp:
    """Sentinel replaced by the store's own clock at write time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")


@dataclass(frozen=True)
class FieldFilter:
    """
    One predicate of a query, e.g. FieldFilter("presence", "==", "ONLINE").
    """
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")
        if self.op == "in" and not isinstance(self.value, (list, tuple, set, frozenset)):
            raise ValueError("'in' filter needs a collection of values")


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class SetOperation:
    doc_id: str
    data: Dict[str, Any]
    merge: bool = False


@dataclass(frozen=True)
class UpdateOperation:
    doc_id: str
    fields: Dict[str, Any]


@dataclass(frozen=True)
class DeleteOperation:
    doc_id: str


BatchOperation = Union[SetOperation, UpdateOperation, DeleteOperation]

# callback(snapshot, error): snapshot is None when the document is absent
SnapshotCallback = Callable[[Optional[Dict[str, Any]], Optional[BaseException]], None]


@dataclass
class Subscription:
    """
    Handle returned by DocumentStore.watch(). Calling unsubscribe() stops
    callbacks; it is safe to call more than once.
    """
    _cancel: Callable[[], None]
    active: bool = field(default=True)

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


class DocumentStore(ABC):
    """
    Abstract interface over one collection of a document database.
    """

    @abstractmethod
    def new_id(self) -> str:
        """Allocate a fresh document id without writing anything."""

    @abstractmethod
    async def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """Point read. Returns None when the document does not exist."""

    @abstractmethod
    async def set(self, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """
        Write a full document.

        Args:
            doc_id: Storage key
            data: Document body
            merge: Keep fields of an existing document that ``data`` omits;
                dotted keys address nested fields
        """

    @abstractmethod
    async def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        """
        Partial write of the named fields (dotted paths address nested
        fields).

        Raises:
            DocumentNotFoundError: If the document does not exist
        """

    @abstractmethod
    async def delete(self, doc_id: str) -> None:
        """Remove a document. Deleting a missing document is not an error."""

    @abstractmethod
    async def query(
        self,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Documents matching every filter, optionally ordered and capped."""

    @abstractmethod
    async def count(self, filters: Sequence[FieldFilter] = ()) -> int:
        """Number of documents matching every filter."""

    @abstractmethod
    async def array_union(self, doc_id: str, field_path: str, values: Iterable[Any]) -> None:
        """Atomically add values not already present in an array field."""

    @abstractmethod
    async def array_remove(self, doc_id: str, field_path: str, values: Iterable[Any]) -> None:
        """Atomically remove every occurrence of values from an array field."""

    @abstractmethod
    async def commit_batch(self, operations: Sequence[BatchOperation]) -> None:
        """Apply all operations atomically: all succeed or none are applied."""

    @abstractmethod
    def watch(self, doc_id: str, callback: SnapshotCallback) -> Subscription:
        """
        Register for snapshots of one document. The current state is
        delivered first, then one snapshot per change.
        """
