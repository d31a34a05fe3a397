# =============================================================================
# pos_core/remote/base.py
# Document store interface and query DSL
# =============================================================================
"""
The remote document store is an external collaborator. Everything above it
(the façade, the offline queue) talks to this interface only.

Queries use a deliberately small DSL: any number of single-field
conditions (==, >, >=, <, <=) plus one order-by field.

Usage:
    query = Query.build("orders", [("status", "==", "pending")], ("timestamp", "asc"))
    pending = query.apply(records)
"""

from __future__ import annotations
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pos_core.errors import PosCoreError

Record = Dict[str, Any]
RecordsCallback = Callable[[List[Record]], None]
ErrorCallback = Callable[[BaseException], None]

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class Condition:
    """A single ``field op value`` filter."""
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise PosCoreError(
                f"Unsupported query operator '{self.op}'",
                code="QUERY_001",
                details={"field": self.field},
            )

    @classmethod
    def parse(cls, raw: Union[Condition, Sequence[Any]]) -> Condition:
        if isinstance(raw, Condition):
            return raw
        field_name, op, value = raw
        return cls(field_name, op, value)

    def matches(self, record: Record) -> bool:
        # Missing fields and incomparable types never match a range filter
        if self.field not in record:
            return self.op == "==" and self.value is None
        try:
            return bool(OPERATORS[self.op](record[self.field], self.value))
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = "asc"

    def __post_init__(self):
        if self.direction not in SORT_DIRECTIONS:
            raise PosCoreError(
                f"Unsupported sort direction '{self.direction}'",
                code="QUERY_002",
                details={"field": self.field},
            )

    @classmethod
    def parse(cls, raw: Union[OrderBy, Sequence[str], None]) -> Optional[OrderBy]:
        if raw is None or isinstance(raw, OrderBy):
            return raw
        if len(raw) == 0:
            return None
        return cls(*raw)

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


@dataclass(frozen=True)
class Query:
    collection: str
    conditions: Tuple[Condition, ...] = ()
    order: Optional[OrderBy] = None

    @classmethod
    def build(
        cls,
        collection: str,
        conditions: Iterable[Union[Condition, Sequence[Any]]] = (),
        order: Union[OrderBy, Sequence[str], None] = None,
    ) -> Query:
        return cls(
            collection=collection,
            conditions=tuple(Condition.parse(c) for c in conditions or ()),
            order=OrderBy.parse(order),
        )

    def apply(self, records: Iterable[Record]) -> List[Record]:
        """Filter and sort records in memory."""
        data = [r for r in records if all(c.matches(r) for c in self.conditions)]
        if self.order is not None:
            name = self.order.field
            # Records lacking the field sort after the rest
            present = [r for r in data if r.get(name) is not None]
            missing = [r for r in data if r.get(name) is None]
            try:
                present.sort(key=lambda r: r[name], reverse=self.order.descending)
            except TypeError:
                present.sort(key=lambda r: str(r[name]), reverse=self.order.descending)
            data = present + missing
        return data


@dataclass
class BatchOperation:
    """One entry of a batch write: ``set``, ``update`` or ``delete``."""
    kind: str
    collection: str
    doc_id: str
    data: Record = field(default_factory=dict)
    merge: bool = False

    KINDS = ("set", "update", "delete")

    def __post_init__(self):
        if self.kind not in self.KINDS:
            raise PosCoreError(f"Unsupported batch operation '{self.kind}'", code="QUERY_003")


class Subscription:
    """Handle for a live query; ``close()`` stops delivery."""

    def __init__(self, unsubscribe: Optional[Callable[[], None]] = None):
        self._unsubscribe = unsubscribe
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()

    __call__ = close


class DocumentStore(ABC):
    """
    Collection-oriented document store.

    Errors raised by implementations carry a ``code`` attribute
    (``unavailable``, ``deadline-exceeded``, ``failed-precondition`` ...),
    normally as RemoteStoreError.
    """

    @abstractmethod
    async def add(self, collection: str, data: Record) -> str:
        """Create a document with a generated id; returns the id."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        """Fetch one document (with its ``id``) or None."""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Record, merge: bool = False) -> None:
        """Create or replace a document; ``merge`` keeps unspecified fields."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Record) -> bool:
        """Merge fields into an existing document; False when it does not exist."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; missing documents are ignored."""

    @abstractmethod
    async def query(self, query: Query) -> List[Record]:
        """Run a one-shot query."""

    @abstractmethod
    def subscribe(
        self,
        query: Query,
        on_next: RecordsCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Deliver the query result now and on every change."""

    @abstractmethod
    async def commit_batch(self, operations: Sequence[BatchOperation]) -> None:
        """Apply several writes together."""

    async def close(self) -> None:
        """Release client resources."""
