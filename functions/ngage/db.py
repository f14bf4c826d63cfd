"""
Document-store abstraction over Firestore and an in-memory test implementation.

Documents are plain dicts with camelCase keys; every document carries its own
`id`. Queries take (field, op, value) filters where op is one of
== != < <= > >= in array_contains.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple, TypeVar

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from ngage.errors import NotFoundError, translate_google_error
from ngage.retry import with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")
Filter = Tuple[str, str, Any]

SUPPORTED_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "array_contains")

# Firestore caps the number of values in an `in` filter.
FIRESTORE_IN_LIMIT = 30


class DbClient(Protocol):
    """Interface for document access."""

    def new_id(self, collection: str) -> str:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def query(
        self,
        collection: str,
        filters: Optional[Iterable[Filter]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        ...

    def run_transaction(self, fn: Callable[["DbClient"], T]) -> T:
        ...


def _matches(doc: dict, filters: Iterable[Filter]) -> bool:
    for field_name, op, value in filters:
        if field_name not in doc:
            return False
        actual = doc[field_name]
        if op == "==":
            ok = actual == value
        elif op == "!=":
            ok = actual != value
        elif op == "in":
            ok = actual in value
        elif op == "array_contains":
            ok = isinstance(actual, list) and value in actual
        elif op in ("<", "<=", ">", ">="):
            if actual is None or value is None:
                return False
            ok = {
                "<": actual < value,
                "<=": actual <= value,
                ">": actual > value,
                ">=": actual >= value,
            }[op]
        else:
            raise ValueError(f"Unsupported query operator: {op}")
        if not ok:
            return False
    return True


class InMemoryDbClient:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.collections.clear()

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        with self._lock:
            docs = self._collection(collection)
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise NotFoundError(f"Document not found: {collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(data))

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collection(collection).pop(doc_id, None)

    def query(
        self,
        collection: str,
        filters: Optional[Iterable[Filter]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        filters = list(filters or [])
        with self._lock:
            docs = [
                copy.deepcopy(doc)
                for doc in self._collection(collection).values()
                if _matches(doc, filters)
            ]
        if order_by:
            docs = [d for d in docs if d.get(order_by) is not None]
            docs.sort(key=lambda d: d[order_by], reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def run_transaction(self, fn: Callable[[DbClient], T]) -> T:
        with self._lock:
            snapshot = copy.deepcopy(self.collections)
            try:
                return fn(self)
            except Exception:
                self.collections = snapshot
                raise


def _build_query(client, collection: str, filters, order_by, descending, limit):
    query = client.collection(collection)
    for field_name, op, value in filters:
        if op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        firestore_op = "array-contains" if op == "array_contains" else op
        query = query.where(filter=FieldFilter(field_name, firestore_op, value))
    if order_by:
        direction = (
            firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        )
        query = query.order_by(order_by, direction=direction)
    if limit is not None:
        query = query.limit(limit)
    return query


def _split_in_filters(filters: List[Filter]) -> List[List[Filter]]:
    """Splits an oversized `in` filter into several Firestore-sized queries."""
    for index, (field_name, op, value) in enumerate(filters):
        if op == "in" and len(value) > FIRESTORE_IN_LIMIT:
            values = list(value)
            return [
                filters[:index]
                + [(field_name, "in", values[i : i + FIRESTORE_IN_LIMIT])]
                + filters[index + 1 :]
                for i in range(0, len(values), FIRESTORE_IN_LIMIT)
            ]
    return [filters]


class _FirestoreTransactionView:
    """DbClient view whose reads and writes go through one transaction."""

    def __init__(self, client, transaction):
        self._client = client
        self._transaction = transaction

    def new_id(self, collection: str) -> str:
        return self._client.collection(collection).document().id

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self._client.collection(collection).document(doc_id).get(
            transaction=self._transaction
        )
        return snapshot.to_dict() if snapshot.exists else None

    def set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        ref = self._client.collection(collection).document(doc_id)
        self._transaction.set(ref, data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        ref = self._client.collection(collection).document(doc_id)
        self._transaction.update(ref, data)

    def delete(self, collection: str, doc_id: str) -> None:
        ref = self._client.collection(collection).document(doc_id)
        self._transaction.delete(ref)

    def query(
        self,
        collection: str,
        filters: Optional[Iterable[Filter]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        query = _build_query(
            self._client, collection, list(filters or []), order_by, descending, limit
        )
        return [s.to_dict() for s in query.stream(transaction=self._transaction)]

    def run_transaction(self, fn: Callable[[DbClient], T]) -> T:
        return fn(self)


class FirestoreDbClient:
    """
    Firestore-backed implementation using the firebase_admin client.
    """

    def __init__(self, client=None):
        self.client = client or firestore.client()

    def _call(self, operation: Callable[[], T], context: str) -> T:
        def guarded() -> T:
            try:
                return operation()
            except google_exceptions.GoogleAPICallError as e:
                raise translate_google_error(e) from e

        return with_retry(guarded, context=context)

    def new_id(self, collection: str) -> str:
        return self.client.collection(collection).document().id

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        def _get():
            snapshot = self.client.collection(collection).document(doc_id).get()
            return snapshot.to_dict() if snapshot.exists else None

        return self._call(_get, f"get {collection}/{doc_id}")

    def set(self, collection: str, doc_id: str, data: dict, *, merge: bool = False) -> None:
        ref = self.client.collection(collection).document(doc_id)
        self._call(lambda: ref.set(data, merge=merge), f"set {collection}/{doc_id}")

    def update(self, collection: str, doc_id: str, data: dict) -> None:
        ref = self.client.collection(collection).document(doc_id)
        self._call(lambda: ref.update(data), f"update {collection}/{doc_id}")

    def delete(self, collection: str, doc_id: str) -> None:
        ref = self.client.collection(collection).document(doc_id)
        self._call(ref.delete, f"delete {collection}/{doc_id}")

    def query(
        self,
        collection: str,
        filters: Optional[Iterable[Filter]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        filter_sets = _split_in_filters(list(filters or []))

        def _query():
            docs: List[dict] = []
            for filter_set in filter_sets:
                query = _build_query(
                    self.client, collection, filter_set, order_by, descending, limit
                )
                docs.extend(s.to_dict() for s in query.stream())
            if len(filter_sets) > 1:
                if order_by:
                    docs.sort(key=lambda d: d[order_by], reverse=descending)
                if limit is not None:
                    docs = docs[:limit]
            return docs

        return self._call(_query, f"query {collection}")

    def run_transaction(self, fn: Callable[[DbClient], T]) -> T:
        transaction = self.client.transaction()

        @firestore.transactional
        def _run(transaction):
            return fn(_FirestoreTransactionView(self.client, transaction))

        try:
            return _run(transaction)
        except google_exceptions.GoogleAPICallError as e:
            raise translate_google_error(e) from e
