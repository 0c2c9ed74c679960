"""
in-memory document store

what lives here:
- blood requests (one dict per request, keyed by id)
- blood stock (units on hand per blood group)
- organizations (hospitals, blood banks)

the priority code only needs "find documents by filter" and "update one
document", so that is all this exposes. everything is kept in process memory,
which means it resets on restart. swapping it for a real database means
reimplementing this class, the handler does not care.

one rule enforced here:
priority_score / priority_category / priority_details and the priority
timestamps are written only through update_priority (or at insert time).
the generic update_request refuses them, so ranking has a single source of truth.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from app.schemas.blood import RequestStatus

PRIORITY_FIELDS = frozenset(
    {
        "priority_score",
        "priority_category",
        "priority_details",
        "priority_calculated_at",
        "priority_recalculated_at",
    }
)


def _created_sort_key(document: Mapping[str, Any]) -> datetime:
    created_at = document.get("created_at")
    if created_at is None:
        return datetime.max.replace(tzinfo=timezone.utc)
    if created_at.tzinfo is None:
        return created_at.replace(tzinfo=timezone.utc)
    return created_at


def _matches(document: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    # equality on every key, None means "don't filter on this"
    return all(document.get(k) == v for k, v in filters.items() if v is not None)


class DocumentStore:
    """
    Thread safe in-memory store.

    Reads hand out deep copies so callers can't mutate stored documents
    behind the store's back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, dict[str, Any]] = {}
        self._stock: dict[str, int] = {}
        self._organizations: dict[str, dict[str, Any]] = {}

    # ---- requests ----

    def insert_request(self, document: Mapping[str, Any]) -> dict[str, Any]:
        doc = copy.deepcopy(dict(document))
        doc.setdefault("id", uuid.uuid4().hex)
        with self._lock:
            if doc["id"] in self._requests:
                raise ValueError(f"Request with id '{doc['id']}' already exists.")
            self._requests[doc["id"]] = doc
            return copy.deepcopy(doc)

    def find_request(self, request_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            doc = self._requests.get(request_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find_requests(self, filters: Optional[Mapping[str, Any]] = None) -> list[dict[str, Any]]:
        filters = filters or {}
        with self._lock:
            return [copy.deepcopy(d) for d in self._requests.values() if _matches(d, filters)]

    def get_pending_by_priority(
        self,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        Pending, active requests, highest priority_score first and oldest first on ties.
        """
        query = dict(filters or {})
        query["status"] = RequestStatus.pending.value
        query["is_active"] = True
        docs = self.find_requests(query)
        docs.sort(key=_created_sort_key)
        docs.sort(key=lambda d: d.get("priority_score") or 0, reverse=True)
        return docs

    def update_request(self, request_id: str, fields: Mapping[str, Any]) -> bool:
        blocked = PRIORITY_FIELDS.intersection(fields)
        if blocked:
            raise ValueError(
                f"Priority fields can only be written by the priority handler: {sorted(blocked)}"
            )
        with self._lock:
            doc = self._requests.get(request_id)
            if doc is None:
                return False
            doc.update(copy.deepcopy(dict(fields)))
            return True

    def update_priority(
        self,
        request_id: str,
        score: int,
        category: str,
        details: Optional[Mapping[str, Any]],
        recalculated_at: datetime,
    ) -> bool:
        with self._lock:
            doc = self._requests.get(request_id)
            if doc is None:
                return False
            doc["priority_score"] = score
            doc["priority_category"] = category
            doc["priority_details"] = copy.deepcopy(dict(details)) if details is not None else None
            doc["priority_recalculated_at"] = recalculated_at
            return True

    # ---- stock ----

    def get_stock_units(self, blood_group: str) -> int:
        with self._lock:
            return self._stock.get(blood_group, 0)

    def set_stock_units(self, blood_group: str, units: int) -> None:
        if units < 0:
            raise ValueError("Stock units can not be negative.")
        with self._lock:
            self._stock[blood_group] = units

    def list_stock(self) -> dict[str, int]:
        with self._lock:
            return dict(self._stock)

    # ---- organizations ----

    def upsert_organization(self, organization: Mapping[str, Any]) -> dict[str, Any]:
        doc = copy.deepcopy(dict(organization))
        with self._lock:
            self._organizations[doc["id"]] = doc
            return copy.deepcopy(doc)

    def find_organization(self, organization_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            doc = self._organizations.get(organization_id)
            return copy.deepcopy(doc) if doc is not None else None


# single process-wide store
_STORE = DocumentStore()


def get_store() -> DocumentStore:
    """
    Returns the singleton store.

    Kept behind a function so routes and the handler never import the
    global directly, and tests can reset it.
    """
    return _STORE


def reset_store() -> None:
    global _STORE
    _STORE = DocumentStore()
