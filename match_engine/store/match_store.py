"""
Match persistence
=================
Keyed upsert of match records on (product_id, contact_id).
Uniqueness is the store's job; the engine only ever upserts.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..models.schemas import MatchResult


class MatchStoreError(Exception):
    """Raised when a store cannot persist or read match records."""


def _check_key(result: MatchResult):
    if not result.product_id or not result.contact_id:
        raise MatchStoreError("product_id and contact_id are required")


class MatchStore(ABC):
    """Persistence interface for match records"""

    @abstractmethod
    def upsert(self, result: MatchResult) -> Optional[MatchResult]:
        """Insert or overwrite one record; returns the stored record"""

    @abstractmethod
    def upsert_many(self, results: List[MatchResult]) -> List[MatchResult]:
        """Insert or overwrite many records in one call"""

    @abstractmethod
    def get(self, product_id: str, contact_id: str) -> Optional[MatchResult]:
        """Fetch one record"""

    @abstractmethod
    def list_for_product(
        self,
        product_id: str,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
    ) -> List[MatchResult]:
        """All records for a product, highest score first"""

    @abstractmethod
    def delete_for_product(self, product_id: str) -> int:
        """Drop every record owned by a product; returns the count removed"""

    @abstractmethod
    def delete_for_contact(self, contact_id: str) -> int:
        """Drop every record owned by a contact; returns the count removed"""


class InMemoryMatchStore(MatchStore):
    """
    Process-local store (replace with a database in production).
    Last write wins for a given key.
    """

    def __init__(self):
        self._records: Dict[Tuple[str, str], MatchResult] = {}
        self._lock = threading.Lock()

    def upsert(self, result: MatchResult) -> Optional[MatchResult]:
        _check_key(result)
        with self._lock:
            stored = result.model_copy(deep=True)
            self._records[result.key] = stored
            return stored.model_copy(deep=True)

    def upsert_many(self, results: List[MatchResult]) -> List[MatchResult]:
        for result in results:
            _check_key(result)
        with self._lock:
            stored = []
            for result in results:
                copy = result.model_copy(deep=True)
                self._records[result.key] = copy
                stored.append(copy.model_copy(deep=True))
            return stored

    def get(self, product_id: str, contact_id: str) -> Optional[MatchResult]:
        with self._lock:
            record = self._records.get((product_id, contact_id))
            return record.model_copy(deep=True) if record else None

    def list_for_product(
        self,
        product_id: str,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
    ) -> List[MatchResult]:
        with self._lock:
            records = [
                r.model_copy(deep=True)
                for (pid, _), r in self._records.items()
                if pid == product_id
                and (min_score is None or r.match_score >= min_score)
                and (max_score is None or r.match_score <= max_score)
            ]
        records.sort(key=lambda r: r.match_score, reverse=True)
        return records

    def delete_for_product(self, product_id: str) -> int:
        with self._lock:
            keys = [k for k in self._records if k[0] == product_id]
            for key in keys:
                del self._records[key]
            return len(keys)

    def delete_for_contact(self, contact_id: str) -> int:
        with self._lock:
            keys = [k for k in self._records if k[1] == contact_id]
            for key in keys:
                del self._records[key]
            return len(keys)

    def __len__(self) -> int:
        return len(self._records)
