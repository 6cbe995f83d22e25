"""
Registry Store

The three coupled collections behind the course registry, kept in a single
key-value ``Storage``:

    courses        course_id -> Course
    course_count   int, incremented once per mint, never decremented
    courses_owned  account -> tuple of course ids (bounded)

Atomicity
─────────

    Every primitive runs inside ``transaction()``. A transaction takes the
    registry lock and pushes a write overlay; reads resolve through the
    overlays before falling back to storage. Leaving the block cleanly merges
    the overlay into the enclosing one, or writes it to storage as one batch
    at the outermost level. Leaving it with an exception drops the overlay,
    so a composite operation either lands completely or not at all.

    Readers on other threads block on the same lock and therefore never see
    staged writes.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from coursepass.errors import CapacityExceeded, CountOverflow, CourseExists, CourseNotFound
from coursepass.model import Course

Key = Tuple[str, ...]

COURSES = "courses"
COURSE_COUNT = "course_count"
COURSES_OWNED = "courses_owned"

U64_MAX = 2 ** 64 - 1


# ════════════════════════════════════════════════════════════════════════════
# STORAGE
# ════════════════════════════════════════════════════════════════════════════


class Storage(ABC):
    """
    Abstract key-value mapping with atomic single-key reads and writes.

    Keys are tuples whose first element is the collection name. A value of
    ``None`` passed to ``write_batch`` deletes the key.
    """

    @abstractmethod
    def get(self, key: Key) -> Optional[Any]:
        pass

    @abstractmethod
    def put(self, key: Key, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: Key) -> None:
        pass

    @abstractmethod
    def scan(self, collection: str) -> Iterator[Tuple[Key, Any]]:
        """Iterate over every entry of a collection."""
        pass

    def write_batch(self, changes: Mapping[Key, Optional[Any]]) -> None:
        """Apply several writes. Backends that can should make this atomic."""
        for key, value in changes.items():
            if value is None:
                self.delete(key)
            else:
                self.put(key, value)


class MemoryStorage(Storage):
    """Thread-safe in-memory storage."""

    def __init__(self):
        self._data: Dict[Key, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: Key) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: Key, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: Key) -> None:
        with self._lock:
            self._data.pop(key, None)

    def scan(self, collection: str) -> Iterator[Tuple[Key, Any]]:
        with self._lock:
            items = [(k, v) for k, v in self._data.items() if k[0] == collection]
        return iter(items)

    def write_batch(self, changes: Mapping[Key, Optional[Any]]) -> None:
        with self._lock:
            super().write_batch(changes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


# ════════════════════════════════════════════════════════════════════════════
# REGISTRY STORE
# ════════════════════════════════════════════════════════════════════════════


class RegistryStore:
    """
    Invariant-preserving accessors over the three registry collections.

    Only the transition engine calls the mutating primitives. Each one is
    atomic on its own; composite operations wrap several of them in an
    explicit ``transaction()``.
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        max_courses_owned: int = 3,
        count_limit: int = U64_MAX,
    ):
        if max_courses_owned < 1:
            raise ValueError("max_courses_owned must be positive")
        self._storage = storage if storage is not None else MemoryStorage()
        self.max_courses_owned = max_courses_owned
        self.count_limit = count_limit
        self._lock = threading.RLock()
        self._layers: List[Dict[Key, Optional[Any]]] = []

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["RegistryStore"]:
        """Stage writes; commit on clean exit, discard on exception."""
        with self._lock:
            layer: Dict[Key, Optional[Any]] = {}
            self._layers.append(layer)
            try:
                yield self
            except BaseException:
                self._layers.pop()
                raise
            self._layers.pop()
            if self._layers:
                self._layers[-1].update(layer)
            elif layer:
                self._storage.write_batch(layer)

    @property
    def in_transaction(self) -> bool:
        with self._lock:
            return bool(self._layers)

    def _read(self, key: Key) -> Optional[Any]:
        with self._lock:
            for layer in reversed(self._layers):
                if key in layer:
                    return layer[key]
            return self._storage.get(key)

    def _write(self, key: Key, value: Optional[Any]) -> None:
        # Always called inside transaction()
        self._layers[-1][key] = value

    def _scan(self, collection: str) -> Dict[Key, Any]:
        with self._lock:
            merged = dict(self._storage.scan(collection))
            for layer in self._layers:
                for key, value in layer.items():
                    if key[0] != collection:
                        continue
                    if value is None:
                        merged.pop(key, None)
                    else:
                        merged[key] = value
            return merged

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, course_id: str) -> Optional[Course]:
        return self._read((COURSES, course_id))

    def owned(self, account: str) -> Tuple[str, ...]:
        return self._read((COURSES_OWNED, account)) or ()

    @property
    def count(self) -> int:
        return self._read((COURSE_COUNT,)) or 0

    def courses(self) -> List[Tuple[str, Course]]:
        """All registered courses, sorted by id."""
        return sorted((k[1], v) for k, v in self._scan(COURSES).items())

    def accounts(self) -> List[str]:
        """Accounts with a non-empty owner index, sorted."""
        return sorted(k[1] for k in self._scan(COURSES_OWNED))

    # ------------------------------------------------------------------
    # Mutating primitives
    # ------------------------------------------------------------------

    def insert_new(self, course_id: str, course: Course) -> None:
        with self.transaction():
            if self.get(course_id) is not None:
                raise CourseExists(f"course {course_id} already exists", course_id=course_id)
            self._write((COURSES, course_id), course)

    def update_owner_and_clear_price(self, course_id: str, new_owner: str) -> Course:
        with self.transaction():
            course = self.get(course_id)
            if course is None:
                raise CourseNotFound(f"course {course_id} does not exist", course_id=course_id)
            updated = replace(course, owner=new_owner, price=None)
            self._write((COURSES, course_id), updated)
            return updated

    def update_price(self, course_id: str, new_price: Optional[Decimal]) -> Course:
        with self.transaction():
            course = self.get(course_id)
            if course is None:
                raise CourseNotFound(f"course {course_id} does not exist", course_id=course_id)
            updated = replace(course, price=new_price)
            self._write((COURSES, course_id), updated)
            return updated

    def add_to_owner_index(self, account: str, course_id: str) -> None:
        with self.transaction():
            owned = self.owned(account)
            if len(owned) >= self.max_courses_owned:
                raise CapacityExceeded(
                    f"{account} already owns {len(owned)} courses",
                    account=account,
                    limit=self.max_courses_owned,
                )
            self._write((COURSES_OWNED, account), owned + (course_id,))

    def remove_from_owner_index(self, account: str, course_id: str) -> None:
        """Remove by value, moving the last entry into the freed slot."""
        with self.transaction():
            owned = list(self.owned(account))
            try:
                index = owned.index(course_id)
            except ValueError:
                raise CourseNotFound(
                    f"course {course_id} is not indexed under {account}",
                    course_id=course_id,
                    account=account,
                ) from None
            last = owned.pop()
            if index < len(owned):
                owned[index] = last
            self._write((COURSES_OWNED, account), tuple(owned) or None)

    def next_count(self) -> int:
        with self.transaction():
            current = self.count
            if current >= self.count_limit:
                raise CountOverflow(f"course count {current} would overflow", count=current)
            self._write((COURSE_COUNT,), current + 1)
            return current + 1

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready dump of all three collections."""
        with self._lock:
            return {
                "course_count": self.count,
                "courses": {cid: course.to_dict() for cid, course in self.courses()},
                "courses_owned": {acct: list(self.owned(acct)) for acct in self.accounts()},
            }
