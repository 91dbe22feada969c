from __future__ import annotations

from contextlib import contextmanager
import logging
from threading import Lock
import time
from typing import Hashable, Iterable, Iterator

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from routine.core.exceptions import AtomicityFailure
from routine.models.class_assignment import ResourceKind, ResourceSlotLock
from routine.services.planning import PlannedAssignment, new_id

logger = logging.getLogger(__name__)

LockKey = tuple[str, ...]


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = Lock()
        self.users = 0


class KeyedLockRegistry:
    """Process-wide mutual exclusion per resource-day-slot (or cell) key.

    Entries exist only while some caller holds or waits on the key.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, _KeyedLock] = {}
        self._guard = Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: Hashable) -> _KeyedLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyedLock()
                self._locks[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable, entry: _KeyedLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users <= 0 and self._locks.get(key) is entry:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[LockKey], *, timeout: float) -> Iterator[None]:
        # A single global order for acquisition keeps overlapping requests deadlock-free.
        ordered = sorted(set(keys))
        checked_out: list[tuple[LockKey, _KeyedLock]] = []
        acquired: list[Lock] = []
        deadline = time.monotonic() + max(0.0, timeout)
        try:
            for key in ordered:
                entry = self._checkout(key)
                checked_out.append((key, entry))
                remaining = max(0.0, deadline - time.monotonic())
                if not entry.lock.acquire(timeout=remaining):
                    raise AtomicityFailure(
                        "Timed out waiting for a concurrent routine change to finish",
                        details={"lock_key": list(key)},
                    )
                acquired.append(entry.lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key, entry in checked_out:
                self._checkin(key, entry)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


_registry = KeyedLockRegistry()


def lock_registry() -> KeyedLockRegistry:
    return _registry


def clear_slot_locks() -> None:
    _registry.clear()


def resource_keys(items: Iterable[PlannedAssignment]) -> list[tuple[ResourceKind, str, int, int]]:
    keys = {
        (claim.kind, claim.resource_id, item.day_index, item.slot_id)
        for item in items
        for claim in item.claims()
    }
    return sorted(keys, key=lambda key: (key[0].value, key[1], key[2], key[3]))


def process_keys(items: Iterable[PlannedAssignment]) -> list[LockKey]:
    materialized = list(items)
    keys: list[LockKey] = [
        ("resource", kind.value, resource_id, str(day_index), str(slot_id))
        for kind, resource_id, day_index, slot_id in resource_keys(materialized)
    ]
    keys.extend(("cell", *(str(part) for part in item.cell)) for item in materialized)
    return keys


def _lock_filter(keys: list[tuple[ResourceKind, str, int, int]]):
    return or_(
        *(
            and_(
                ResourceSlotLock.resource_kind == kind,
                ResourceSlotLock.resource_id == resource_id,
                ResourceSlotLock.day_index == day_index,
                ResourceSlotLock.slot_id == slot_id,
            )
            for kind, resource_id, day_index, slot_id in keys
        )
    )


def _insert_missing_lock_rows(db: Session, rows: list[dict]) -> None:
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        db.add_all(ResourceSlotLock(**row) for row in rows)
        db.flush()
        return
    statement = insert(ResourceSlotLock).values(rows).on_conflict_do_nothing(
        index_elements=["resource_kind", "resource_id", "day_index", "slot_id"]
    )
    db.execute(statement)


def lock_resource_rows(db: Session, keys: list[tuple[ResourceKind, str, int, int]]) -> None:
    """Take row-level locks on every key inside the caller's open transaction.

    Missing lock rows are created first so the ``FOR UPDATE`` select has rows to lock.
    """
    if not keys:
        return
    existing = {
        (row.resource_kind, row.resource_id, row.day_index, row.slot_id)
        for row in db.execute(select(ResourceSlotLock).where(_lock_filter(keys))).scalars()
    }
    missing = [
        {
            "id": new_id(),
            "resource_kind": kind,
            "resource_id": resource_id,
            "day_index": day_index,
            "slot_id": slot_id,
        }
        for kind, resource_id, day_index, slot_id in keys
        if (kind, resource_id, day_index, slot_id) not in existing
    ]
    if missing:
        logger.debug("Creating %d resource lock row(s)", len(missing))
        _insert_missing_lock_rows(db, missing)

    db.execute(
        select(ResourceSlotLock.id)
        .where(_lock_filter(keys))
        .order_by(
            ResourceSlotLock.resource_kind,
            ResourceSlotLock.resource_id,
            ResourceSlotLock.day_index,
            ResourceSlotLock.slot_id,
        )
        .with_for_update()
    ).all()
