import threading

import pytest
from sqlalchemy import func, select

from routine.core.exceptions import AtomicityFailure
from routine.models.class_assignment import ResourceKind, ResourceSlotLock
from routine.services.slot_locks import KeyedLockRegistry, lock_resource_rows


def test_held_key_times_out_for_a_second_holder():
    registry = KeyedLockRegistry()

    with registry.hold([("resource", "teacher", "t1", "0", "0")], timeout=1):
        with pytest.raises(AtomicityFailure) as exc_info:
            with registry.hold([("resource", "teacher", "t1", "0", "0")], timeout=0.01):
                pass

    assert exc_info.value.details["lock_key"] == ["resource", "teacher", "t1", "0", "0"]


def test_disjoint_keys_do_not_block_each_other():
    registry = KeyedLockRegistry()
    entered = threading.Event()

    def other_holder():
        with registry.hold([("resource", "room", "r2", "0", "0")], timeout=1):
            entered.set()

    with registry.hold([("resource", "room", "r1", "0", "0")], timeout=1):
        worker = threading.Thread(target=other_holder)
        worker.start()
        worker.join(timeout=2)

    assert entered.is_set()


def test_keys_are_released_after_failure():
    registry = KeyedLockRegistry()
    key = ("cell", "CSE", "1", "AB", "0", "0")

    with pytest.raises(RuntimeError):
        with registry.hold([key], timeout=1):
            raise RuntimeError("boom")

    with registry.hold([key], timeout=0.01):
        pass


def test_lock_rows_are_created_once(db, seed):
    keys = [(ResourceKind.teacher, seed.t1, 0, 0), (ResourceKind.room, seed.r1, 0, 0)]

    lock_resource_rows(db, keys)
    db.commit()
    lock_resource_rows(db, keys + [(ResourceKind.teacher, seed.t2, 0, 0)])
    db.commit()

    count = db.execute(select(func.count()).select_from(ResourceSlotLock)).scalar_one()
    assert count == 3


def test_released_keys_are_evicted():
    registry = KeyedLockRegistry()
    keys = [("resource", "teacher", "t1", "0", "0"), ("cell", "CSE", "1", "AB", "0", "0")]

    with registry.hold(keys, timeout=1):
        assert len(registry) == 2

    assert len(registry) == 0

    with registry.hold([keys[0]], timeout=1):
        with pytest.raises(AtomicityFailure):
            with registry.hold([keys[0]], timeout=0.01):
                pass
        assert len(registry) == 1

    assert len(registry) == 0
