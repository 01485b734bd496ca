"""Unit tests for per-application mutation locks"""

import threading
import pytest
from homestay_registry.domain.exceptions import ConflictError
from homestay_registry.infrastructure.database.locks import KeyedLockRegistry


def test_hold_releases_on_exit():
    """Test the lock is free again after the block"""
    locks = KeyedLockRegistry()

    with locks.hold("app-1", timeout=0.1):
        assert locks.is_held("app-1")
    assert not locks.is_held("app-1")


def test_hold_releases_on_error():
    """Test an exception inside the block still releases the lock"""
    locks = KeyedLockRegistry()

    with pytest.raises(RuntimeError):
        with locks.hold("app-1", timeout=0.1):
            raise RuntimeError("boom")
    assert not locks.is_held("app-1")


def test_waiter_times_out_with_conflict():
    """Test a second holder of the same key gets ConflictError"""
    locks = KeyedLockRegistry()
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("app-1", timeout=1):
            entered.set()
            release.wait(2)

    thread = threading.Thread(target=holder)
    thread.start()
    entered.wait(2)
    try:
        with pytest.raises(ConflictError):
            with locks.hold("app-1", timeout=0.05):
                pass
    finally:
        release.set()
        thread.join()


def test_different_keys_do_not_block():
    """Test locks are per key"""
    locks = KeyedLockRegistry()

    with locks.hold("app-1", timeout=0.1):
        with locks.hold("app-2", timeout=0.1):
            assert locks.is_held("app-1")
            assert locks.is_held("app-2")
