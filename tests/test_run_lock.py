"""
Tests para AccountRunLock.
"""

import json
from datetime import datetime, timedelta

import pytest

from remitbridge.shared.run_lock import AccountRunLock, STALE_THRESHOLD_HOURS


@pytest.fixture
def lock(tmp_path):
    """AccountRunLock para tests."""
    return AccountRunLock("operador", base_dir=tmp_path)


def test_lock_acquire_success(lock):
    """Test: adquirir lock cuando no existe."""
    acquired, error = lock.acquire("run_1")

    assert acquired is True
    assert error is None
    assert lock.lock_file.exists()
    assert lock.lock_file.name == "operador.lock"


def test_lock_acquire_blocked(lock):
    """Test: no adquirir lock cuando ya existe uno activo."""
    assert lock.acquire("run_1")[0] is True

    acquired, error = lock.acquire("run_2")

    assert acquired is False
    assert "en ejecución" in error.lower()
    assert "run_1" in error


def test_lock_shared_between_instances(tmp_path):
    """Test: dos instancias para la misma cuenta comparten el lock."""
    first = AccountRunLock("operador", base_dir=tmp_path)
    second = AccountRunLock("operador", base_dir=tmp_path)
    other_account = AccountRunLock("outro@empresa", base_dir=tmp_path)

    assert first.acquire("a")[0] is True
    assert second.acquire("b")[0] is False
    assert other_account.acquire("c")[0] is True


def test_lock_release(lock):
    """Test: liberar lock."""
    lock.acquire("run_1")
    lock.release("run_1")

    assert not lock.lock_file.exists()


def test_lock_stale_override(lock):
    """Test: permitir override de lock stale."""
    lock.acquire("run_1")
    with open(lock.lock_file, "w", encoding="utf-8") as f:
        json.dump({
            "run_id": "run_1",
            "locked_at": (datetime.now() - timedelta(hours=STALE_THRESHOLD_HOURS + 1)).isoformat(),
            "account": lock.account_key,
        }, f)

    acquired, error = lock.acquire("run_2")

    assert acquired is True
    assert error is None


def test_lock_corrupt_file_overridden(lock):
    """Test: lock corrupto -> se sobrescribe."""
    lock.locks_dir.mkdir(parents=True, exist_ok=True)
    lock.lock_file.write_text("{no es json", encoding="utf-8")

    acquired, _ = lock.acquire("run_2")

    assert acquired is True
    assert json.loads(lock.lock_file.read_text(encoding="utf-8"))["run_id"] == "run_2"


def test_lock_release_wrong_run_id(lock):
    """Test: no liberar lock si el run_id no coincide."""
    lock.acquire("run_1")
    lock.release("run_2")

    assert lock.lock_file.exists()
