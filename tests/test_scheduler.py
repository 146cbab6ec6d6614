"""
Tests para el scheduler de rutinas (tick, arranque y parada).
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from remitbridge.scheduler.scheduler import RoutineScheduler
from remitbridge.shared.models import RoutineRunResult, RoutineV1

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 10, 19, 13, 0, 0)


class FakeRunner:
    """Runner que registra las llamadas y devuelve resultados preparados."""

    def __init__(self, results=None):
        self.calls = []
        self.results = results or {}

    async def execute_routine(self, routine_id, now=None):
        self.calls.append(routine_id)
        return self.results.get(routine_id, RoutineRunResult(success=True, files_processed=1, errors=0))


def _save(store, name, **fields):
    return store.save_routine(RoutineV1(name=name, folder_path=f"/tmp/{name}", **fields))


async def test_tick_runs_only_due_routines(store):
    """Test: solo se ejecutan las activas cuyo next_run ya pasó."""
    due = _save(store, "due")
    _save(store, "later", next_run=NOW + timedelta(hours=1))
    _save(store, "paused", status="paused")
    runner = FakeRunner()

    results = await RoutineScheduler(store, runner=runner).tick(now=NOW)

    assert results["checked"] == 2
    assert results["executed"] == 1
    assert results["skipped_not_due"] == 1
    assert results["skipped_locked"] == 0
    assert results["errors"] == []
    assert runner.calls == [due.routine_id]


async def test_tick_counts_locked_and_errors(store):
    """Test: rutinas bloqueadas y con errores se reportan aparte."""
    locked = _save(store, "locked")
    failing = _save(store, "failing")
    runner = FakeRunner({
        locked.routine_id: RoutineRunResult(success=False, skipped_reason="locked"),
        failing.routine_id: RoutineRunResult(success=False, files_processed=0, errors=2),
    })

    results = await RoutineScheduler(store, runner=runner).tick(now=NOW)

    assert results["skipped_locked"] == 1
    assert results["executed"] == 1
    assert [e["routine_id"] for e in results["errors"]] == [failing.routine_id]


async def test_tick_skipped_while_previous_running(store):
    """Test: un tick con el anterior en curso se omite."""
    _save(store, "due")
    runner = FakeRunner()
    scheduler = RoutineScheduler(store, runner=runner)

    async with scheduler._tick_lock:
        results = await scheduler.tick(now=NOW)

    assert results["busy"] is True
    assert runner.calls == []


async def test_start_runs_eager_tick_and_refuses_second_start(store):
    """Test: start() hace un tick inmediato; un segundo start() se rechaza."""
    _save(store, "due")
    runner = FakeRunner()
    scheduler = RoutineScheduler(store, runner=runner, interval_seconds=3600)

    assert scheduler.start() is True
    assert scheduler.start() is False
    for _ in range(50):
        if runner.calls:
            break
        await asyncio.sleep(0.01)

    assert len(runner.calls) == 1
    assert scheduler.running is True

    await scheduler.stop()
    assert scheduler.running is False


async def test_stop_without_start_is_noop(store):
    scheduler = RoutineScheduler(store, runner=FakeRunner())
    await scheduler.stop()
    assert scheduler.running is False
