"""
Scheduler de rutinas: un tick inmediato al arrancar y luego uno cada
SCHEDULER_INTERVAL_SECONDS, como tarea asyncio del proceso.

Las rutinas que tocan se ejecutan estrictamente una detrás de otra.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from remitbridge.config import SCHEDULER_INTERVAL_SECONDS
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.scheduler.runner import RoutineRunner
from remitbridge.scheduler.schedule import is_due

logger = logging.getLogger(__name__)


class RoutineScheduler:
    def __init__(
        self,
        store: ImportStoreV1,
        runner: Optional[RoutineRunner] = None,
        interval_seconds: int = SCHEDULER_INTERVAL_SECONDS,
    ):
        self.store = store
        self.runner = runner or RoutineRunner(store)
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()
        self.last_tick: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: Optional[datetime] = None) -> dict:
        """
        Ejecuta las rutinas activas cuyo next_run ya pasó.

        Returns:
            Dict con resumen: checked, executed, skipped_not_due,
            skipped_locked, errors (lista por rutina), busy
        """
        results = {
            "checked": 0,
            "executed": 0,
            "skipped_not_due": 0,
            "skipped_locked": 0,
            "errors": [],
            "busy": False,
        }
        if self._tick_lock.locked():
            logger.warning("[scheduler] Tick anterior aún en curso, se omite")
            results["busy"] = True
            return results

        async with self._tick_lock:
            now = now or datetime.now()
            self.last_tick = now
            routines = self.store.list_routines(status="active")
            results["checked"] = len(routines)
            logger.info("[scheduler] Verificando %s rutinas activas", len(routines))

            for routine in routines:
                if not is_due(routine, now):
                    minutes = round((routine.next_run - now).total_seconds() / 60) if routine.next_run else 0
                    logger.info("[scheduler] Rutina '%s' se ejecutará en %s minutos", routine.name, minutes)
                    results["skipped_not_due"] += 1
                    continue

                logger.info("[scheduler] Ejecutando rutina: %s (%s)", routine.name, routine.routine_id)
                try:
                    run = await self.runner.execute_routine(routine.routine_id, now=now)
                except Exception as e:
                    logger.exception("[scheduler] Error ejecutando %s: %s", routine.routine_id, e)
                    results["errors"].append({"routine_id": routine.routine_id, "error": str(e)})
                    continue

                if run.skipped_reason == "locked":
                    results["skipped_locked"] += 1
                    continue
                results["executed"] += 1
                if run.errors:
                    results["errors"].append({
                        "routine_id": routine.routine_id,
                        "error": f"{run.errors} archivo(s) con error",
                    })
        return results

    def start(self) -> bool:
        """Arranca el loop en el event loop actual. False si ya estaba corriendo."""
        if self.running:
            logger.warning("[scheduler] Scheduler ya está corriendo")
            return False
        logger.info("[scheduler] Iniciando scheduler (verificación cada %ss)", self.interval_seconds)
        self._task = asyncio.create_task(self._loop())
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[scheduler] Scheduler parado")

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception as e:
                logger.exception("[scheduler] Tick falló: %s", e)
            await asyncio.sleep(self.interval_seconds)
