"""
Ejecución de una rutina: escaneo de carpeta, dedup por fingerprint e
importación de cada archivo nuevo, uno detrás de otro.
"""

from __future__ import annotations

import logging
import os
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from remitbridge.config import WATCH_EXTENSION
from remitbridge.diagnostics.capture import DiagnosticCapture
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.scheduler.schedule import compute_next_run
from remitbridge.shared.fingerprint import FingerprintStore, fingerprint
from remitbridge.shared.folder_scanner import scan_folder
from remitbridge.shared.models import RoutineRunResult, RoutineV1
from remitbridge.shared.run_lock import AccountRunLock
from remitbridge.workflow.engine import ImportWorkflow, WorkflowRequest
from remitbridge.workflow.settings import WorkflowSettings

logger = logging.getLogger(__name__)


class RoutineRunner:
    """Ejecuta rutinas contra el store y el workflow de importación."""

    def __init__(
        self,
        store: ImportStoreV1,
        workflow: Optional[ImportWorkflow] = None,
        settings: Optional[WorkflowSettings] = None,
        extension: str = WATCH_EXTENSION,
        locks_dir: Optional[Path] = None,
    ):
        self.store = store
        self.settings = settings or (workflow.settings if workflow else WorkflowSettings.from_config())
        self.workflow = workflow or ImportWorkflow(store, DiagnosticCapture(store), self.settings)
        self.fingerprints = FingerprintStore(store)
        self.extension = extension
        self.locks_dir = locks_dir

    async def execute_routine(self, routine_id: str, now: Optional[datetime] = None) -> RoutineRunResult:
        tag = f"[Rutina {routine_id}]"
        routine = self.store.get_routine(routine_id)
        if routine is None:
            logger.warning("%s Rutina no encontrada", tag)
            return RoutineRunResult(success=False, files_processed=0, errors=1, skipped_reason="not_found")

        if routine.status != "active":
            logger.warning("%s Rutina no activa (status: %s)", tag, routine.status)
            return RoutineRunResult(success=False, files_processed=0, errors=0, skipped_reason="inactive")

        lock = AccountRunLock(self.settings.account_key, base_dir=self.locks_dir)
        run_id = f"{routine_id}:{uuid.uuid4().hex[:8]}"
        acquired, lock_error = lock.acquire(run_id)
        if not acquired:
            logger.info("%s Omitida: %s", tag, lock_error)
            return RoutineRunResult(success=False, files_processed=0, errors=0, skipped_reason="locked")

        try:
            return await self._run_locked(routine, now or datetime.now())
        except Exception as e:
            logger.exception("%s Error fatal: %s", tag, e)
            self.store.append_log(routine_id, f"Error fatal: {e}", level="error", details=traceback.format_exc())
            self.store.update_routine(routine_id, status="error")
            return RoutineRunResult(success=False, files_processed=0, errors=1)
        finally:
            lock.release(run_id)

    async def _run_locked(self, routine: RoutineV1, now: datetime) -> RoutineRunResult:
        tag = f"[Rutina {routine.routine_id}]"
        logger.info(
            "%s Iniciando: nombre=%s empresa=%s carpeta=%s frecuencia=%s",
            tag, routine.name, routine.company, routine.folder_path, routine.frequency,
        )

        scan = scan_folder(routine.folder_path, self.extension)
        if scan.status == "created":
            logger.info("%s Carpeta creada (vacía): %s", tag, routine.folder_path)
            self.store.append_log(routine.routine_id, f"Carpeta creada: {routine.folder_path}", level="warning")
            self._finish(routine, now, files_processed=0, errors=0)
            return RoutineRunResult(success=False, files_processed=0, errors=0, skipped_reason="folder_created")
        if scan.is_fault:
            logger.error("%s Carpeta inaccesible (%s): %s", tag, scan.status, scan.error)
            self.store.append_log(
                routine.routine_id,
                f"Carpeta inaccesible ({scan.status}): {routine.folder_path}",
                level="error",
                details=scan.error,
            )
            return RoutineRunResult(success=False, files_processed=0, errors=0, skipped_reason=scan.status)

        logger.info("%s Encontrados %s archivos %s", tag, len(scan.files), self.extension)

        files_processed = 0
        errors = 0
        for file_path in scan.files:
            file_name = os.path.basename(file_path)
            try:
                digest = fingerprint(file_path)
            except OSError as e:
                logger.error("%s No se pudo leer %s: %s", tag, file_name, e)
                self.store.append_log(routine.routine_id, f"No se pudo leer {file_name}: {e}", level="error")
                errors += 1
                continue

            if self.fingerprints.is_already_imported(routine.routine_id, file_path, digest):
                logger.info("%s Archivo ya importado: %s", tag, file_name)
                continue

            logger.info("%s Nuevo archivo detectado: %s", tag, file_name)
            file_id = self.fingerprints.register_candidate(routine.routine_id, file_name, file_path, digest)
            if await self._process_file(routine, file_id, file_name, file_path):
                files_processed += 1
            else:
                errors += 1

        self._finish(routine, now, files_processed=files_processed, errors=errors)
        logger.info("%s Ejecución concluida: procesados=%s errores=%s", tag, files_processed, errors)
        return RoutineRunResult(
            success=errors == 0 or files_processed > 0,
            files_processed=files_processed,
            errors=errors,
        )

    async def _process_file(self, routine: RoutineV1, file_id: str, file_name: str, file_path: str) -> bool:
        def sink(status: str, reference_id: Optional[str] = None, error: Optional[str] = None) -> Any:
            self.fingerprints.transition(file_id, status, reference_id=reference_id, error=error)

        request = WorkflowRequest(
            file_id=file_id,
            file_name=file_name,
            file_path=file_path,
            company=routine.company,
        )
        try:
            result = await self.workflow.run(request, sink)
        except Exception as e:
            logger.exception("[Rutina %s] Excepción procesando %s: %s", routine.routine_id, file_name, e)
            self.store.append_log(file_id, f"Excepción: {e}", level="error", details=traceback.format_exc())
            self.fingerprints.transition(file_id, "error", error=str(e))
            return False

        if result.success:
            logger.info("[Rutina %s] Archivo procesado: %s (ref=%s)", routine.routine_id, file_name, result.reference_id)
        else:
            logger.error("[Rutina %s] Error procesando %s: %s", routine.routine_id, file_name, result.error)
        return result.success

    def _finish(self, routine: RoutineV1, now: datetime, files_processed: int, errors: int) -> None:
        status = "error" if files_processed == 0 and errors > 0 else "active"
        self.store.update_routine(
            routine.routine_id,
            last_run=now,
            next_run=compute_next_run(routine.frequency, routine.time_of_day, now),
            status=status,
        )
