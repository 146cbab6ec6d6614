"""
Camino "procesar ahora": archivo subido a mano, sin carpeta vigilada.

Guarda el archivo en UPLOADS_DIR/<file_id>/<nombre original> (el sistema
destino verifica por nombre de archivo) y lo pasa por el mismo workflow y el
mismo lock por cuenta que las rutinas.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from remitbridge.config import UPLOADS_DIR
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.shared.models import FileProcessResult, ImportFileV1
from remitbridge.shared.run_lock import AccountRunLock
from remitbridge.workflow.engine import ImportWorkflow, WorkflowRequest

logger = logging.getLogger(__name__)


class ManualImportService:
    def __init__(
        self,
        store: ImportStoreV1,
        workflow: ImportWorkflow,
        uploads_dir: Optional[Path] = None,
        locks_dir: Optional[Path] = None,
    ):
        self.store = store
        self.workflow = workflow
        self.uploads_dir = Path(uploads_dir) if uploads_dir is not None else UPLOADS_DIR
        self.locks_dir = locks_dir

    def save_upload(self, file_name: str, content: bytes, company: Optional[str] = None) -> ImportFileV1:
        """Persiste el archivo subido y crea su ImportFileV1 en estado pending."""
        name = os.path.basename(file_name or "").strip()
        if not name:
            raise ValueError("file_name vacío")
        if name in {".", ".."}:
            raise ValueError(f"file_name inválido: {name!r}")

        record = ImportFileV1(file_name=name, storage_path="", file_size=len(content), company=company or None)
        target_dir = self.uploads_dir / record.file_id
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / name
        target.write_bytes(content)
        record.storage_path = str(target.resolve())

        logger.info("[imports] Archivo subido: %s (%s bytes) -> %s", name, len(content), record.file_id)
        return self.store.create_import_file(record)

    async def process(self, import_id: str) -> FileProcessResult:
        record = self.store.get_import_file(import_id)
        if record is None:
            return FileProcessResult(success=False, error=f"Archivo {import_id} no encontrado")

        lock = AccountRunLock(self.workflow.settings.account_key, base_dir=self.locks_dir)
        run_id = f"{import_id}:{uuid.uuid4().hex[:8]}"
        acquired, lock_error = lock.acquire(run_id)
        if not acquired:
            logger.info("[imports] %s omitido: %s", import_id, lock_error)
            return FileProcessResult(success=False, error=lock_error)

        def sink(status: str, reference_id: Optional[str] = None, error: Optional[str] = None) -> Any:
            changes = {"status": status}
            if status == "completed":
                changes.update(reference_id=reference_id, error=None, processed_at=datetime.now())
            elif status == "error":
                changes.update(error=error, processed_at=datetime.now())
            self.store.update_import_file(import_id, **changes)

        try:
            result = await self.workflow.run(
                WorkflowRequest(
                    file_id=record.file_id,
                    file_name=record.file_name,
                    file_path=record.storage_path,
                    company=record.company,
                ),
                sink,
            )
        finally:
            lock.release(run_id)

        return FileProcessResult(success=result.success, reference_id=result.reference_id, error=result.error)
