from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from remitbridge.config import STORE_DIR
from remitbridge.shared.models import (
    FileStatus,
    ImportFileV1,
    LogEntryV1,
    LogLevel,
    RoutineV1,
    SnapshotV1,
    TrackedFileV1,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _atomic_write_json(path: Path, payload: dict) -> None:
    """
    Escribe JSON de forma atómica:
    - escribe a <file>.tmp
    - valida que el tmp contiene JSON parseable
    - replace() sobre el original

    Si la validación falla, NO toca el original.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    try:
        json.loads(tmp.read_text(encoding="utf-8"))
    except ValueError:
        tmp.unlink(missing_ok=True)
        raise
    tmp.replace(path)


class ImportStoreV1:
    """
    Store local (JSON) del pipeline de importación.

    Colecciones mutables, un documento JSON cada una (escritura atómica):
    - routines.json
    - tracked_files.json
    - import_files.json

    Colecciones que solo crecen, una línea JSON por entrada (append):
    - logs.jsonl
    - snapshots.jsonl

    Solo el borrado en cascada reescribe los .jsonl.
    """

    ROUTINES = "routines"
    TRACKED_FILES = "tracked_files"
    IMPORT_FILES = "import_files"
    LOGS = "logs"
    SNAPSHOTS = "snapshots"

    def __init__(self, *, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir) if base_dir is not None else STORE_DIR
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    # ---------- helpers ----------

    def _path(self, collection: str) -> Path:
        return self.base_dir / f"{collection}.json"

    def _read(self, collection: str, model: Type[M]) -> List[M]:
        path = self._path(collection)
        if not path.exists():
            return []
        raw = json.loads(path.read_text(encoding="utf-8"))
        return [model.model_validate(item) for item in raw.get(collection, [])]

    def _write(self, collection: str, items: List[BaseModel]) -> None:
        payload = {
            "schema_version": "v1",
            collection: [i.model_dump(mode="json") for i in items],
            "updated_at": datetime.now().isoformat(),
        }
        _atomic_write_json(self._path(collection), payload)

    def _journal_path(self, collection: str) -> Path:
        return self.base_dir / f"{collection}.jsonl"

    def _append(self, collection: str, item: BaseModel) -> None:
        line = json.dumps(item.model_dump(mode="json"), ensure_ascii=False)
        with open(self._journal_path(collection), "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read_journal(self, collection: str, model: Type[M]) -> List[M]:
        path = self._journal_path(collection)
        if not path.exists():
            return []
        items: List[M] = []
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    items.append(model.model_validate(json.loads(line)))
                except ValueError as e:
                    # Línea truncada por un corte a mitad de escritura
                    logger.warning("[store] %s:%s ilegible, se ignora: %s", path.name, lineno, e)
        return items

    def _rewrite_journal(self, collection: str, items: List[BaseModel]) -> None:
        path = self._journal_path(collection)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            for item in items:
                f.write(json.dumps(item.model_dump(mode="json"), ensure_ascii=False) + "\n")
        tmp.replace(path)

    # ---------- routines ----------

    def list_routines(self, status: Optional[str] = None) -> List[RoutineV1]:
        with self._lock:
            routines = self._read(self.ROUTINES, RoutineV1)
        if status:
            routines = [r for r in routines if r.status == status]
        return routines

    def get_routine(self, routine_id: str) -> Optional[RoutineV1]:
        return next((r for r in self.list_routines() if r.routine_id == routine_id), None)

    def save_routine(self, routine: RoutineV1) -> RoutineV1:
        """Crea o actualiza una rutina (upsert por routine_id)."""
        with self._lock:
            routines = self._read(self.ROUTINES, RoutineV1)
            routine.updated_at = datetime.now()
            for idx, existing in enumerate(routines):
                if existing.routine_id == routine.routine_id:
                    routines[idx] = routine
                    break
            else:
                routines.append(routine)
            self._write(self.ROUTINES, routines)
        return routine

    def update_routine(self, routine_id: str, **changes: Any) -> Optional[RoutineV1]:
        with self._lock:
            routine = self.get_routine(routine_id)
            if routine is None:
                return None
            updated = routine.model_copy(update=changes)
            return self.save_routine(updated)

    def delete_routine(self, routine_id: str) -> bool:
        """Elimina una rutina y, en cascada, sus archivos rastreados con logs y capturas."""
        with self._lock:
            routines = self._read(self.ROUTINES, RoutineV1)
            remaining = [r for r in routines if r.routine_id != routine_id]
            if len(remaining) == len(routines):
                return False
            self._write(self.ROUTINES, remaining)

            tracked = self._read(self.TRACKED_FILES, TrackedFileV1)
            removed_ids = {t.file_id for t in tracked if t.routine_id == routine_id}
            self._write(self.TRACKED_FILES, [t for t in tracked if t.routine_id != routine_id])

            owners = removed_ids | {routine_id}
            logs = self._read_journal(self.LOGS, LogEntryV1)
            self._rewrite_journal(self.LOGS, [entry for entry in logs if entry.file_id not in owners])
            snaps = self._read_journal(self.SNAPSHOTS, SnapshotV1)
            self._rewrite_journal(self.SNAPSHOTS, [s for s in snaps if s.file_id not in owners])
            return True

    # ---------- tracked files ----------

    def create_tracked_file(self, tracked: TrackedFileV1) -> TrackedFileV1:
        with self._lock:
            items = self._read(self.TRACKED_FILES, TrackedFileV1)
            items.append(tracked)
            self._write(self.TRACKED_FILES, items)
        return tracked

    def list_tracked_files(
        self,
        routine_id: Optional[str] = None,
        status: Optional[FileStatus] = None,
    ) -> List[TrackedFileV1]:
        with self._lock:
            items = self._read(self.TRACKED_FILES, TrackedFileV1)
        if routine_id:
            items = [t for t in items if t.routine_id == routine_id]
        if status:
            items = [t for t in items if t.status == status]
        items.sort(key=lambda t: t.created_at, reverse=True)
        return items

    def get_tracked_file(self, file_id: str) -> Optional[TrackedFileV1]:
        with self._lock:
            items = self._read(self.TRACKED_FILES, TrackedFileV1)
        return next((t for t in items if t.file_id == file_id), None)

    def update_tracked_file(self, file_id: str, **changes: Any) -> Optional[TrackedFileV1]:
        with self._lock:
            items = self._read(self.TRACKED_FILES, TrackedFileV1)
            for idx, item in enumerate(items):
                if item.file_id == file_id:
                    items[idx] = item.model_copy(update=changes)
                    self._write(self.TRACKED_FILES, items)
                    return items[idx]
        return None

    def find_completed(self, routine_id: str, file_path: str, fingerprint: str) -> Optional[TrackedFileV1]:
        """Busca un archivo completado con exactamente (routine_id, file_path, fingerprint)."""
        for item in self.list_tracked_files(routine_id=routine_id, status="completed"):
            if item.file_path == file_path and item.fingerprint == fingerprint:
                return item
        return None

    # ---------- import files (camino manual) ----------

    def create_import_file(self, record: ImportFileV1) -> ImportFileV1:
        with self._lock:
            items = self._read(self.IMPORT_FILES, ImportFileV1)
            items.append(record)
            self._write(self.IMPORT_FILES, items)
        return record

    def list_import_files(self) -> List[ImportFileV1]:
        with self._lock:
            items = self._read(self.IMPORT_FILES, ImportFileV1)
        items.sort(key=lambda r: r.uploaded_at, reverse=True)
        return items

    def get_import_file(self, file_id: str) -> Optional[ImportFileV1]:
        return next((r for r in self.list_import_files() if r.file_id == file_id), None)

    def update_import_file(self, file_id: str, **changes: Any) -> Optional[ImportFileV1]:
        with self._lock:
            items = self._read(self.IMPORT_FILES, ImportFileV1)
            for idx, item in enumerate(items):
                if item.file_id == file_id:
                    items[idx] = item.model_copy(update=changes)
                    self._write(self.IMPORT_FILES, items)
                    return items[idx]
        return None

    # ---------- logs ----------

    def append_log(
        self,
        file_id: str,
        message: str,
        level: LogLevel = "info",
        details: Optional[str] = None,
    ) -> LogEntryV1:
        entry = LogEntryV1(file_id=file_id, message=message, level=level, details=details)
        with self._lock:
            self._append(self.LOGS, entry)
        return entry

    def list_logs(self, file_id: str) -> List[LogEntryV1]:
        """Logs de un archivo en orden cronológico (orden de inserción)."""
        with self._lock:
            logs = self._read_journal(self.LOGS, LogEntryV1)
        return [entry for entry in logs if entry.file_id == file_id]

    # ---------- snapshots ----------

    def add_snapshot(self, snapshot: SnapshotV1) -> SnapshotV1:
        with self._lock:
            self._append(self.SNAPSHOTS, snapshot)
        return snapshot

    def list_snapshots(self, file_id: str) -> List[SnapshotV1]:
        with self._lock:
            snaps = self._read_journal(self.SNAPSHOTS, SnapshotV1)
        return sorted((s for s in snaps if s.file_id == file_id), key=lambda s: s.step)

    def counts(self) -> Dict[str, int]:
        """Resumen de tamaños por colección (health/diagnóstico)."""
        return {
            "routines": len(self.list_routines()),
            "tracked_files": len(self.list_tracked_files()),
            "import_files": len(self.list_import_files()),
        }
