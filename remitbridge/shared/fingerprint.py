"""
Fingerprint de contenido y registro idempotente de archivos detectados.

Un archivo se considera ya importado si existe un TrackedFile "completed"
con exactamente (routine_id, file_path, fingerprint).
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.shared.models import FileStatus, TrackedFileV1

logger = logging.getLogger(__name__)


def fingerprint(file_path: str | Path) -> str:
    """Calcula SHA256 de un archivo. Lanza OSError si desapareció o no es legible."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


class FingerprintStore:
    """Fachada de dedup sobre ImportStoreV1."""

    def __init__(self, store: ImportStoreV1):
        self.store = store

    def is_already_imported(self, routine_id: str, file_path: str, digest: str) -> bool:
        return self.store.find_completed(routine_id, file_path, digest) is not None

    def register_candidate(self, routine_id: str, file_name: str, file_path: str, digest: str) -> str:
        """Crea un TrackedFile "pending" y devuelve su file_id."""
        tracked = self.store.create_tracked_file(
            TrackedFileV1(
                routine_id=routine_id,
                file_name=file_name,
                file_path=file_path,
                fingerprint=digest,
            )
        )
        logger.debug("[fingerprint] candidato registrado %s (%s)", tracked.file_id, file_name)
        return tracked.file_id

    def transition(
        self,
        file_id: str,
        status: FileStatus,
        reference_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[TrackedFileV1]:
        changes = {"status": status}
        if status == "completed":
            changes["imported_at"] = datetime.now()
            changes["reference_id"] = reference_id
            changes["error"] = None
        elif status == "error":
            changes["error"] = error
        return self.store.update_tracked_file(file_id, **changes)
