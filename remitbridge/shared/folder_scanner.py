"""
Enumeración de archivos elegibles en la carpeta vigilada de una rutina.

- Carpeta inexistente: se crea (recursivo) y se devuelve vacío; no es error.
- Carpeta sin permisos de lectura+escritura: se loguea y se devuelve vacío;
  la rutina se reintenta en el siguiente tick.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

from remitbridge.config import WATCH_EXTENSION

logger = logging.getLogger(__name__)

ScanStatus = Literal["ok", "created", "permission_denied", "not_a_directory"]


@dataclass
class FolderScanResult:
    status: ScanStatus
    files: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_fault(self) -> bool:
        return self.status in ("permission_denied", "not_a_directory")


def is_eligible(file_name: str, extension: str = WATCH_EXTENSION) -> bool:
    return file_name.upper().endswith(extension.upper())


def scan_folder(folder_path: str | Path, extension: str = WATCH_EXTENSION) -> FolderScanResult:
    """
    Escanea una carpeta y devuelve los paths absolutos elegibles.

    El orden devuelto no es un contrato (se ordena por nombre solo para logs estables).
    """
    folder = Path(folder_path)

    if not folder.exists():
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("[scanner] no se pudo crear la carpeta %s: %s", folder, e)
            return FolderScanResult(status="permission_denied", error=str(e))
        logger.warning("[scanner] carpeta no existía, creada: %s", folder)
        return FolderScanResult(status="created")

    if not folder.is_dir():
        logger.error("[scanner] la ruta no es una carpeta: %s", folder)
        return FolderScanResult(status="not_a_directory", error=f"not a directory: {folder}")

    if not os.access(folder, os.R_OK | os.W_OK):
        logger.error("[scanner] sin permisos de lectura/escritura en %s", folder)
        return FolderScanResult(status="permission_denied", error=f"permission denied: {folder}")

    try:
        entries = list(folder.iterdir())
    except OSError as e:
        logger.error("[scanner] error listando %s: %s", folder, e)
        return FolderScanResult(status="permission_denied", error=str(e))

    files = sorted(
        str(entry.resolve())
        for entry in entries
        if entry.is_file() and is_eligible(entry.name, extension)
    )
    return FolderScanResult(status="ok", files=files)


def list_eligible_files(folder_path: str | Path, extension: str = WATCH_EXTENSION) -> List[str]:
    return scan_folder(folder_path, extension).files
