"""
Modelos de datos del pipeline de importación.

- RoutineV1: rutina de vigilancia de carpeta + importación programada
- TrackedFileV1: archivo descubierto por una rutina (ciclo de vida dedup/import)
- ImportFileV1: archivo subido manualmente y procesado bajo demanda
- LogEntryV1 / SnapshotV1: rastro de auditoría por archivo (append-only)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


Frequency = Literal["hourly", "daily", "weekly"]
RoutineStatus = Literal["active", "paused", "error"]
FileStatus = Literal["pending", "processing", "completed", "error"]
LogLevel = Literal["info", "warning", "error", "success"]


def new_id(prefix: str) -> str:
    """Genera un ID opaco con prefijo de tipo (ej "trk_1a2b3c4d5e6f")."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class RoutineV1(BaseModel):
    """Rutina de importación ligada a una carpeta y a una empresa destino."""
    routine_id: str = Field(default_factory=lambda: new_id("rtn"))
    name: str
    company: Optional[str] = None  # contexto operativo (empresa) en el sistema destino
    folder_path: str
    frequency: Frequency = "daily"
    time_of_day: Optional[str] = None  # "HH:MM", solo para daily
    status: RoutineStatus = "active"
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class TrackedFileV1(BaseModel):
    """Archivo detectado por polling de carpeta."""
    file_id: str = Field(default_factory=lambda: new_id("trk"))
    routine_id: str
    file_name: str
    file_path: str
    fingerprint: str
    status: FileStatus = "pending"
    reference_id: Optional[str] = None  # identificador asignado por el sistema destino
    error: Optional[str] = None
    imported_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)


class ImportFileV1(BaseModel):
    """Archivo subido manualmente (ruta simple, sin carpeta vigilada)."""
    file_id: str = Field(default_factory=lambda: new_id("imp"))
    file_name: str
    storage_path: str
    file_size: int = 0
    company: Optional[str] = None
    status: FileStatus = "pending"
    reference_id: Optional[str] = None
    error: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=datetime.now)
    processed_at: Optional[datetime] = None


class LogEntryV1(BaseModel):
    """Entrada de log persistida; file_id puede ser trk_, imp_ o rtn_ (log de ejecución)."""
    log_id: str = Field(default_factory=lambda: new_id("log"))
    file_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    level: LogLevel = "info"
    message: str
    details: Optional[str] = None


class SnapshotV1(BaseModel):
    """Captura diagnóstica numerada de un paso del workflow."""
    snapshot_id: str = Field(default_factory=lambda: new_id("snp"))
    file_id: str
    step: int
    label: str
    path: str
    timestamp: datetime = Field(default_factory=datetime.now)


class RoutineRunResult(BaseModel):
    """Resumen de una ejecución de rutina."""
    success: bool
    files_processed: int = 0
    errors: int = 0
    skipped_reason: Optional[str] = None  # "locked" | "not_found" | "inactive" | "folder_created" | "permission_denied"


class FileProcessResult(BaseModel):
    """Resultado por archivo del camino "procesar ahora"."""
    success: bool
    reference_id: Optional[str] = None
    error: Optional[str] = None
