"""
Lock por cuenta del sistema destino para evitar sesiones concurrentes.

El sistema destino expulsa la sesión anterior cuando la misma cuenta entra
dos veces, así que routines y cargas manuales comparten este lock:
- <LOCKS_DIR>/<account>.lock
- Si existe y no está stale: bloquear nueva ejecución
- Si stale (> 2h): permitir override y loggear
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from remitbridge.config import LOCKS_DIR

logger = logging.getLogger(__name__)

STALE_THRESHOLD_HOURS = 2

_SAFE_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class AccountRunLock:
    """Lock de filesystem para runs por cuenta destino."""

    def __init__(self, account_key: str, base_dir: Optional[Path] = None):
        """
        Args:
            account_key: Usuario del sistema destino (o "anonymous")
            base_dir: Directorio de locks (por defecto LOCKS_DIR)
        """
        self.account_key = account_key
        self.locks_dir = Path(base_dir) if base_dir is not None else LOCKS_DIR
        self.lock_file = self.locks_dir / f"{_SAFE_RE.sub('_', account_key) or 'anonymous'}.lock"

    def acquire(self, run_id: str) -> tuple[bool, Optional[str]]:
        """
        Intenta adquirir el lock.

        Returns:
            (success, error_message)
            - success=True si se adquirió el lock
            - success=False si está bloqueado (error_message explica por qué)
        """
        self.locks_dir.mkdir(parents=True, exist_ok=True)

        if self._create_lock(run_id):
            return (True, None)

        lock_data = self._read_lock()
        if not lock_data:
            logger.warning("[RunLock] Lock corrupto en %s, sobrescribiendo", self.lock_file)
            self._write_lock(run_id)
            return (True, None)

        locked_at = lock_data.get("locked_at")
        if not locked_at:
            self._write_lock(run_id)
            return (True, None)

        try:
            age = datetime.now() - datetime.fromisoformat(locked_at)
        except (ValueError, TypeError) as e:
            logger.warning("[RunLock] Error parseando timestamp del lock: %s, sobrescribiendo", e)
            self._write_lock(run_id)
            return (True, None)

        if age > timedelta(hours=STALE_THRESHOLD_HOURS):
            logger.warning(
                "[RunLock] Lock stale detectado (edad: %.1fh), sobrescribiendo", age.total_seconds() / 3600
            )
            self._write_lock(run_id)
            return (True, None)

        locked_run_id = lock_data.get("run_id", "unknown")
        return (False, f"Run en ejecución: {locked_run_id} (iniciado hace {age.total_seconds()/60:.1f} minutos)")

    def release(self, run_id: str) -> None:
        """Libera el lock solo si pertenece a run_id."""
        if not self.lock_file.exists():
            return

        lock_data = self._read_lock()
        if lock_data and lock_data.get("run_id") == run_id:
            try:
                self.lock_file.unlink()
            except OSError as e:
                logger.warning("[RunLock] Error liberando lock: %s", e)

    def is_locked(self) -> bool:
        return self.lock_file.exists()

    def _payload(self, run_id: str) -> dict:
        return {
            "run_id": run_id,
            "locked_at": datetime.now().isoformat(),
            "account": self.account_key,
        }

    def _create_lock(self, run_id: str) -> bool:
        """Creación exclusiva; False si el archivo ya existe."""
        try:
            with open(self.lock_file, "x", encoding="utf-8") as f:
                json.dump(self._payload(run_id), f, indent=2)
            return True
        except FileExistsError:
            return False

    def _write_lock(self, run_id: str) -> None:
        with open(self.lock_file, "w", encoding="utf-8") as f:
            json.dump(self._payload(run_id), f, indent=2)

    def _read_lock(self) -> Optional[dict]:
        try:
            with open(self.lock_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("[RunLock] Error leyendo lock: %s", e)
            return None
