"""
Capturas diagnósticas del workflow.

- snapshot(): captura numerada por paso, persistida como SnapshotV1
- start_live_capture(): captura "en vivo" sobrescrita cada N ms mientras
  dura la sesión, para observar un run desatendido desde fuera

Nada de lo que ocurre aquí afecta al flujo de control: los errores de
captura se loguean y se descartan.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from remitbridge.config import SCREENSHOTS_DIR
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.shared.models import SnapshotV1

logger = logging.getLogger(__name__)

LIVE_SNAPSHOT_NAME = "live.png"

_SAFE_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def _safe_name(text: str) -> str:
    return _SAFE_RE.sub("_", text).strip("_") or "step"


class LiveCaptureHandle:
    """Tarea de captura periódica ligada a una sesión de navegador concreta."""

    def __init__(self, page: Any, file_id: str, path: Path, interval_ms: int):
        self.page = page
        self.file_id = file_id
        self.path = path
        self.interval_ms = interval_ms
        self.captures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._loop())

    async def _loop(self) -> None:
        while True:
            try:
                await self.page.screenshot(path=str(self.path), full_page=False)
                self.captures += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("[diagnostics] captura en vivo falló (%s): %s", self.file_id, e)
            await asyncio.sleep(self.interval_ms / 1000.0)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class DiagnosticCapture:
    """Capturas por paso + captura en vivo, con registro en el store."""

    def __init__(self, store: ImportStoreV1, screenshots_dir: str | Path | None = None):
        self.store = store
        self.screenshots_dir = Path(screenshots_dir) if screenshots_dir is not None else SCREENSHOTS_DIR
        self._live: Dict[str, LiveCaptureHandle] = {}

    async def snapshot(self, page: Any, file_id: str, step: int, label: str) -> Optional[SnapshotV1]:
        """Guarda una captura del viewport y la registra. Nunca lanza."""
        try:
            target_dir = self.screenshots_dir / _safe_name(file_id)
            target_dir.mkdir(parents=True, exist_ok=True)
            path = target_dir / f"{step:02d}_{_safe_name(label)}.png"
            await page.screenshot(path=str(path), full_page=False)
            return self.store.add_snapshot(
                SnapshotV1(file_id=file_id, step=step, label=label, path=str(path))
            )
        except Exception as e:
            logger.warning("[diagnostics] error capturando %s/%s: %s", file_id, label, e)
            return None

    def start_live_capture(self, page: Any, file_id: str, interval_ms: int) -> Optional[LiveCaptureHandle]:
        """Arranca la captura en vivo de la sesión. Nunca lanza: sin captura, el run sigue."""
        try:
            self.screenshots_dir.mkdir(parents=True, exist_ok=True)
            handle = LiveCaptureHandle(page, file_id, self.screenshots_dir / LIVE_SNAPSHOT_NAME, interval_ms)
            handle.start()
        except Exception as e:
            logger.warning("[diagnostics] no se pudo iniciar la captura en vivo (%s): %s", file_id, e)
            return None
        self._live[file_id] = handle
        return handle

    async def stop_live_capture(self, file_id: str) -> None:
        handle = self._live.pop(file_id, None)
        if handle is not None:
            await handle.stop()

    def get_live_snapshot_path(self) -> Optional[str]:
        """Ruta de la captura en vivo si existe en disco."""
        path = self.screenshots_dir / LIVE_SNAPSHOT_NAME
        return str(path) if path.exists() else None

    def active_live_captures(self) -> list[str]:
        return [fid for fid, h in self._live.items() if h.running]
