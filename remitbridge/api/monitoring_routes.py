"""
Endpoints de seguimiento: logs y capturas por archivo, captura en vivo y
tick manual del scheduler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from remitbridge.api.services import Services, get_services


files_router = APIRouter(prefix="/api/files", tags=["files"])
diagnostics_router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])
scheduler_router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


@files_router.get("/{file_id}/logs")
async def get_file_logs(file_id: str, services: Services = Depends(get_services)) -> dict:
    """Logs en orden cronológico; file_id puede ser trk_, imp_ o rtn_."""
    logs = services.store.list_logs(file_id)
    return {"logs": [entry.model_dump(mode="json") for entry in logs]}


@files_router.get("/{file_id}/snapshots")
async def get_file_snapshots(file_id: str, services: Services = Depends(get_services)) -> dict:
    snaps = services.store.list_snapshots(file_id)
    return {"snapshots": [s.model_dump(mode="json") for s in snaps]}


@diagnostics_router.get("/live")
async def get_live_snapshot(services: Services = Depends(get_services)):
    path = services.capture.get_live_snapshot_path()
    if path is None:
        raise HTTPException(status_code=404, detail="No hay captura en vivo disponible")
    return FileResponse(path, media_type="image/png", headers={"Cache-Control": "no-store"})


@diagnostics_router.get("/status")
async def get_status(services: Services = Depends(get_services)) -> dict:
    scheduler = services.scheduler
    return {
        "scheduler_running": scheduler.running,
        "last_tick": scheduler.last_tick.isoformat() if scheduler.last_tick else None,
        "live_captures": services.capture.active_live_captures(),
        "counts": services.store.counts(),
    }


@scheduler_router.post("/tick")
async def tick_scheduler(services: Services = Depends(get_services)) -> dict:
    """Ejecuta un tick inmediato (mismas reglas que el loop periódico)."""
    return await services.scheduler.tick()
