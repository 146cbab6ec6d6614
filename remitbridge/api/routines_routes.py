"""
Endpoints de rutinas de importación.

Endpoints:
- GET /api/routines/list - Lista rutinas
- POST /api/routines/upsert - Crea o actualiza rutina
- POST /api/routines/toggle - Activa/pausa rutina
- POST /api/routines/delete - Elimina rutina (cascada a archivos rastreados)
- POST /api/routines/{routine_id}/execute - Ejecuta la rutina ahora
- GET /api/routines/{routine_id}/files - Archivos rastreados de la rutina
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from remitbridge.api.services import Services, get_services
from remitbridge.scheduler.schedule import parse_time_of_day
from remitbridge.shared.models import RoutineV1


router = APIRouter(prefix="/api/routines", tags=["routines"])


class UpsertRoutineRequestV1(BaseModel):
    """Request para crear/actualizar rutina."""
    routine_id: Optional[str] = None  # Si no se proporciona, se genera uno nuevo
    name: str
    company: Optional[str] = None
    folder_path: str
    frequency: str = "daily"  # "hourly" | "daily" | "weekly"
    time_of_day: Optional[str] = None  # "HH:MM", solo daily
    status: str = "active"


class ToggleRoutineRequestV1(BaseModel):
    routine_id: str
    active: bool


class DeleteRoutineRequestV1(BaseModel):
    routine_id: str


@router.get("/list")
async def list_routines(services: Services = Depends(get_services)) -> dict:
    routines = services.store.list_routines()
    return {"routines": [r.model_dump(mode="json") for r in routines]}


@router.post("/upsert")
async def upsert_routine(body: UpsertRoutineRequestV1, services: Services = Depends(get_services)) -> dict:
    if body.frequency not in ("hourly", "daily", "weekly"):
        raise HTTPException(status_code=400, detail="frequency debe ser 'hourly', 'daily' o 'weekly'")
    if body.status not in ("active", "paused"):
        raise HTTPException(status_code=400, detail="status debe ser 'active' o 'paused'")
    if body.time_of_day:
        try:
            parse_time_of_day(body.time_of_day)
        except ValueError:
            raise HTTPException(status_code=400, detail="time_of_day debe estar en formato 'HH:MM'")
    if not body.folder_path.strip():
        raise HTTPException(status_code=400, detail="folder_path es requerido")

    folder_path = str(Path(body.folder_path).expanduser().absolute())
    fields = {
        "name": body.name,
        "company": body.company or None,
        "folder_path": folder_path,
        "frequency": body.frequency,
        "time_of_day": body.time_of_day or None,
        "status": body.status,
    }

    existing = services.store.get_routine(body.routine_id) if body.routine_id else None
    if existing:
        # Cambios de frecuencia u hora recalculan en el próximo tick
        if existing.frequency != body.frequency or existing.time_of_day != fields["time_of_day"]:
            fields["next_run"] = None
        routine = existing.model_copy(update=fields)
    elif body.routine_id:
        routine = RoutineV1(routine_id=body.routine_id, **fields)
    else:
        routine = RoutineV1(**fields)

    services.store.save_routine(routine)
    return {"routine": routine.model_dump(mode="json")}


@router.post("/toggle")
async def toggle_routine(body: ToggleRoutineRequestV1, services: Services = Depends(get_services)) -> dict:
    routine = services.store.update_routine(body.routine_id, status="active" if body.active else "paused")
    if routine is None:
        raise HTTPException(status_code=404, detail=f"Routine {body.routine_id} not found")
    return {"routine": routine.model_dump(mode="json")}


@router.post("/delete")
async def delete_routine(body: DeleteRoutineRequestV1, services: Services = Depends(get_services)) -> dict:
    if not services.store.delete_routine(body.routine_id):
        raise HTTPException(status_code=404, detail=f"Routine {body.routine_id} not found")
    return {"deleted": True, "routine_id": body.routine_id}


@router.post("/{routine_id}/execute")
async def execute_routine(routine_id: str, services: Services = Depends(get_services)) -> dict:
    """Ejecuta la rutina ahora, sin esperar al scheduler."""
    result = await services.runner.execute_routine(routine_id)
    return result.model_dump(mode="json", exclude_none=True)


@router.get("/{routine_id}/files")
async def list_routine_files(
    routine_id: str,
    status: Optional[str] = None,
    services: Services = Depends(get_services),
) -> dict:
    if services.store.get_routine(routine_id) is None:
        raise HTTPException(status_code=404, detail=f"Routine {routine_id} not found")
    files = services.store.list_tracked_files(routine_id=routine_id, status=status)
    return {"files": [f.model_dump(mode="json") for f in files]}
