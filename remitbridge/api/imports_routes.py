"""
Endpoints del camino manual (subir y procesar un archivo).

Endpoints:
- POST /api/imports/upload - Sube un archivo (multipart)
- GET /api/imports/list - Lista archivos subidos
- POST /api/imports/{file_id}/process - Procesa el archivo en el sistema destino
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from remitbridge.api.services import Services, get_services


router = APIRouter(prefix="/api/imports", tags=["imports"])


@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    company: Optional[str] = Form(None),
    services: Services = Depends(get_services),
) -> dict:
    content = await file.read()
    try:
        record = services.imports.save_upload(file.filename or "", content, company=company)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    services.store.append_log(record.file_id, f"Archivo {record.file_name} subido correctamente")
    return {"file": record.model_dump(mode="json")}


@router.get("/list")
async def list_imports(services: Services = Depends(get_services)) -> dict:
    return {"files": [r.model_dump(mode="json") for r in services.store.list_import_files()]}


@router.post("/{file_id}/process")
async def process_import(file_id: str, services: Services = Depends(get_services)) -> dict:
    if services.store.get_import_file(file_id) is None:
        raise HTTPException(status_code=404, detail=f"Import file {file_id} not found")
    result = await services.imports.process(file_id)
    return result.model_dump(mode="json")
