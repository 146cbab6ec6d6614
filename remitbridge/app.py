import asyncio
import logging
import sys

# En Windows, necesitamos un event loop que soporte subprocess (para Playwright)
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from remitbridge.api.imports_routes import router as imports_router
from remitbridge.api.monitoring_routes import diagnostics_router, files_router, scheduler_router
from remitbridge.api.routines_routes import router as routines_router
from remitbridge.api.services import get_services
from remitbridge.config import SCHEDULER_ENABLED, configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="RemitBridge")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Registrar routers
app.include_router(routines_router)
app.include_router(imports_router)
app.include_router(files_router)
app.include_router(diagnostics_router)
app.include_router(scheduler_router)


@app.on_event("startup")
async def startup_event():
    # Playwright solo se arranca dentro de cada run del workflow
    if SCHEDULER_ENABLED:
        get_services().scheduler.start()
    else:
        logger.info("[STARTUP] Scheduler deshabilitado (SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    await get_services().scheduler.stop()


@app.get("/health")
async def health():
    services = get_services()
    return {
        "status": "ok",
        "scheduler_running": services.scheduler.running,
        "counts": services.store.counts(),
    }
