"""
Servicios compartidos por los routers HTTP y el CLI.

Un único contenedor por proceso (store, workflow, runner, scheduler,
camino manual). Los tests sustituyen el contenedor con set_services().
"""

from __future__ import annotations

from typing import Optional

from remitbridge.diagnostics.capture import DiagnosticCapture
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.scheduler.runner import RoutineRunner
from remitbridge.scheduler.scheduler import RoutineScheduler
from remitbridge.workflow.engine import ImportWorkflow
from remitbridge.workflow.manual_import import ManualImportService
from remitbridge.workflow.settings import WorkflowSettings


class Services:
    def __init__(
        self,
        store: Optional[ImportStoreV1] = None,
        capture: Optional[DiagnosticCapture] = None,
        workflow: Optional[ImportWorkflow] = None,
        settings: Optional[WorkflowSettings] = None,
        runner: Optional[RoutineRunner] = None,
        scheduler: Optional[RoutineScheduler] = None,
        imports: Optional[ManualImportService] = None,
    ):
        self.store = store or ImportStoreV1()
        self.capture = capture or (workflow.capture if workflow else DiagnosticCapture(self.store))
        self.settings = settings or (workflow.settings if workflow else WorkflowSettings.from_config())
        self.workflow = workflow or ImportWorkflow(self.store, self.capture, self.settings)
        self.runner = runner or RoutineRunner(self.store, self.workflow, self.settings)
        self.scheduler = scheduler or RoutineScheduler(self.store, self.runner)
        self.imports = imports or ManualImportService(self.store, self.workflow)


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services()
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services
