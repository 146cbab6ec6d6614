"""
Workflow de importación en el sistema destino.

Conduce una sesión de navegador (Playwright) por login, cambio de empresa,
navegación de menú, anexado del archivo y verificación del número asignado.

- ImportWorkflow: máquina de estados, un archivo por invocación
- ManualImportService: camino "procesar ahora" para archivos subidos
- WorkflowFault y subclases: taxonomía de fallos persistida en el log
"""

from remitbridge.workflow.engine import (
    ImportWorkflow,
    WorkflowRequest,
    WorkflowResult,
    WorkflowState,
)
from remitbridge.workflow.errors import (
    AuthenticationFault,
    ConfigurationFault,
    NavigationFault,
    SubmissionFault,
    VerificationFault,
    WorkflowFault,
)
from remitbridge.workflow.manual_import import ManualImportService
from remitbridge.workflow.settings import WorkflowSettings

__all__ = [
    "ImportWorkflow",
    "WorkflowRequest",
    "WorkflowResult",
    "WorkflowState",
    "WorkflowSettings",
    "ManualImportService",
    "WorkflowFault",
    "ConfigurationFault",
    "AuthenticationFault",
    "NavigationFault",
    "SubmissionFault",
    "VerificationFault",
]
