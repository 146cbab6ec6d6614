"""
Taxonomía de fallos del workflow de importación.

Cada fallo lleva un reason corto y estable (se persiste en el TrackedFile y
en el log) y el estado del workflow donde ocurrió.
"""

from __future__ import annotations

from typing import List, Optional


class WorkflowFault(Exception):
    """Fallo terminal de un paso del workflow."""

    kind = "workflow"

    def __init__(self, reason: str, state: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.state = state
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.reason}: {self.detail}"
        return self.reason


class ConfigurationFault(WorkflowFault):
    """Faltan credenciales o URL destino. No se reintenta automáticamente."""
    kind = "configuration"


class AuthenticationFault(WorkflowFault):
    kind = "authentication"


class NavigationFault(WorkflowFault):
    """Elemento de menú esperado ausente; guarda las alternativas observadas."""
    kind = "navigation"

    def __init__(self, reason: str, state: Optional[str] = None, detail: Optional[str] = None,
                 observed: Optional[List[str]] = None):
        super().__init__(reason, state, detail)
        self.observed = observed or []


class SubmissionFault(WorkflowFault):
    kind = "submission"


class VerificationFault(WorkflowFault):
    """Fila de resultado ausente tras recargar (la importación pudo haber ocurrido)."""
    kind = "verification"
