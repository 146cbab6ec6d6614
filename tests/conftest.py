"""
Fixtures compartidas: store en tmp_path, capturas, ajustes con tiempos
cortos y un workflow conectado al portal falso (sin navegador real).
"""

from contextlib import asynccontextmanager

import pytest

from fake_portal import FakePortal
from remitbridge.diagnostics.capture import DiagnosticCapture
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.workflow.engine import ImportWorkflow
from remitbridge.workflow.settings import WorkflowSettings


def make_settings(**overrides) -> WorkflowSettings:
    values = dict(
        base_url="http://erp.test/",
        username="operador",
        password="segredo",
        navigation_timeout_ms=1000,
        action_timeout_ms=200,
        prompt_timeout_ms=60,
        verify_timeout_ms=200,
        poll_ms=10,
        settle_ms=0,
        live_capture_interval_ms=20,
    )
    values.update(overrides)
    return WorkflowSettings(**values)


def portal_session_factory(portal: FakePortal):
    @asynccontextmanager
    async def factory(settings):
        portal.sessions_opened += 1
        try:
            yield portal.page
        finally:
            portal.sessions_closed += 1
    return factory


@pytest.fixture
def store(tmp_path):
    return ImportStoreV1(base_dir=tmp_path / "store")


@pytest.fixture
def capture(store, tmp_path):
    return DiagnosticCapture(store, screenshots_dir=tmp_path / "screenshots")


@pytest.fixture
def portal():
    return FakePortal()


@pytest.fixture
def make_workflow(store, capture):
    """Fábrica: make_workflow(portal, **overrides de WorkflowSettings)."""
    def _make(portal: FakePortal, **overrides) -> ImportWorkflow:
        return ImportWorkflow(
            store,
            capture,
            make_settings(**overrides),
            session_factory=portal_session_factory(portal),
        )
    return _make


@pytest.fixture
def ret_file(tmp_path):
    """Archivo de retorno de ejemplo."""
    path = tmp_path / "entrada" / "CB0101.RET"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"02RETORNO01COBRANCA       0001\r\n9\r\n")
    return path
