"""
Tests del workflow de importación contra el portal falso.
"""

import pytest

from fake_portal import FakePortal
from remitbridge.workflow.engine import WorkflowRequest

pytestmark = pytest.mark.asyncio


class StatusRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, status, reference_id=None, error=None):
        self.calls.append((status, reference_id, error))

    @property
    def statuses(self):
        return [c[0] for c in self.calls]


def _request(ret_file, company=None, file_id="trk_test000001"):
    return WorkflowRequest(
        file_id=file_id,
        file_name=ret_file.name,
        file_path=str(ret_file),
        company=company,
    )


def _messages(store, file_id="trk_test000001"):
    return [entry.message for entry in store.list_logs(file_id)]


async def test_happy_path_returns_reference(make_workflow, portal, store, ret_file):
    """Test: flujo completo -> completed con el número de la segunda celda."""
    sink = StatusRecorder()
    result = await make_workflow(portal).run(_request(ret_file), sink)

    assert result.success is True
    assert result.reference_id == "100200"
    assert result.import_action_clicked is True
    assert result.states[0] == "authenticating"
    assert result.states[-1] == "done"
    assert "context_switch" not in result.states
    assert sink.statuses == ["processing", "completed"]
    assert sink.calls[-1][1] == "100200"
    assert portal.attached == [str(ret_file)]
    assert portal.sessions_opened == portal.sessions_closed == 1


async def test_logs_and_numbered_snapshots(make_workflow, portal, store, ret_file, capture):
    """Test: cada paso deja log y capturas NN_label numeradas sin huecos."""
    await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    messages = _messages(store)
    assert any("Referencia asignada: 100200" in m for m in messages)
    assert all("segredo" not in m for m in messages)

    snaps = store.list_snapshots("trk_test000001")
    assert [s.step for s in snaps] == list(range(1, len(snaps) + 1))
    assert snaps[0].label == "pagina_login"
    assert snaps[0].path.endswith("01_pagina_login.png")
    assert capture.active_live_captures() == []


async def test_missing_credentials_fails_before_browser(make_workflow, portal, store, ret_file):
    """Test: sin usuario/contraseña -> error de configuración sin abrir sesión."""
    sink = StatusRecorder()
    result = await make_workflow(portal, password="").run(_request(ret_file), sink)

    assert result.success is False
    assert result.error == "credentials unavailable"
    assert result.failed_state == "authenticating"
    assert portal.sessions_opened == 0
    assert sink.statuses == ["processing", "error"]


async def test_missing_base_url(make_workflow, portal, ret_file):
    """Test: URL destino vacía -> target url unavailable."""
    result = await make_workflow(portal, base_url="").run(_request(ret_file), StatusRecorder())

    assert result.error == "target url unavailable"
    assert portal.sessions_opened == 0


async def test_authentication_rejected_stops_before_navigation(make_workflow, store, ret_file):
    """Test: credenciales rechazadas -> sin navegación, error persistido en log."""
    portal = FakePortal(password="otra")
    sink = StatusRecorder()
    result = await make_workflow(portal).run(_request(ret_file), sink)

    assert result.success is False
    assert result.failed_state == "authenticating"
    assert "authentication rejected" in result.error
    assert portal.category_open is False
    assert portal.attached == []
    assert portal.sessions_closed == 1
    assert sink.calls[-1] == ("error", None, "authentication rejected")

    logs = store.list_logs("trk_test000001")
    assert logs[-1].level == "error"
    assert "authentication rejected" in logs[-1].message


async def test_session_elsewhere_is_confirmed(make_workflow, ret_file):
    """Test: aviso de sesión activa en otro lugar -> se confirma y sigue."""
    portal = FakePortal(session_elsewhere=True)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is True
    assert "Sim" in portal.clicks


async def test_context_switch_case_insensitive(make_workflow, ret_file):
    """Test: empresa distinta -> se abre el selector y se elige la opción."""
    portal = FakePortal()
    result = await make_workflow(portal).run(_request(ret_file, company="empresa beta"), StatusRecorder())

    assert result.success is True
    assert portal.current_company == "Empresa Beta"
    assert "context_switch" in result.states


async def test_context_already_selected_does_not_open_selector(make_workflow, portal, ret_file):
    """Test: la empresa mostrada ya es la pedida -> no se toca el selector."""
    result = await make_workflow(portal).run(_request(ret_file, company="EMPRESA ALFA"), StatusRecorder())

    assert result.success is True
    assert portal.options_opened == 0


async def test_context_not_found_is_lenient(make_workflow, portal, store, ret_file):
    """Test: empresa inexistente -> warning y el import continúa."""
    result = await make_workflow(portal).run(_request(ret_file, company="Empresa Gama"), StatusRecorder())

    assert result.success is True
    assert portal.current_company == "Empresa Alfa"
    warnings = [e for e in store.list_logs("trk_test000001") if e.level == "warning"]
    assert any("Empresa Gama" in w.message and "Empresa Beta" in w.message for w in warnings)


async def test_navigation_missing_item_dumps_visible_labels(make_workflow, store, ret_file):
    """Test: sub-ítem de menú ausente -> NavigationFault con etiquetas visibles en el log."""
    portal = FakePortal(menu_item=None)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is False
    assert result.failed_state == "navigating"
    assert result.error == "navigation target not found: FCO001 - Cobrança"
    messages = _messages(store)
    dump = next(m for m in messages if m.startswith("Etiquetas visibles"))
    assert "COBRANÇA" in dump
    assert any(s.label == "erro_navigating" for s in store.list_snapshots("trk_test000001"))


async def test_navigation_uses_prefix_fallback(make_workflow, ret_file):
    """Test: etiqueta con sufijo en el portal -> match por prefijo."""
    portal = FakePortal(menu_item="FCO001 - Cobrança (Títulos)")
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is True
    assert portal.screen_open is True


async def test_destination_tab_optional(make_workflow, ret_file):
    """Test: sin pestaña destino configurada -> formulario directo."""
    portal = FakePortal(destination_tab=None)
    result = await make_workflow(portal, destination_tab=None).run(_request(ret_file), StatusRecorder())

    assert result.success is True


async def test_missing_import_button_tolerated_with_auto_import(make_workflow, store, ret_file):
    """Test: sin botón Importar pero el portal importa al anexar -> completed."""
    portal = FakePortal(has_import_button=False, auto_import=True)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is True
    assert result.import_action_clicked is False
    assert result.reference_id == "100200"
    assert any("Importar no encontrado" in m for m in _messages(store))


async def test_missing_import_button_without_result_fails_verification(make_workflow, store, ret_file):
    """Test: sin Importar y sin fila de resultado -> VerificationFault, log con el flag."""
    portal = FakePortal(has_import_button=False)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is False
    assert result.failed_state == "verifying_result"
    assert result.error.startswith("result not confirmed")
    assert any("Importar pulsado: no" in m for m in _messages(store))


async def test_date_prompt_selects_first_date(make_workflow, ret_file):
    """Test: prompt de fecha tras importar -> se elige la primera fecha y se confirma."""
    portal = FakePortal(date_prompt=True)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is True
    assert portal.selected_dates == ["20/10/2026"]
    assert "awaiting_optional_prompt" in result.states


async def test_missing_result_row_strict_by_default(make_workflow, ret_file):
    """Test: import pulsado pero fila ausente -> error (modo estricto por defecto)."""
    portal = FakePortal(show_result=False)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is False
    assert result.import_action_clicked is True
    assert "result not confirmed" in result.error
    assert portal.reloads == 1


async def test_missing_result_row_accepted_when_not_required(make_workflow, store, ret_file):
    """Test: VERIFY_REQUIRE_RESULT=0 e Importar pulsado -> completed sin referencia."""
    portal = FakePortal(show_result=False)
    sink = StatusRecorder()
    result = await make_workflow(portal, verify_require_result=False).run(_request(ret_file), sink)

    assert result.success is True
    assert result.reference_id is None
    assert sink.statuses == ["processing", "completed"]


async def test_unexpected_exception_logged_with_traceback(make_workflow, store, ret_file):
    """Test: excepción inesperada -> error con traceback en details y sesión cerrada."""
    portal = FakePortal(fail_on_click="Selecionar")
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is False
    assert result.failed_state == "submitting_file"
    assert "not attached" in result.error
    assert portal.sessions_closed == 1
    last = store.list_logs("trk_test000001")[-1]
    assert last.level == "error"
    assert "Traceback" in (last.details or "")


async def test_async_status_sink_is_awaited(make_workflow, portal, ret_file):
    """Test: un status_sink async también recibe los estados."""
    seen = []

    async def sink(status, reference_id=None, error=None):
        seen.append(status)

    await make_workflow(portal).run(_request(ret_file), sink)
    assert seen == ["processing", "completed"]


async def test_selected_option_is_never_chosen(make_workflow, store, ret_file):
    """Test: la única opción que coincide está marcada 'selected' -> warning, sin cambiar de empresa."""
    portal = FakePortal(selected_company="Empresa Beta")
    result = await make_workflow(portal).run(_request(ret_file, company="Empresa Beta"), StatusRecorder())

    assert result.success is True
    assert portal.options_opened == 1
    assert portal.current_company == "Empresa Alfa"
    warnings = [e.message for e in store.list_logs("trk_test000001") if e.level == "warning"]
    assert any("'Empresa Beta' no encontrada" in w for w in warnings)


async def test_import_button_label_drift_matched_by_prefix(make_workflow, ret_file):
    """Test: 'Importar Arquivo' en lugar de 'Importar' -> se pulsa por prefijo."""
    portal = FakePortal(import_label="Importar Arquivo")
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is True
    assert result.import_action_clicked is True
    assert result.reference_id == "100200"
    assert "Importar" in portal.clicks


async def test_previous_row_with_same_name_is_not_accepted(make_workflow, store, ret_file):
    """Test: fila antigua con el mismo nombre y la nueva importación rechazada -> error, no la referencia vieja."""
    portal = FakePortal(reject_files={ret_file.name})
    portal.imported.append((ret_file.name, "999"))

    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is False
    assert result.reference_id is None
    assert result.failed_state == "verifying_result"
    assert "result not confirmed" in result.error
    assert any("referencias: 999" in m for m in _messages(store))


async def test_reimport_with_same_name_returns_new_reference(make_workflow, ret_file):
    """Test: fila antigua con el mismo nombre -> se devuelve la referencia nueva."""
    portal = FakePortal()
    portal.imported.append((ret_file.name, "999"))

    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.success is True
    assert result.reference_id == "100200"


async def test_fault_kind_and_observed_labels_persisted(make_workflow, store, ret_file):
    """Test: el log de error guarda el tipo de fallo y las etiquetas observadas."""
    portal = FakePortal(menu_item=None)
    result = await make_workflow(portal).run(_request(ret_file), StatusRecorder())

    assert result.error_kind == "navigation"
    details = store.list_logs("trk_test000001")[-1].details
    assert "kind: navigation" in details
    assert "state: navigating" in details
    assert "observed: " in details and "COBRANÇA" in details
