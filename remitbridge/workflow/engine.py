"""
Workflow de importación en el sistema destino (máquina de estados secuencial).

AUTHENTICATING -> CONTEXT_SWITCH (opcional) -> NAVIGATING -> SUBMITTING_FILE
-> CONFIRMING_DIALOGS -> AWAITING_OPTIONAL_PROMPT (opcional) -> VERIFYING_RESULT
-> DONE | FAILED

Una sesión de navegador exclusiva por invocación, terminal en el primer
fallo irrecuperable. Cada paso deja líneas de log persistidas y capturas
numeradas; la sesión se cierra siempre (async with + finally).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Collection, List, Optional, Sequence, Set

from remitbridge.browser.frames import (
    BUTTON_SELECTOR,
    CLICKABLE_SELECTOR,
    LINK_SELECTOR,
    LabelledElement,
    collect_labelled,
    element_label,
    find_any_label,
    find_first,
    find_with_policy,
    visible_labels,
    wait_for_condition,
)
from remitbridge.browser.session import browser_session
from remitbridge.diagnostics.capture import DiagnosticCapture
from remitbridge.repository.import_store_v1 import ImportStoreV1
from remitbridge.shared.models import LogLevel
from remitbridge.shared.text_matcher import EXACT_THEN_FALLBACK, clean_label, same_label
from remitbridge.workflow.errors import (
    AuthenticationFault,
    ConfigurationFault,
    NavigationFault,
    SubmissionFault,
    VerificationFault,
    WorkflowFault,
)
from remitbridge.workflow.selectors import (
    CHOOSE_FILE_LABELS,
    CONTEXT_SELECTED_CLASSES,
    CONTEXT_SELECTORS,
    DATE_CHOICE_SELECTOR,
    DATE_PROMPT_CONFIRM_LABELS,
    DATE_SELECT_SELECTOR,
    DIALOG_CONFIRM_LABELS,
    FILE_INPUT_SELECTOR,
    FORCE_LOGIN_LABELS,
    IMPORT_LABELS,
    LOGIN_SELECTORS,
    REFERENCE_CELL_INDEX,
    RESULT_CELL_SELECTOR,
    RESULT_ROW_SELECTOR,
)
from remitbridge.workflow.settings import WorkflowSettings

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"\b(\d{2}/\d{2}/\d{4}|\d{4}-\d{2}-\d{2})\b")

SessionFactory = Callable[[WorkflowSettings], AsyncContextManager[Any]]
StatusSink = Callable[..., Any]


class WorkflowState(str, Enum):
    AUTHENTICATING = "authenticating"
    CONTEXT_SWITCH = "context_switch"
    NAVIGATING = "navigating"
    SUBMITTING_FILE = "submitting_file"
    CONFIRMING_DIALOGS = "confirming_dialogs"
    AWAITING_OPTIONAL_PROMPT = "awaiting_optional_prompt"
    VERIFYING_RESULT = "verifying_result"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WorkflowRequest:
    file_id: str
    file_name: str
    file_path: str
    company: Optional[str] = None


@dataclass
class WorkflowResult:
    success: bool
    reference_id: Optional[str] = None
    error: Optional[str] = None
    failed_state: Optional[str] = None
    states: List[str] = field(default_factory=list)
    import_action_clicked: bool = False
    error_kind: Optional[str] = None


@dataclass
class _DatePrompt:
    kind: str  # "select" | "choice"
    element: Any
    label: str
    option_value: Optional[str] = None


@dataclass
class _Run:
    """Estado de una invocación concreta del workflow."""
    request: WorkflowRequest
    page: Any = None
    state: WorkflowState = WorkflowState.AUTHENTICATING
    states: List[str] = field(default_factory=list)
    step: int = 0
    import_action_clicked: bool = False
    # Referencias ya listadas para el mismo nombre antes de anexar
    prior_references: Set[str] = field(default_factory=set)

    def enter(self, state: WorkflowState) -> None:
        self.state = state
        self.states.append(state.value)

    def next_step(self) -> int:
        self.step += 1
        return self.step


def default_session_factory(settings: WorkflowSettings) -> AsyncContextManager[Any]:
    return browser_session(headless=settings.headless, default_timeout_ms=settings.action_timeout_ms)


class ImportWorkflow:
    """Conduce una sesión web completa para importar UN archivo."""

    def __init__(
        self,
        store: ImportStoreV1,
        capture: DiagnosticCapture,
        settings: Optional[WorkflowSettings] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.store = store
        self.capture = capture
        self.settings = settings or WorkflowSettings.from_config()
        self.session_factory = session_factory or default_session_factory

    # ---------- entrada ----------

    async def run(self, request: WorkflowRequest, status_sink: StatusSink) -> WorkflowResult:
        run = _Run(request=request)
        await self._emit(status_sink, "processing")
        await self._log(run, f"Iniciando importación del archivo {request.file_name}")

        try:
            run.enter(WorkflowState.AUTHENTICATING)
            self._check_configuration(run)
            async with self.session_factory(self.settings) as page:
                run.page = page
                self.capture.start_live_capture(page, request.file_id, self.settings.live_capture_interval_ms)
                try:
                    reference_id = await self._drive(run)
                except Exception:
                    await self._snap(run, f"erro_{run.state.value}")
                    raise
                finally:
                    await self.capture.stop_live_capture(request.file_id)
        except WorkflowFault as fault:
            failed_state = fault.state or run.state.value
            run.enter(WorkflowState.FAILED)
            await self._log(run, f"Erro: {fault}", level="error", details=self._fault_details(fault, failed_state))
            await self._emit(status_sink, "error", error=str(fault))
            return WorkflowResult(
                success=False,
                error=str(fault),
                failed_state=failed_state,
                states=run.states,
                import_action_clicked=run.import_action_clicked,
                error_kind=fault.kind,
            )
        except Exception as e:
            failed_state = run.state.value
            run.enter(WorkflowState.FAILED)
            await self._log(
                run,
                f"Erro inesperado en {failed_state}: {e}",
                level="error",
                details=traceback.format_exc(),
            )
            await self._emit(status_sink, "error", error=str(e) or type(e).__name__)
            return WorkflowResult(
                success=False,
                error=str(e) or type(e).__name__,
                failed_state=failed_state,
                states=run.states,
                import_action_clicked=run.import_action_clicked,
                error_kind="unexpected",
            )

        run.enter(WorkflowState.DONE)
        await self._emit(status_sink, "completed", reference_id=reference_id)
        await self._log(run, "Procesamiento concluido con éxito", level="success")
        return WorkflowResult(
            success=True,
            reference_id=reference_id,
            states=run.states,
            import_action_clicked=run.import_action_clicked,
        )

    async def _drive(self, run: _Run) -> Optional[str]:
        await self._authenticate(run)
        if run.request.company:
            await self._switch_context(run)
        await self._navigate(run)
        await self._submit_file(run)
        await self._await_follow_up(run)
        return await self._verify_result(run)

    # ---------- pasos ----------

    def _check_configuration(self, run: _Run) -> None:
        state = run.state.value
        if not self.settings.base_url:
            raise ConfigurationFault("target url unavailable", state)
        if not self.settings.username or not self.settings.password:
            raise ConfigurationFault("credentials unavailable", state)

    async def _authenticate(self, run: _Run) -> None:
        page = run.page
        s = self.settings
        await self._log(run, f"Accediendo al sistema destino: {s.base_url}")
        await page.goto(s.base_url, wait_until="domcontentloaded", timeout=s.navigation_timeout_ms)
        await self._snap(run, "pagina_login")

        await page.fill(LOGIN_SELECTORS["username_input"], s.username)
        await page.fill(LOGIN_SELECTORS["password_input"], s.password)
        await self._log(run, "Credenciales rellenadas (usuario: OK)")
        await page.click(LOGIN_SELECTORS["submit_button"])

        outcome = await self._wait_login_outcome(run)
        await self._snap(run, "tras_entrar")
        await self._log(run, f"URL tras login: {page.url}")

        if outcome == "confirm":
            confirm = await find_any_label(page.frames, FORCE_LOGIN_LABELS, BUTTON_SELECTOR)
            if confirm is not None:
                await self._log(run, "Sesión activa en otro lugar: confirmando desconexión")
                await confirm.element.click()
                outcome = await self._wait_login_outcome(run, allow_confirm=False)
                await self._snap(run, "tras_confirmar")

        if outcome != "ok":
            raise AuthenticationFault("authentication rejected", run.state.value)
        await self._log(run, "Login realizado con éxito")

    async def _wait_login_outcome(self, run: _Run, allow_confirm: bool = True) -> Optional[str]:
        """'ok' si salimos de la pantalla de login, 'confirm' si aparece la confirmación."""
        page = run.page
        marker = self.settings.login_url_marker.lower()

        async def _probe() -> Optional[str]:
            if marker not in (page.url or "").lower():
                return "ok"
            if allow_confirm and await find_any_label(page.frames, FORCE_LOGIN_LABELS, BUTTON_SELECTOR):
                return "confirm"
            return None

        return await wait_for_condition(_probe, self.settings.action_timeout_ms, self.settings.poll_ms)

    async def _switch_context(self, run: _Run) -> None:
        run.enter(WorkflowState.CONTEXT_SWITCH)
        page = run.page
        company = run.request.company or ""

        trigger = await find_first(page.frames, CONTEXT_SELECTORS["trigger"])
        if trigger is None:
            await self._log(run, "Selector de empresa no disponible; se asume empresa correcta", level="warning")
            return

        current = await element_label(trigger.element)
        if same_label(current, company):
            await self._log(run, f"Empresa '{company}' ya seleccionada")
            return

        await self._log(run, f"Cambiando empresa: '{current}' -> '{company}'")
        await trigger.element.click()

        async def _probe() -> Optional[LabelledElement]:
            return await find_with_policy(
                page.frames,
                company,
                CONTEXT_SELECTORS["option"],
                modes=EXACT_THEN_FALLBACK,
                case_sensitive=False,
                exclude=self._is_selected_option,
            )

        option = await wait_for_condition(_probe, self.settings.action_timeout_ms, self.settings.poll_ms)
        if option is None:
            # El marcador de "actual" no es fiable: no encontrarla no es fatal
            options = await visible_labels(page.frames, CONTEXT_SELECTORS["option"])
            await self._log(
                run,
                f"Empresa '{company}' no encontrada (opciones: {' | '.join(options) or '-'}); se asume empresa correcta",
                level="warning",
            )
            await self._snap(run, "empresa_no_encontrada")
            return

        await option.element.click()
        await self._settle(run)
        await self._log(run, f"Empresa seleccionada: {option.label}")
        await self._snap(run, "empresa_seleccionada")

    @staticmethod
    async def _is_selected_option(item: LabelledElement) -> bool:
        try:
            classes = (await item.element.get_attribute("class")) or ""
            aria = (await item.element.get_attribute("aria-selected")) or ""
        except Exception:
            return False
        class_set = set(classes.lower().split())
        return bool(class_set.intersection(CONTEXT_SELECTED_CLASSES)) or aria.lower() == "true"

    async def _navigate(self, run: _Run) -> None:
        run.enter(WorkflowState.NAVIGATING)
        s = self.settings
        await self._click_menu(run, s.menu_category, "menu_categoria")
        await self._click_menu(run, s.menu_item, "menu_item")
        if s.destination_tab:
            await self._click_menu(run, s.destination_tab, "pestana_destino", selector=LINK_SELECTOR)

    async def _click_menu(self, run: _Run, label: str, snap_label: str, selector: str = CLICKABLE_SELECTOR) -> None:
        page = run.page
        await self._log(run, f"Buscando '{label}'")

        async def _probe() -> Optional[LabelledElement]:
            return await find_with_policy(page.frames, label, selector)

        hit = await wait_for_condition(_probe, self.settings.action_timeout_ms, self.settings.poll_ms)
        if hit is None:
            observed = await visible_labels(page.frames, selector)
            await self._log(run, f"'{label}' no encontrado", level="error")
            await self._log(run, f"Etiquetas visibles: {' | '.join(observed) or '-'}", level="warning")
            raise NavigationFault("navigation target not found", run.state.value, detail=label, observed=observed)

        await hit.element.click()
        await self._log(run, f"'{hit.label}' pulsado (match: {hit.mode.value if hit.mode else '-'}, frame {hit.frame_index})")
        await self._settle(run)
        await self._snap(run, snap_label)

    async def _submit_file(self, run: _Run) -> None:
        run.enter(WorkflowState.SUBMITTING_FILE)
        page = run.page
        s = self.settings

        prior = await self._list_references(page.frames, run.request.file_name)
        run.prior_references = set(prior)
        if prior:
            await self._log(
                run,
                f"El listado ya contiene '{run.request.file_name}' (referencias: {', '.join(prior)}); "
                "solo se aceptará una referencia nueva",
                level="warning",
            )

        async def _probe_trigger() -> Optional[LabelledElement]:
            return await find_any_label(page.frames, CHOOSE_FILE_LABELS, BUTTON_SELECTOR, modes=EXACT_THEN_FALLBACK)

        await self._log(run, f"Buscando botón de selección de archivo en {len(page.frames)} frames")
        trigger = await wait_for_condition(_probe_trigger, s.action_timeout_ms, s.poll_ms)
        if trigger is None:
            raise SubmissionFault("file attach trigger not found", run.state.value)
        await trigger.element.click()
        await self._log(run, f"Botón '{trigger.label}' pulsado en frame {trigger.frame_index}")
        await self._snap(run, "modal_seleccion")

        async def _probe_input() -> Optional[LabelledElement]:
            # El input puede vivir en otro frame distinto al del botón
            frames = [trigger.frame] + [f for f in page.frames if f is not trigger.frame]
            return await find_first(frames, FILE_INPUT_SELECTOR)

        file_input = await wait_for_condition(_probe_input, s.action_timeout_ms, s.poll_ms)
        if file_input is None:
            raise SubmissionFault("file input not found", run.state.value)

        await self._log(run, f"Anexando archivo: {run.request.file_path}")
        await file_input.element.set_input_files(run.request.file_path)
        await self._settle(run)
        await self._snap(run, "archivo_seleccionado")

        confirm = await find_any_label(page.frames, DIALOG_CONFIRM_LABELS, BUTTON_SELECTOR)
        if confirm is not None:
            await confirm.element.click()
            await self._log(run, f"Diálogo confirmado ('{confirm.label}')")
            await self._settle(run)

        import_btn = await find_any_label(page.frames, IMPORT_LABELS, BUTTON_SELECTOR)
        if import_btn is None:
            run.import_action_clicked = False
            await self._log(
                run,
                "Botón Importar no encontrado; se asume importación automática al anexar",
                level="warning",
            )
            await self._snap(run, "sin_importar")
            return

        await import_btn.element.click()
        run.import_action_clicked = True
        await self._log(run, f"Botón Importar pulsado en frame {import_btn.frame_index}, esperando procesamiento")
        await self._settle(run)
        await self._snap(run, "tras_importar")

    async def _await_follow_up(self, run: _Run) -> None:
        run.enter(WorkflowState.CONFIRMING_DIALOGS)
        page = run.page
        s = self.settings

        async def _probe() -> Optional[_DatePrompt]:
            return await self._detect_date_prompt(page.frames)

        prompt = await wait_for_condition(_probe, s.prompt_timeout_ms, s.poll_ms)
        if prompt is None:
            ack = await find_any_label(page.frames, DIALOG_CONFIRM_LABELS, BUTTON_SELECTOR)
            if ack is not None:
                await ack.element.click()
                await self._log(run, f"Aviso posterior confirmado ('{ack.label}')")
                await self._settle(run)
            return

        run.enter(WorkflowState.AWAITING_OPTIONAL_PROMPT)
        await self._log(run, f"Selección de fecha detectada; eligiendo '{prompt.label}'")
        await self._snap(run, "seleccion_fecha")
        if prompt.kind == "select":
            if prompt.option_value:
                await prompt.element.select_option(value=prompt.option_value)
            else:
                await prompt.element.select_option(label=prompt.label)
        else:
            await prompt.element.click()

        confirm = await find_any_label(page.frames, DATE_PROMPT_CONFIRM_LABELS, BUTTON_SELECTOR)
        if confirm is None:
            await self._log(run, "Sin botón de confirmación para la fecha", level="warning")
        else:
            await confirm.element.click()
            await self._log(run, f"Fecha confirmada ('{confirm.label}')")
        await self._settle(run)
        await self._snap(run, "fecha_confirmada")

    async def _detect_date_prompt(self, frames: Sequence[Any]) -> Optional[_DatePrompt]:
        """Primer <select> con opciones de fecha, o texto clicable con forma de fecha."""
        for frame in frames:
            try:
                selects = await frame.query_selector_all(DATE_SELECT_SELECTOR)
            except Exception:
                continue
            for select in selects:
                try:
                    options = await select.query_selector_all("option")
                except Exception:
                    continue
                for option in options:
                    if await option.get_attribute("disabled") is not None:
                        continue
                    text = await element_label(option)
                    value = await option.get_attribute("value")
                    if DATE_RE.search(text) or DATE_RE.search(value or ""):
                        return _DatePrompt(kind="select", element=select, label=text, option_value=value)

        for choice in await collect_labelled(frames, DATE_CHOICE_SELECTOR):
            if DATE_RE.search(choice.label):
                return _DatePrompt(kind="choice", element=choice.element, label=choice.label)
        return None

    async def _verify_result(self, run: _Run) -> Optional[str]:
        run.enter(WorkflowState.VERIFYING_RESULT)
        page = run.page
        s = self.settings
        file_name = run.request.file_name

        await self._log(run, "Recargando página para verificar la importación")
        await page.reload(wait_until="domcontentloaded", timeout=s.navigation_timeout_ms)
        await self._settle(run)
        await self._snap(run, "verificacion")

        async def _probe() -> Optional[str]:
            return await self._find_reference(page.frames, file_name, exclude=run.prior_references)

        reference_id = await wait_for_condition(_probe, s.verify_timeout_ms, s.poll_ms)
        if reference_id:
            await self._log(run, f"Archivo importado. Referencia asignada: {reference_id}", level="success")
            return reference_id

        clicked = "sí" if run.import_action_clicked else "no"
        if not s.verify_require_result and run.import_action_clicked:
            await self._log(
                run,
                f"Archivo no encontrado en el listado tras recargar (Importar pulsado: {clicked}); "
                "se acepta sin referencia",
                level="warning",
            )
            return None
        await self._log(
            run,
            f"Archivo no encontrado en el listado tras recargar (Importar pulsado: {clicked})",
            level="warning",
        )
        raise VerificationFault("result not confirmed", run.state.value, detail=file_name)

    async def _find_reference(
        self,
        frames: Sequence[Any],
        file_name: str,
        exclude: Collection[str] = (),
    ) -> Optional[str]:
        """Referencia de la fila más corta que contiene file_name, ignorando las de exclude."""
        for value in await self._list_references(frames, file_name):
            if value not in exclude:
                return value
        return None

    async def _list_references(self, frames: Sequence[Any], file_name: str) -> List[str]:
        """Segunda celda de cada fila que contiene file_name, de la fila más corta a la más larga."""
        rows = []
        for frame in frames:
            try:
                found = await frame.query_selector_all(RESULT_ROW_SELECTOR)
            except Exception:
                continue
            for row in found:
                try:
                    text = clean_label(await row.inner_text())
                except Exception:
                    continue
                if file_name in text:
                    rows.append((len(text), row))

        references: List[str] = []
        for _, row in sorted(rows, key=lambda item: item[0]):
            cells = await row.query_selector_all(RESULT_CELL_SELECTOR)
            if len(cells) > REFERENCE_CELL_INDEX:
                value = clean_label(await cells[REFERENCE_CELL_INDEX].inner_text())
                if value and value not in references:
                    references.append(value)
        return references

    # ---------- helpers ----------

    async def _settle(self, run: _Run) -> None:
        """Asentamiento no observable tras una acción de UI."""
        try:
            await run.page.wait_for_load_state("domcontentloaded", timeout=self.settings.action_timeout_ms)
        except Exception as e:
            logger.debug("[workflow] wait_for_load_state: %s", e)
        if self.settings.settle_ms:
            await asyncio.sleep(self.settings.settle_ms / 1000.0)

    async def _snap(self, run: _Run, label: str) -> None:
        if run.page is None:
            return
        await self.capture.snapshot(run.page, run.request.file_id, run.next_step(), label)

    async def _log(self, run: _Run, message: str, level: LogLevel = "info", details: Optional[str] = None) -> None:
        log_fn = logger.error if level == "error" else logger.warning if level == "warning" else logger.info
        log_fn("[workflow] %s [%s] %s", run.request.file_id, run.state.value, message)
        self.store.append_log(run.request.file_id, message, level=level, details=details)

    @staticmethod
    def _fault_details(fault: WorkflowFault, state: str) -> str:
        lines = [f"kind: {fault.kind}", f"state: {state}"]
        if fault.detail:
            lines.append(f"detail: {fault.detail}")
        if isinstance(fault, NavigationFault) and fault.observed:
            lines.append(f"observed: {' | '.join(fault.observed)}")
        return "\n".join(lines)

    @staticmethod
    async def _emit(status_sink: StatusSink, status: str, **kwargs: Any) -> None:
        result = status_sink(status, **kwargs)
        if inspect.isawaitable(result):
            await result
