from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from remitbridge import config


@dataclass
class WorkflowSettings:
    """
    Parámetros de un run del workflow (credenciales, ruta de menú, tiempos).

    Se construye desde config con from_config(); los tests pasan tiempos cortos.
    """
    base_url: str = ""
    username: str = ""
    password: str = ""
    login_url_marker: str = "Login.aspx"
    menu_category: str = "COBRANÇA"
    menu_item: str = "FCO001 - Cobrança"
    destination_tab: Optional[str] = "Ret. Bancário"
    headless: bool = True
    navigation_timeout_ms: int = 60000
    action_timeout_ms: int = 15000
    prompt_timeout_ms: int = 5000
    verify_timeout_ms: int = 10000
    poll_ms: int = 250
    settle_ms: int = 1000
    live_capture_interval_ms: int = 2000
    verify_require_result: bool = True

    @property
    def account_key(self) -> str:
        """Clave de la cuenta destino (para el lock por cuenta)."""
        return self.username or "anonymous"

    @classmethod
    def from_config(cls) -> "WorkflowSettings":
        return cls(
            base_url=config.TARGET_BASE_URL,
            username=config.TARGET_USERNAME,
            password=config.TARGET_PASSWORD,
            login_url_marker=config.LOGIN_URL_MARKER,
            menu_category=config.MENU_CATEGORY_LABEL,
            menu_item=config.MENU_ITEM_LABEL,
            destination_tab=config.DESTINATION_TAB_LABEL or None,
            headless=config.BROWSER_HEADLESS,
            navigation_timeout_ms=config.NAVIGATION_TIMEOUT_MS,
            action_timeout_ms=config.ACTION_TIMEOUT_MS,
            prompt_timeout_ms=config.PROMPT_TIMEOUT_MS,
            verify_timeout_ms=config.VERIFY_TIMEOUT_MS,
            poll_ms=config.POLL_INTERVAL_MS,
            settle_ms=config.SETTLE_MS,
            live_capture_interval_ms=config.LIVE_CAPTURE_INTERVAL_MS,
            verify_require_result=config.VERIFY_REQUIRE_RESULT,
        )
