from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

logger = logging.getLogger(__name__)


@asynccontextmanager
async def browser_session(
    headless: bool = True,
    viewport: Optional[dict] = None,
    default_timeout_ms: int = 15000,
) -> AsyncIterator[Page]:
    """
    Abre una sesión Chromium exclusiva y garantiza su cierre.

    Una sesión por archivo: el sistema destino solo admite un login activo
    por cuenta, así que nunca se comparte entre archivos.
    """
    playwright = await async_playwright().start()
    browser: Optional[Browser] = None
    context: Optional[BrowserContext] = None
    page: Optional[Page] = None
    try:
        browser = await playwright.chromium.launch(
            headless=headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        context = await browser.new_context(viewport=viewport or {"width": 1920, "height": 1080})
        page = await context.new_page()
        page.set_default_timeout(default_timeout_ms)
        yield page
    finally:
        # Cerrar navegador aunque el workflow haya fallado
        for closer, name in ((page, "page"), (context, "context"), (browser, "browser")):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as e:
                logger.warning("[session] error cerrando %s: %s", name, e)
        await playwright.stop()
