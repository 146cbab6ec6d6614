import logging
import os
from pathlib import Path

# Directorio raíz de datos locales (store JSON, uploads, capturas, locks)
DATA_DIR = Path(os.getenv("REMITBRIDGE_DATA_DIR", "data"))
STORE_DIR = Path(os.getenv("STORE_DIR", str(DATA_DIR / "store")))
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(DATA_DIR / "uploads")))
SCREENSHOTS_DIR = Path(os.getenv("SCREENSHOTS_DIR", str(DATA_DIR / "screenshots")))
LOCKS_DIR = Path(os.getenv("LOCKS_DIR", str(DATA_DIR / "locks")))

# Sistema destino (back-office web sin API)
TARGET_BASE_URL = os.getenv("TARGET_BASE_URL", "")
TARGET_USERNAME = os.getenv("TARGET_USERNAME", "")
# NUNCA loguear el valor de la password
TARGET_PASSWORD = os.getenv("TARGET_PASSWORD", "")
LOGIN_URL_MARKER = os.getenv("LOGIN_URL_MARKER", "Login.aspx")

# Ruta fija de navegación: categoría -> subitem -> pestaña destino (opcional)
MENU_CATEGORY_LABEL = os.getenv("MENU_CATEGORY_LABEL", "COBRANÇA")
MENU_ITEM_LABEL = os.getenv("MENU_ITEM_LABEL", "FCO001 - Cobrança")
DESTINATION_TAB_LABEL = os.getenv("DESTINATION_TAB_LABEL", "Ret. Bancário")

# Carpetas vigiladas
WATCH_EXTENSION = os.getenv("WATCH_EXTENSION", ".RET")

# Scheduler
SCHEDULER_INTERVAL_SECONDS = int(os.getenv("SCHEDULER_INTERVAL_SECONDS", "300"))
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"

# Navegador y tiempos de espera (ms)
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "true").lower() == "true"
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "60000"))
ACTION_TIMEOUT_MS = int(os.getenv("ACTION_TIMEOUT_MS", "15000"))
PROMPT_TIMEOUT_MS = int(os.getenv("PROMPT_TIMEOUT_MS", "5000"))
VERIFY_TIMEOUT_MS = int(os.getenv("VERIFY_TIMEOUT_MS", "10000"))
POLL_INTERVAL_MS = int(os.getenv("POLL_INTERVAL_MS", "250"))
SETTLE_MS = int(os.getenv("SETTLE_MS", "1000"))
LIVE_CAPTURE_INTERVAL_MS = int(os.getenv("LIVE_CAPTURE_INTERVAL_MS", "2000"))

# Si es False, una fila de resultado ausente no marca error cuando Importar sí se pulsó
VERIFY_REQUIRE_RESULT = bool(int(os.getenv("VERIFY_REQUIRE_RESULT", "1")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level: str | None = None) -> None:
    """Configura el logging raíz del proceso (CLI y app)."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
