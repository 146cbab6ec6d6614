"""
Selectores CSS y etiquetas del sistema destino.

Las etiquetas de menú se pueden sobrescribir por entorno (ver config.py);
aquí solo viven las que no cambian entre instalaciones.
"""

from typing import Dict, Tuple

# Login
LOGIN_SELECTORS: Dict[str, str] = {
    "username_input": "#txbUser",
    "password_input": "#txbPassword",
    "submit_button": "#btnLogin",
}

# "Sesión activa en otro lugar, ¿desconectar?"
FORCE_LOGIN_LABELS: Tuple[str, ...] = ("Sim", "Yes", "Confirmar")

# Selector de empresa (contexto operativo)
CONTEXT_SELECTORS: Dict[str, str] = {
    "trigger": "#lnkEmpresa",
    "option": "a.company-option",
}
CONTEXT_SELECTED_CLASSES: Tuple[str, ...] = ("selected", "active", "current")

# Pantalla destino (frames anidados)
CHOOSE_FILE_LABELS: Tuple[str, ...] = ("Selecionar",)
FILE_INPUT_SELECTOR = "input[type='file']"
DIALOG_CONFIRM_LABELS: Tuple[str, ...] = ("OK", "Confirmar")
IMPORT_LABELS: Tuple[str, ...] = ("Importar",)

# Prompt opcional de fecha de procesamiento
DATE_SELECT_SELECTOR = "select"
DATE_CHOICE_SELECTOR = "input[type='radio'], label"
DATE_PROMPT_CONFIRM_LABELS: Tuple[str, ...] = ("OK", "Confirmar", "Processar")

# Tabla de resultados
RESULT_ROW_SELECTOR = "tr"
RESULT_CELL_SELECTOR = ":scope > td"
REFERENCE_CELL_INDEX = 1
