"""
Política de matching de etiquetas de UI.

El sistema destino no tiene API: localizamos menús, botones y opciones por
su texto visible. Orden de búsqueda (EXACT_THEN_FALLBACK):

1. EXACT     - texto idéntico (tras strip)
2. PREFIX    - el texto empieza por la etiqueta buscada
3. CONTAINS  - el texto contiene la etiqueta
4. TOKENS    - el texto contiene todas las palabras de la etiqueta

En los modos de fallback gana la etiqueta más corta, para que un contenedor
(que concatena el texto de sus hijos) nunca gane a la hoja que buscamos.
"""

from __future__ import annotations

import re
import unicodedata
from enum import Enum
from typing import Optional, Sequence, Tuple


class MatchMode(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    CONTAINS = "contains"
    TOKENS = "tokens"


EXACT_THEN_FALLBACK: Tuple[MatchMode, ...] = (
    MatchMode.EXACT,
    MatchMode.PREFIX,
    MatchMode.CONTAINS,
    MatchMode.TOKENS,
)
# Botones de acción ("OK", "Sim"): etiquetas cortas, CONTAINS/TOKENS darían falsos positivos
EXACT_THEN_PREFIX: Tuple[MatchMode, ...] = (MatchMode.EXACT, MatchMode.PREFIX)
EXACT_ONLY: Tuple[MatchMode, ...] = (MatchMode.EXACT,)
CONTAINS_ONLY: Tuple[MatchMode, ...] = (MatchMode.PREFIX, MatchMode.CONTAINS, MatchMode.TOKENS)

_WS_RE = re.compile(r"\s+")


def clean_label(text: Optional[str]) -> str:
    """Colapsa espacios (incluye NBSP y saltos de línea) y hace strip."""
    if not text:
        return ""
    return _WS_RE.sub(" ", unicodedata.normalize("NFC", str(text)).replace("\xa0", " ")).strip()


def _matches(label: str, target: str, mode: MatchMode) -> bool:
    if not label or not target:
        return False
    if mode is MatchMode.EXACT:
        return label == target
    if mode is MatchMode.PREFIX:
        return label.startswith(target)
    if mode is MatchMode.CONTAINS:
        return target in label
    tokens = target.split(" ")
    return all(tok in label for tok in tokens)


def match_label(
    labels: Sequence[str],
    target: str,
    modes: Sequence[MatchMode] = EXACT_THEN_FALLBACK,
    case_sensitive: bool = True,
) -> Optional[Tuple[int, MatchMode]]:
    """
    Busca target en labels según la política indicada.

    Returns:
        (índice, modo que hizo match) o None
    """
    wanted = clean_label(target)
    cleaned = [clean_label(label) for label in labels]
    if not case_sensitive:
        wanted = wanted.casefold()
        cleaned = [c.casefold() for c in cleaned]

    for mode in modes:
        hits = [i for i, label in enumerate(cleaned) if _matches(label, wanted, mode)]
        if not hits:
            continue
        if mode is MatchMode.EXACT:
            return hits[0], mode
        best = min(hits, key=lambda i: (len(cleaned[i]), i))
        return best, mode
    return None


def same_label(a: Optional[str], b: Optional[str]) -> bool:
    """Igualdad case-insensitive tras limpiar espacios."""
    return clean_label(a).casefold() == clean_label(b).casefold()
