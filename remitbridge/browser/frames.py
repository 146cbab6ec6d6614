"""
Búsqueda de elementos por texto a través de todos los frames de la página.

La pantalla destino del sistema legacy está compuesta por frames anidados:
el botón que abre el selector de archivo y el <input type=file> pueden vivir
en frames distintos, así que todas las búsquedas recorren page.frames.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from remitbridge.shared.text_matcher import (
    CONTAINS_ONLY,
    EXACT_ONLY,
    EXACT_THEN_FALLBACK,
    EXACT_THEN_PREFIX,
    MatchMode,
    clean_label,
    match_label,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLICKABLE_SELECTOR = "a, button, span, div, td, input[type='button'], input[type='submit']"
BUTTON_SELECTOR = "button, input[type='button'], input[type='submit']"
LINK_SELECTOR = "a"


@dataclass
class LabelledElement:
    """Elemento encontrado junto al frame donde vive y su texto visible."""
    frame: Any
    frame_index: int
    element: Any
    label: str
    mode: Optional[MatchMode] = None


async def element_label(element: Any) -> str:
    """Texto visible del elemento; para inputs (button/submit) usa el atributo value."""
    text = ""
    try:
        text = await element.inner_text()
    except Exception as e:
        logger.debug("[frames] inner_text falló: %s", e)
    text = clean_label(text)
    if text:
        return text
    try:
        value = await element.get_attribute("value")
    except Exception:
        value = None
    return clean_label(value)


async def collect_labelled(
    frames: Sequence[Any],
    selector: str,
    visible_only: bool = True,
) -> List[LabelledElement]:
    """Recorre frames y devuelve todos los elementos con texto que cumplen el selector."""
    found: List[LabelledElement] = []
    for idx, frame in enumerate(frames):
        try:
            elements = await frame.query_selector_all(selector)
        except Exception as e:
            # Frame desconectado o de otro origen
            logger.debug("[frames] frame %s no accesible: %s", idx, e)
            continue
        for el in elements:
            if visible_only:
                try:
                    if not await el.is_visible():
                        continue
                except Exception:
                    continue
            label = await element_label(el)
            if label:
                found.append(LabelledElement(frame=frame, frame_index=idx, element=el, label=label))
    return found


async def find_with_policy(
    frames: Sequence[Any],
    text: str,
    selector: str = CLICKABLE_SELECTOR,
    modes: Sequence[MatchMode] = EXACT_THEN_FALLBACK,
    case_sensitive: bool = True,
    exclude: Optional[Callable[[LabelledElement], Awaitable[bool]]] = None,
) -> Optional[LabelledElement]:
    """
    Localiza un elemento por etiqueta en todos los frames.

    El match exacto se evalúa sobre TODOS los frames antes de caer al fallback.
    """
    candidates = await collect_labelled(frames, selector)
    if exclude is not None:
        candidates = [c for c in candidates if not await exclude(c)]
    hit = match_label([c.label for c in candidates], text, modes=modes, case_sensitive=case_sensitive)
    if hit is None:
        return None
    idx, mode = hit
    chosen = candidates[idx]
    chosen.mode = mode
    return chosen


async def find_by_label(
    frames: Sequence[Any],
    text: str,
    selector: str = CLICKABLE_SELECTOR,
) -> Optional[LabelledElement]:
    return await find_with_policy(frames, text, selector, modes=EXACT_ONLY)


async def find_by_label_contains(
    frames: Sequence[Any],
    text: str,
    selector: str = CLICKABLE_SELECTOR,
) -> Optional[LabelledElement]:
    return await find_with_policy(frames, text, selector, modes=CONTAINS_ONLY)


async def find_any_label(
    frames: Sequence[Any],
    texts: Sequence[str],
    selector: str = BUTTON_SELECTOR,
    modes: Sequence[MatchMode] = EXACT_THEN_PREFIX,
) -> Optional[LabelledElement]:
    """
    Primera etiqueta de la lista que aparezca (en orden de preferencia).

    Un modo más estricto gana siempre: un exacto de cualquier etiqueta de la
    lista se prefiere a un prefijo de la primera.
    """
    for mode in modes:
        for text in texts:
            hit = await find_with_policy(frames, text, selector, modes=(mode,))
            if hit:
                return hit
    return None


async def find_first(frames: Sequence[Any], selector: str) -> Optional[LabelledElement]:
    """Primer elemento que cumple el selector en cualquier frame (sin exigir texto)."""
    for idx, frame in enumerate(frames):
        try:
            el = await frame.query_selector(selector)
        except Exception as e:
            logger.debug("[frames] frame %s no accesible: %s", idx, e)
            continue
        if el is not None:
            return LabelledElement(frame=frame, frame_index=idx, element=el, label="")
    return None


async def visible_labels(frames: Sequence[Any], selector: str = CLICKABLE_SELECTOR, limit: int = 40) -> List[str]:
    """Etiquetas visibles (deduplicadas, cortas) para volcarlas al log al fallar."""
    seen: List[str] = []
    for item in await collect_labelled(frames, selector):
        if len(item.label) < 50 and item.label not in seen:
            seen.append(item.label)
        if len(seen) >= limit:
            break
    return seen


async def wait_for_condition(
    predicate: Callable[[], Awaitable[Optional[T]]],
    timeout_ms: int,
    poll_ms: int = 250,
) -> Optional[T]:
    """
    Sondea predicate hasta que devuelva algo truthy o venza el timeout.

    Returns:
        El último valor truthy de predicate, o None si se agotó el tiempo.
    """
    deadline = time.monotonic() + timeout_ms / 1000.0
    while True:
        result = await predicate()
        if result:
            return result
        if time.monotonic() >= deadline:
            return None
        await asyncio.sleep(poll_ms / 1000.0)
