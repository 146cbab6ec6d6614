"""
Cálculo de la próxima ejecución de una rutina.

Determina cuándo "toca ejecutar" una rutina a partir de su frecuencia.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Optional

from remitbridge.shared.models import RoutineV1


def parse_time_of_day(value: str) -> time:
    """
    Parsea "HH:MM" a datetime.time.

    Raises:
        ValueError: si el formato o el rango no son válidos
    """
    try:
        hour, minute = map(int, value.strip().split(":"))
        return time(hour, minute)
    except (ValueError, AttributeError, TypeError) as e:
        raise ValueError(f"time_of_day inválido: {value!r}") from e


def compute_next_run(
    frequency: str,
    time_of_day: Optional[str] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Calcula la próxima ejecución.

    - hourly: now + 1h
    - weekly: now + 7d
    - daily con hora: hoy a esa hora si aún no pasó, si no mañana a esa hora
    - daily sin hora: now + 24h
    """
    if now is None:
        now = datetime.now()

    if frequency == "hourly":
        return now + timedelta(hours=1)
    if frequency == "weekly":
        return now + timedelta(days=7)
    if frequency == "daily":
        if not time_of_day:
            return now + timedelta(hours=24)
        target = datetime.combine(now.date(), parse_time_of_day(time_of_day))
        if target <= now:
            target += timedelta(days=1)
        return target

    raise ValueError(f"Frecuencia desconocida: {frequency!r}")


def is_due(routine: RoutineV1, now: Optional[datetime] = None) -> bool:
    """Una rutina activa toca si nunca se programó o su next_run ya pasó."""
    if routine.status != "active":
        return False
    if now is None:
        now = datetime.now()
    return routine.next_run is None or routine.next_run <= now
