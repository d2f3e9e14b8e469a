"""
Qué días/usos da derecho un tipo de ticket.

    PackageEntitlement(total_slots)   -> N usos, sin fechas fijas
    ScheduledEntitlement(rule)        -> fechas concretas, con rule en
        ExplicitDates | WeekdayRecurrence | FullRange
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import Union

WEEKDAY_CODES = {
    # español, una letra (X = miércoles)
    "L": 0, "M": 1, "X": 2, "J": 3, "V": 4, "S": 5, "D": 6,
    # inglés, tres letras
    "MON": 0, "TUE": 1, "WED": 2, "THU": 3, "FRI": 4, "SAT": 5, "SUN": 6,
}


@dataclass(frozen=True)
class ExplicitDates:
    dates: tuple


@dataclass(frozen=True)
class WeekdayRecurrence:
    weekdays: frozenset


@dataclass(frozen=True)
class FullRange:
    pass


ScheduleRule = Union[ExplicitDates, WeekdayRecurrence, FullRange]


@dataclass(frozen=True)
class PackageEntitlement:
    total_slots: int


@dataclass(frozen=True)
class ScheduledEntitlement:
    rule: ScheduleRule


def parse_weekday_label(label):
    """
    "Tue-Thu" -> [1, 3]; "L-M-X" -> [0, 1, 2]. Separadores: guion, coma o espacio.
    Levanta ValueError si alguna parte no es un día reconocido.
    """
    parts = [p for p in re.split(r"[\s,\-/]+", (label or "").strip().upper()) if p]
    if not parts:
        raise ValueError("Etiqueta de días vacía")
    days = []
    for part in parts:
        key = part[:3] if len(part) > 1 else part
        if key not in WEEKDAY_CODES:
            raise ValueError(f"Día de semana no reconocido: {part}")
        if WEEKDAY_CODES[key] not in days:
            days.append(WEEKDAY_CODES[key])
    return sorted(days)


def _as_date(value):
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def schedule_rule(tipo):
    if tipo.schedule == "explicit" and tipo.valid_days:
        return ExplicitDates(tuple(sorted({_as_date(d) for d in tipo.valid_days})))
    if tipo.schedule == "weekdays" and tipo.weekdays:
        return WeekdayRecurrence(frozenset(int(d) for d in tipo.weekdays))
    return FullRange()


def entitlement_plan(tipo, evento=None):
    """
    Paquete sin package_days_count: tantos usos como días tenga el evento.
    """
    if tipo.is_package:
        total = tipo.package_days_count
        if not total:
            evento = evento or tipo.evento
            total = len(evento.dias())
        return PackageEntitlement(total_slots=total)
    return ScheduledEntitlement(rule=schedule_rule(tipo))


def derive_dates(rule, evento):
    if isinstance(rule, ExplicitDates):
        return list(rule.dates)
    if isinstance(rule, WeekdayRecurrence):
        return [d for d in evento.dias() if d.weekday() in rule.weekdays]
    if isinstance(rule, FullRange):
        return evento.dias()
    raise TypeError(f"regla de calendario desconocida: {rule!r}")
