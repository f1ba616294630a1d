"""Recurring appointment date expansion and validation."""

import calendar
from datetime import date, timedelta

from app.schemas.appointments import RecurrenceConfig, RecurrenceType

# Upper bound on occurrences a single series may produce
MAX_INSTANCES = {
    RecurrenceType.DAILY: 180,
    RecurrenceType.WEEKLY: 52,
    RecurrenceType.MONTHLY: 24,
}

MAX_INTERVAL = {
    RecurrenceType.DAILY: 7,
    RecurrenceType.WEEKLY: 12,
    RecurrenceType.MONTHLY: 12,
}

# How far ahead (in months) a series may end
MAX_HORIZON_MONTHS = {
    RecurrenceType.DAILY: 6,
    RecurrenceType.WEEKLY: 12,
    RecurrenceType.MONTHLY: 24,
}


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def generate_recurring_dates(
    start: date,
    config: RecurrenceConfig,
    max_instances: int | None = None,
) -> list[date]:
    """
    Dates of a series, starting with ``start`` itself.

    Occurrences advance by ``interval`` days, weeks or months until the
    first date after ``config.end_date`` or until ``max_instances``.
    Monthly steps are computed from ``start`` so a 31st never drifts.
    """
    limit = max_instances or MAX_INSTANCES[config.type]
    dates = [start]

    step = 1
    while len(dates) < limit:
        if config.type == RecurrenceType.DAILY:
            current = start + timedelta(days=config.interval * step)
        elif config.type == RecurrenceType.WEEKLY:
            current = start + timedelta(weeks=config.interval * step)
        else:
            current = add_months(start, config.interval * step)

        if current > config.end_date:
            break
        dates.append(current)
        step += 1

    return dates


def validate_recurrence_config(config: RecurrenceConfig, today: date) -> list[str]:
    """Human-readable problems with a recurrence descriptor, empty when valid."""
    errors = []

    if config.interval < 1:
        errors.append("El intervalo debe ser al menos 1")
    elif config.interval > MAX_INTERVAL[config.type]:
        errors.append(
            f"El intervalo máximo para recurrencia {config.type.value} "
            f"es {MAX_INTERVAL[config.type]}"
        )

    if config.end_date <= today:
        errors.append("La fecha de fin debe ser futura")
    else:
        horizon = MAX_HORIZON_MONTHS[config.type]
        if config.end_date > add_months(today, horizon):
            errors.append(f"La fecha de fin no puede superar {horizon} meses")

    return errors


_UNITS = {
    RecurrenceType.DAILY: ("día", "días"),
    RecurrenceType.WEEKLY: ("semana", "semanas"),
    RecurrenceType.MONTHLY: ("mes", "meses"),
}


def describe_recurrence(config: RecurrenceConfig) -> str:
    """Spanish description such as ``Cada 2 semanas hasta el 31/12/2024``."""
    singular, plural = _UNITS[config.type]
    if config.interval == 1:
        every = f"Cada {singular}"
    else:
        every = f"Cada {config.interval} {plural}"
    return f"{every} hasta el {config.end_date.strftime('%d/%m/%Y')}"
