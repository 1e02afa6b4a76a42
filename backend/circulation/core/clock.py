"""
Relógio da aplicação.

Services recebem um callable `clock` (default: utcnow) para que testes
possam fixar o instante atual sem patch global.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Instante atual em UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normaliza datetimes vindos do banco: naive é tratado como UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
