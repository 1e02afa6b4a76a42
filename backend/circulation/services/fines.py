"""
Cálculo de multa por atraso.

A multa conta dias inteiros entre as meias-noites UTC do vencimento e da
devolução: devolver 1 minuto depois da virada do dia cobra exatamente um
dia, nunca fração.
"""

from datetime import datetime, time, timezone
from decimal import Decimal

from circulation.core.clock import as_utc

FINE_QUANTUM = Decimal("0.01")


def _utc_midnight(value: datetime) -> datetime:
    return datetime.combine(as_utc(value).date(), time.min, tzinfo=timezone.utc)


def calculate_fine(
    due_date: datetime,
    return_date: datetime,
    rate_per_day: Decimal = Decimal("0.50"),
) -> Decimal:
    """
    Calcula a multa de uma devolução.

    Args:
        due_date: Data de vencimento
        return_date: Data de devolução
        rate_per_day: Valor por dia de atraso (Decimal, nunca float)

    Returns:
        Multa com 2 casas decimais (0.00 se não houve atraso)
    """
    if as_utc(return_date) <= as_utc(due_date):
        return Decimal("0.00")

    days_late = (_utc_midnight(return_date) - _utc_midnight(due_date)).days
    if days_late <= 0:
        return Decimal("0.00")

    return (Decimal(days_late) * Decimal(rate_per_day)).quantize(FINE_QUANTUM)
