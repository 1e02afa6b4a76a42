"""
Testes unitários para o cálculo de multa.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from circulation.services.fines import calculate_fine

RATE = Decimal("0.50")
DUE = datetime(2026, 5, 10, 14, 30, tzinfo=timezone.utc)


class TestCalculateFine:
    """Testes para calculate_fine."""

    def test_returned_on_due_date_has_no_fine(self):
        assert calculate_fine(DUE, DUE, RATE) == Decimal("0.00")

    def test_returned_before_due_date_has_no_fine(self):
        assert calculate_fine(DUE, DUE - timedelta(days=1), RATE) == Decimal("0.00")

    def test_one_day_late_costs_one_day(self):
        assert calculate_fine(DUE, DUE + timedelta(days=1), RATE) == RATE

    def test_partial_day_is_truncated(self):
        """1 dia e 1 minuto de atraso cobra exatamente 1 dia."""
        returned = DUE + timedelta(days=1, minutes=1)
        assert calculate_fine(DUE, returned, RATE) == RATE

    def test_late_on_same_utc_day_has_no_fine(self):
        assert calculate_fine(DUE, DUE + timedelta(hours=5), RATE) == Decimal("0.00")

    def test_crossing_midnight_by_minutes_costs_one_day(self):
        due = datetime(2026, 5, 10, 23, 50, tzinfo=timezone.utc)
        returned = datetime(2026, 5, 11, 0, 10, tzinfo=timezone.utc)
        assert calculate_fine(due, returned, RATE) == RATE

    @pytest.mark.parametrize("days,expected", [(2, "1.00"), (7, "3.50"), (30, "15.00")])
    def test_fine_grows_per_whole_day(self, days, expected):
        assert calculate_fine(DUE, DUE + timedelta(days=days), RATE) == Decimal(expected)

    def test_timezone_is_normalized_to_utc(self):
        """Vencimento em UTC-3 às 22h já é o dia seguinte em UTC."""
        local = timezone(timedelta(hours=-3))
        due = datetime(2026, 5, 10, 22, 0, tzinfo=local)  # 11/05 01:00 UTC
        returned = datetime(2026, 5, 11, 20, 0, tzinfo=timezone.utc)
        assert calculate_fine(due, returned, RATE) == Decimal("0.00")

    def test_naive_datetimes_are_treated_as_utc(self):
        due = datetime(2026, 5, 10, 12, 0)
        returned = datetime(2026, 5, 13, 12, 0)
        assert calculate_fine(due, returned, RATE) == Decimal("1.50")

    def test_result_has_two_decimal_places(self):
        fine = calculate_fine(DUE, DUE + timedelta(days=3), Decimal("0.333"))
        assert fine == Decimal("1.00")
        assert fine.as_tuple().exponent == -2

    def test_default_rate(self):
        assert calculate_fine(DUE, DUE + timedelta(days=4)) == Decimal("2.00")
