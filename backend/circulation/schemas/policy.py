"""
Política de circulação (limites, prazos e multa).
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class LendingPolicy(BaseModel):
    """
    Regras configuráveis do motor de empréstimos.

    O prazo de empréstimo é uma tabela por ano de curso, não uma fórmula:
    anos ausentes da tabela usam default_loan_period_days.
    """

    model_config = ConfigDict(frozen=True)

    max_books_per_user: int = Field(5, ge=1)
    max_renewals: int = Field(2, ge=0)
    fine_per_day: Decimal = Decimal("0.50")
    loan_periods_by_year: dict[int, int] = Field(
        default_factory=lambda: {1: 14, 2: 14, 3: 21, 4: 21}
    )
    default_loan_period_days: int = Field(28, ge=1)
    max_reservations_per_student: int = Field(5, ge=1)
    reservation_window_days: int = Field(7, ge=1)

    def loan_period_days(self, year_of_study: int) -> int:
        """Retorna o prazo em dias para o ano de curso informado."""
        return self.loan_periods_by_year.get(year_of_study, self.default_loan_period_days)


DEFAULT_POLICY = LendingPolicy()
