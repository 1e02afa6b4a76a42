"""
Enums utilizados nos models da aplicação.
"""

import enum


class TransactionType(str, enum.Enum):
    """Tipo de uma transação de empréstimo."""
    BORROW = "borrow"
    RENEW = "renew"


class ReservationStatus(str, enum.Enum):
    """
    Status de uma reserva de livro.

    Fluxo típico:
        active -> fulfilled (cópia liberada, estudante tem prioridade)
        active -> expired (venceu na fila)
        active -> cancelled (cancelada explicitamente)

    Estados finais são imutáveis.
    """
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BookCondition(str, enum.Enum):
    """Estado de conservação de um livro, do melhor para o pior."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    DAMAGED = "damaged"

    @property
    def rank(self) -> int:
        """Quanto maior, melhor a conservação (excellent=5, damaged=1)."""
        return _CONDITION_RANK[self]

    def is_worse_than(self, other: "BookCondition") -> bool:
        return self.rank < other.rank


_CONDITION_RANK = {
    BookCondition.EXCELLENT: 5,
    BookCondition.GOOD: 4,
    BookCondition.FAIR: 3,
    BookCondition.POOR: 2,
    BookCondition.DAMAGED: 1,
}
