"""
Regras de elegibilidade para empréstimo, renovação e reserva.

Funções puras sobre estado já carregado: não fazem I/O e não levantam
exceção. Retornam None quando a operação é permitida, ou a instância do
erro de negócio que descreve a regra violada. Quem chama decide se levanta
(services) ou apenas reporta (consultas de elegibilidade).
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence
from uuid import UUID

from circulation.core.clock import as_utc
from circulation.core.exceptions import (
    AlreadyReturnedError,
    DuplicateLoanError,
    DuplicateReservationError,
    InactiveEntityError,
    LendingError,
    OverdueBlockError,
    QuotaExceededError,
    ReservationConflictError,
    UnavailableError,
)
from circulation.models.book import Book
from circulation.models.person import Student
from circulation.models.transaction import Transaction
from circulation.schemas.policy import LendingPolicy


def evaluate_borrow(
    student: Student,
    book: Book,
    active_loans: Sequence[Transaction],
    requested_book_id: UUID,
    policy: LendingPolicy,
    now: datetime,
) -> Optional[LendingError]:
    """
    Avalia um pedido de empréstimo.

    Ordem das regras:
        1. Estudante ativo
        2. Livro ativo
        3. Cópia disponível
        4. Limite de empréstimos ativos
        5. Sem empréstimo aberto do mesmo livro
        6. Sem empréstimo em atraso
    """
    if not student.is_active:
        return InactiveEntityError("Estudante inativo")

    if not book.is_active:
        return InactiveEntityError("Livro inativo")

    if book.available_copies <= 0:
        return UnavailableError("Livro não disponível")

    if len(active_loans) >= policy.max_books_per_user:
        return QuotaExceededError(
            f"Estudante já possui {policy.max_books_per_user} empréstimos ativos"
        )

    if any(loan.book_id == requested_book_id for loan in active_loans):
        return DuplicateLoanError()

    if any(loan.is_overdue(now) for loan in active_loans):
        return OverdueBlockError(
            "Estudante possui empréstimos em atraso. Devolva-os antes de pegar outro livro."
        )

    return None


def compute_due_date(now: datetime, student: Student, policy: LendingPolicy) -> datetime:
    """Vencimento = agora + prazo da tabela para o ano de curso do estudante."""
    return as_utc(now) + timedelta(days=policy.loan_period_days(student.year_of_study))


def evaluate_renewal(
    transaction: Transaction,
    renewal_count: int,
    has_other_reservation: bool,
    policy: LendingPolicy,
    now: datetime,
) -> Optional[LendingError]:
    """
    Avalia uma renovação.

    Args:
        transaction: Empréstimo atual (cabeça da cadeia de renovações)
        renewal_count: Renovações anteriores do par estudante/livro
        has_other_reservation: Outro estudante tem reserva ativa do livro
    """
    if not transaction.is_open:
        return AlreadyReturnedError("Não é possível renovar um empréstimo já devolvido")

    if as_utc(now) > as_utc(transaction.due_date):
        return OverdueBlockError("Não é possível renovar um empréstimo atrasado")

    if renewal_count >= policy.max_renewals:
        return QuotaExceededError(
            f"Limite de renovações atingido (máximo: {policy.max_renewals})"
        )

    if has_other_reservation:
        return ReservationConflictError(
            "Não é possível renovar: outro estudante reservou este livro"
        )

    return None


def evaluate_reservation(
    student: Student,
    book: Book,
    active_count: int,
    already_reserved: bool,
    policy: LendingPolicy,
) -> Optional[LendingError]:
    """Avalia um pedido de reserva (só faz sentido sem cópia disponível)."""
    if not student.is_active:
        return InactiveEntityError("Estudante inativo")

    if not book.is_active:
        return InactiveEntityError("Livro inativo")

    if book.available_copies > 0:
        return UnavailableError(
            "Livro disponível para empréstimo. Faça um empréstimo diretamente."
        )

    if active_count >= policy.max_reservations_per_student:
        return QuotaExceededError(
            f"Estudante já possui {policy.max_reservations_per_student} reservas ativas"
        )

    if already_reserved:
        return DuplicateReservationError()

    return None
