"""
Portas de persistência do motor de circulação.

Cada componente depende apenas da porta que usa, para que os testes de
cada um possam fornecer um fake mínimo. As implementações SQLAlchemy
ficam nos módulos vizinhos (book, person, transaction, reservation).

Regras que toda implementação deve respeitar:
    - decrement/increment de cópias são UPDATEs condicionais (retornam
      False quando a guarda falha, nunca leem-e-escrevem)
    - close/supersede de transação só afetam linhas abertas
    - transition de reserva só afeta reservas active
    - get_book_for_update bloqueia o livro até o fim da unidade atômica
      corrente; só deve ser chamado dentro de boundary.atomic()
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import AsyncContextManager, Optional, Protocol

from circulation.models.book import Book
from circulation.models.enums import BookCondition, ReservationStatus
from circulation.models.person import Librarian, Student
from circulation.models.reservation import Reservation
from circulation.models.transaction import Transaction


class CatalogAccessor(Protocol):
    """Leitura e contadores de cópias de um livro."""

    async def get_book(self, book_id: uuid.UUID) -> Optional[Book]: ...

    async def get_book_for_update(self, book_id: uuid.UUID) -> Optional[Book]: ...

    async def decrement_available(self, book_id: uuid.UUID) -> bool: ...

    async def increment_available(self, book_id: uuid.UUID) -> bool: ...

    async def update_condition(self, book_id: uuid.UUID, condition: BookCondition) -> None: ...


class PersonAccessor(Protocol):
    """Leitura de estudantes e bibliotecários."""

    async def get_student(self, student_id: uuid.UUID) -> Optional[Student]: ...

    async def get_librarian(self, librarian_id: uuid.UUID) -> Optional[Librarian]: ...


class LoanStore(Protocol):
    """Log append-only de transações e a projeção do empréstimo atual."""

    async def get(self, transaction_id: uuid.UUID) -> Optional[Transaction]: ...

    async def add(self, transaction: Transaction) -> Transaction: ...

    async def list_open_by_student(self, student_id: uuid.UUID) -> list[Transaction]: ...

    async def get_open_for_pair(
        self, student_id: uuid.UUID, book_id: uuid.UUID
    ) -> Optional[Transaction]: ...

    async def count_renewals(self, student_id: uuid.UUID, book_id: uuid.UUID) -> int: ...

    async def close(
        self,
        transaction_id: uuid.UUID,
        *,
        returned_date: datetime,
        fine_amount: Decimal,
        return_condition: BookCondition,
        condition_notes: Optional[str],
    ) -> Optional[Transaction]: ...

    async def supersede(self, transaction_id: uuid.UUID, superseded_at: datetime) -> bool: ...

    async def mark_fine_paid(self, transaction_id: uuid.UUID) -> Optional[Transaction]: ...

    async def list_overdue(self, now: datetime) -> list[Transaction]: ...

    async def list_by_student(
        self, student_id: uuid.UUID, limit: int, offset: int
    ) -> list[Transaction]: ...

    async def list_renewals(
        self, student_id: uuid.UUID, book_id: uuid.UUID
    ) -> list[Transaction]: ...

    async def renewal_statistics(self, student_id: uuid.UUID) -> tuple[int, int]: ...


class ReservationStore(Protocol):
    """Fila de reservas por livro."""

    async def get(self, reservation_id: uuid.UUID) -> Optional[Reservation]: ...

    async def add(self, reservation: Reservation) -> Reservation: ...

    async def list_active_by_book(self, book_id: uuid.UUID) -> list[Reservation]: ...

    async def get_next_active_by_book(self, book_id: uuid.UUID) -> Optional[Reservation]: ...

    async def count_active_by_student(self, student_id: uuid.UUID) -> int: ...

    async def get_active_for_pair(
        self, student_id: uuid.UUID, book_id: uuid.UUID
    ) -> Optional[Reservation]: ...

    async def has_active_by_other_students(
        self, book_id: uuid.UUID, student_id: uuid.UUID
    ) -> bool: ...

    async def transition(
        self,
        reservation_id: uuid.UUID,
        new_status: ReservationStatus,
        *,
        fulfilled_at: Optional[datetime] = None,
    ) -> Optional[Reservation]: ...

    async def expire_due(self, now: datetime) -> list[uuid.UUID]: ...

    async def list_unclaimed_fulfilled(
        self,
        book_id: uuid.UUID,
        since: datetime,
        student_id: Optional[uuid.UUID] = None,
    ) -> list[Reservation]: ...

    async def list_by_student(
        self, student_id: uuid.UUID, limit: int, offset: int
    ) -> list[Reservation]: ...

    async def list_all(
        self, limit: int, offset: int, status: Optional[ReservationStatus] = None
    ) -> list[Reservation]: ...

    async def list_books_with_active(self) -> list[uuid.UUID]: ...


class TransactionBoundary(Protocol):
    """
    Unidade atômica de escrita.

    `async with boundary.atomic():` confirma ao sair sem erro e desfaz em
    qualquer exceção (inclusive cancelamento). Uso aninhado participa da
    unidade externa.
    """

    def atomic(self) -> AsyncContextManager[None]: ...


@dataclass
class LendingStores:
    """Conjunto de portas usado para montar os services."""

    catalog: CatalogAccessor
    people: PersonAccessor
    loans: LoanStore
    reservations: ReservationStore
    boundary: TransactionBoundary
