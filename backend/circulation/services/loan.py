"""
Service para o ciclo de vida de empréstimos (borrow, renew, return).

Regras de negócio:
    - Estudante pode ter no máximo max_books_per_user empréstimos abertos
    - Prazo por ano de curso (tabela da LendingPolicy)
    - Multa por dia de atraso, em dias inteiros UTC
    - Renovação cria uma NOVA transação (type=renew); a anterior é
      marcada como substituída e o histórico é preservado
    - Cópias: -1 por empréstimo, +1 por devolução, nunca por renovação

Toda escrita acontece dentro de boundary.atomic(): a transação e o
contador de cópias mudam juntos ou não mudam.
"""

import logging
from uuid import UUID

from circulation.core.clock import Clock, utcnow
from circulation.core.exceptions import (
    AlreadyReturnedError,
    InvalidConditionError,
    InvalidTransactionTypeError,
    InventoryConflictError,
    LendingError,
    NoFineDueError,
    NotFoundError,
    UnavailableError,
)
from circulation.models.book import Book
from circulation.models.enums import BookCondition, TransactionType
from circulation.models.person import Student
from circulation.models.transaction import Transaction
from circulation.repositories.ports import LendingStores
from circulation.schemas.policy import DEFAULT_POLICY, LendingPolicy
from circulation.schemas.transaction import RenewalStatistics
from circulation.services.eligibility import (
    compute_due_date,
    evaluate_borrow,
    evaluate_renewal,
)
from circulation.services.fines import calculate_fine

logger = logging.getLogger(__name__)


class LoanService:
    """Service para operações de empréstimo."""

    def __init__(
        self,
        stores: LendingStores,
        policy: LendingPolicy = DEFAULT_POLICY,
        clock: Clock = utcnow,
    ):
        self.stores = stores
        self.policy = policy
        self.clock = clock

    # ==========================================
    # Borrow
    # ==========================================

    async def borrow_book(
        self,
        student_id: UUID,
        book_id: UUID,
        librarian_id: UUID | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """
        Registra um empréstimo.

        Fluxo:
            1. Busca estudante e livro
            2. Avalia elegibilidade sobre os empréstimos abertos
            3. Em uma unidade atômica: decremento protegido de cópias
               e inserção da transação borrow

        Raises:
            NotFoundError: Estudante, livro ou bibliotecário inexistente
            UnavailableError: Nenhuma cópia (inclusive por corrida perdida)
            InactiveEntityError, QuotaExceededError, DuplicateLoanError,
            OverdueBlockError: Regra de elegibilidade violada
        """
        student = await self._get_student(student_id)
        book = await self._get_book(book_id)
        await self._check_librarian(librarian_id)

        now = self.clock()
        active_loans = await self.stores.loans.list_open_by_student(student_id)
        rejection = evaluate_borrow(student, book, active_loans, book_id, self.policy, now)
        if rejection is not None:
            raise rejection

        transaction = Transaction(
            student_id=student_id,
            book_id=book_id,
            transaction_type=TransactionType.BORROW,
            transaction_date=now,
            due_date=compute_due_date(now, student, self.policy),
            librarian_id=librarian_id,
            notes=notes,
        )

        async with self.stores.boundary.atomic():
            if not await self.stores.catalog.decrement_available(book_id):
                raise UnavailableError("Livro não disponível")
            transaction = await self.stores.loans.add(transaction)

        logger.info(
            f"Empréstimo {transaction.id}: estudante {student_id} livro {book_id} "
            f"vence em {transaction.due_date:%Y-%m-%d}"
        )
        return transaction

    # ==========================================
    # Return
    # ==========================================

    async def return_book(
        self,
        transaction_id: UUID,
        condition: str | BookCondition = BookCondition.GOOD,
        condition_notes: str | None = None,
    ) -> Transaction:
        """
        Processa a devolução.

        Fluxo:
            1. Valida transação, tipo e condição
            2. Resolve a cabeça da cadeia (renovações)
            3. Calcula multa
            4. Em uma unidade atômica: fecha a transação, devolve a cópia
               e piora a condição do livro se necessário

        O atendimento da fila de reservas é disparado pelo coordenador
        depois do commit.

        Raises:
            NotFoundError: Transação inexistente
            AlreadyReturnedError: Já devolvida (inclusive por corrida perdida)
            InvalidTransactionTypeError: Tipo não é borrow nem renew
            InvalidConditionError: Condição fora do enum
            InventoryConflictError: Contador de cópias já está no total
        """
        transaction = await self.get_transaction(transaction_id)

        if transaction.is_returned:
            raise AlreadyReturnedError()

        if transaction.transaction_type not in (TransactionType.BORROW, TransactionType.RENEW):
            raise InvalidTransactionTypeError()

        return_condition = self._parse_condition(condition)
        current = await self._resolve_current(transaction)
        if not current.is_open:
            raise AlreadyReturnedError()

        now = self.clock()
        fine = calculate_fine(current.due_date, now, self.policy.fine_per_day)

        async with self.stores.boundary.atomic():
            closed = await self.stores.loans.close(
                current.id,
                returned_date=now,
                fine_amount=fine,
                return_condition=return_condition,
                condition_notes=condition_notes,
            )
            if closed is None:
                raise AlreadyReturnedError()

            if not await self.stores.catalog.increment_available(current.book_id):
                raise InventoryConflictError(
                    "Todas as cópias já estão na prateleira; devolução não registrada"
                )

            book = await self.stores.catalog.get_book(current.book_id)
            if book is not None and return_condition.is_worse_than(book.condition):
                await self.stores.catalog.update_condition(book.id, return_condition)

        logger.info(
            f"Devolução {closed.id}: livro {closed.book_id} "
            f"condição={return_condition.value} multa={fine}"
        )
        return closed

    # ==========================================
    # Renew
    # ==========================================

    async def renew_book(
        self,
        transaction_id: UUID,
        librarian_id: UUID | None = None,
    ) -> Transaction:
        """
        Renova um empréstimo.

        A linha atual recebe superseded_at e uma nova linha renew é criada
        com vencimento recalculado pela tabela de prazos. Cópias não mudam.

        Raises:
            NotFoundError: Transação/estudante inexistente
            AlreadyReturnedError, OverdueBlockError, QuotaExceededError,
            ReservationConflictError: Regra de renovação violada
        """
        transaction = await self.get_transaction(transaction_id)
        await self._check_librarian(librarian_id)

        current = await self._resolve_current(transaction)
        now = self.clock()
        rejection = await self._renewal_rejection(current, now)
        if rejection is not None:
            raise rejection

        student = await self._get_student(current.student_id)
        renewal = Transaction(
            student_id=current.student_id,
            book_id=current.book_id,
            transaction_type=TransactionType.RENEW,
            transaction_date=now,
            due_date=compute_due_date(now, student, self.policy),
            librarian_id=librarian_id,
            renewed_from_id=current.id,
        )

        async with self.stores.boundary.atomic():
            if not await self.stores.loans.supersede(current.id, now):
                raise AlreadyReturnedError("Empréstimo já devolvido ou renovado")
            renewal = await self.stores.loans.add(renewal)

        logger.info(
            f"Renovação {renewal.id} de {current.id}: "
            f"novo vencimento {renewal.due_date:%Y-%m-%d}"
        )
        return renewal

    async def can_book_be_renewed(self, transaction_id: UUID) -> tuple[bool, str]:
        """
        Verifica se a transação pode ser renovada, sem alterar nada.

        Returns:
            Tupla (pode_renovar, motivo)
        """
        transaction = await self.stores.loans.get(transaction_id)
        if transaction is None:
            return False, "Transação não encontrada"

        current = await self._resolve_current(transaction)
        rejection = await self._renewal_rejection(current, self.clock())
        if rejection is not None:
            return False, rejection.message
        return True, "Empréstimo pode ser renovado"

    async def _renewal_rejection(
        self,
        current: Transaction,
        now,
    ) -> LendingError | None:
        renewal_count = await self.stores.loans.count_renewals(
            current.student_id, current.book_id
        )
        has_other_reservation = await self.stores.reservations.has_active_by_other_students(
            current.book_id, current.student_id
        )
        return evaluate_renewal(
            current, renewal_count, has_other_reservation, self.policy, now
        )

    # ==========================================
    # Fines
    # ==========================================

    async def pay_fine(self, transaction_id: UUID) -> Transaction:
        """
        Marca a multa como paga (idempotente).

        Raises:
            NotFoundError: Transação inexistente
            NoFineDueError: Transação aberta ou sem multa
        """
        transaction = await self.get_transaction(transaction_id)
        if not transaction.is_returned or transaction.fine_amount <= 0:
            raise NoFineDueError()
        if transaction.fine_paid:
            return transaction

        async with self.stores.boundary.atomic():
            paid = await self.stores.loans.mark_fine_paid(transaction_id)

        logger.info(f"Multa paga: transação {transaction_id} valor={transaction.fine_amount}")
        return paid

    # ==========================================
    # Queries
    # ==========================================

    async def get_transaction(self, transaction_id: UUID) -> Transaction:
        """
        Busca transação por ID.

        Raises:
            NotFoundError: Transação não encontrada
        """
        transaction = await self.stores.loans.get(transaction_id)
        if transaction is None:
            raise NotFoundError("Transação não encontrada")
        return transaction

    async def get_overdue_transactions(self) -> list[Transaction]:
        """Lista empréstimos abertos com vencimento no passado."""
        return await self.stores.loans.list_overdue(self.clock())

    async def get_transaction_history(
        self,
        student_id: UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Transaction]:
        await self._get_student(student_id)
        return await self.stores.loans.list_by_student(student_id, limit, offset)

    async def get_renewal_history(self, student_id: UUID, book_id: UUID) -> list[Transaction]:
        return await self.stores.loans.list_renewals(student_id, book_id)

    async def get_renewal_statistics(self, student_id: UUID) -> RenewalStatistics:
        await self._get_student(student_id)
        total, books = await self.stores.loans.renewal_statistics(student_id)
        return RenewalStatistics(
            student_id=student_id,
            total_renewals=total,
            books_renewed=books,
        )

    # ==========================================
    # Helpers
    # ==========================================

    async def _resolve_current(self, transaction: Transaction) -> Transaction:
        """Uma linha substituída resolve para a linha aberta da sua cadeia."""
        if not transaction.is_superseded:
            return transaction
        head = await self.stores.loans.get_open_for_pair(
            transaction.student_id, transaction.book_id
        )
        # A linha aberta pode ser de um empréstimo posterior do mesmo par
        link = head
        while link is not None and link.id != transaction.id:
            if link.renewed_from_id is None:
                return transaction
            link = await self.stores.loans.get(link.renewed_from_id)
        return head if link is not None else transaction

    async def _get_student(self, student_id: UUID) -> Student:
        student = await self.stores.people.get_student(student_id)
        if student is None:
            raise NotFoundError("Estudante não encontrado")
        return student

    async def _get_book(self, book_id: UUID) -> Book:
        book = await self.stores.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError("Livro não encontrado")
        return book

    async def _check_librarian(self, librarian_id: UUID | None) -> None:
        if librarian_id is None:
            return
        if await self.stores.people.get_librarian(librarian_id) is None:
            raise NotFoundError("Bibliotecário não encontrado")

    @staticmethod
    def _parse_condition(condition: str | BookCondition) -> BookCondition:
        try:
            return BookCondition(condition)
        except ValueError:
            allowed = ", ".join(member.value for member in BookCondition)
            raise InvalidConditionError(
                f"Condição inválida: {condition!r}. Use uma de: {allowed}"
            ) from None
