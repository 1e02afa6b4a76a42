"""
Coordenação entre empréstimos e fila de reservas.

Regras de negócio:
    - Na devolução, a cópia liberada é destinada à primeira reserva active
      do livro (de forma assíncrona, pelo worker)
    - Reserva atendida e ainda não retirada separa uma cópia: outros
      estudantes só pegam o livro se sobrar cópia além das separadas
    - No empréstimo:
        1. Estudante com reserva atendida é admitido
        2. Próxima reserva da fila de outro estudante -> conflito
           (o estudante deve reservar)
        3. Próxima reserva da fila do próprio estudante é atendida na
           mesma unidade atômica do empréstimo
"""

import logging
from typing import Protocol
from uuid import UUID

from circulation.core.exceptions import (
    NotFoundError,
    ReservationConflictError,
    ReservationStateError,
)
from circulation.models.book import Book
from circulation.models.enums import BookCondition
from circulation.models.reservation import Reservation
from circulation.models.transaction import Transaction
from circulation.repositories.ports import LendingStores
from circulation.schemas.book import (
    BookAvailabilityStatus,
    BorrowingEligibility,
    BorrowingOptions,
)
from circulation.services.eligibility import evaluate_borrow, evaluate_reservation
from circulation.services.loan import LoanService
from circulation.services.notification import NotificationTrigger
from circulation.services.reservation import ReservationService

logger = logging.getLogger(__name__)


class FulfillmentDispatcher(Protocol):
    """Destino dos livros devolvidos (worker ou execução direta em testes)."""

    def submit(self, book_id: UUID) -> None: ...


class FulfillmentCoordinator:
    """Empréstimo e devolução cientes da fila de reservas."""

    def __init__(
        self,
        stores: LendingStores,
        loans: LoanService,
        reservations: ReservationService,
        dispatcher: FulfillmentDispatcher | None = None,
        notifier: NotificationTrigger | None = None,
    ):
        self.stores = stores
        self.loans = loans
        self.reservations = reservations
        self.dispatcher = dispatcher
        self.notifier = notifier

    # ==========================================
    # Borrow / Return
    # ==========================================

    async def borrow_book(
        self,
        student_id: UUID,
        book_id: UUID,
        librarian_id: UUID | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """
        Empréstimo respeitando a fila de reservas.

        Raises:
            ReservationConflictError: Livro reservado por outro estudante
            (demais erros vêm de LoanService.borrow_book)
        """
        claim = await self.reservations.has_student_fulfilled_reservation(student_id, book_id)
        if claim is not None:
            logger.info(f"Estudante {student_id} retira livro {book_id} pela reserva {claim.id}")
            return await self.loans.borrow_book(student_id, book_id, librarian_id, notes)

        next_reservation = await self.reservations.get_next_reservation_for_book(book_id)
        if next_reservation is not None and next_reservation.student_id != student_id:
            raise ReservationConflictError(
                "Livro reservado por outro estudante. Entre na fila de reservas."
            )

        book = await self._get_book(book_id)
        claimed = await self._claims_of_others(book_id, student_id)
        if claimed and book.available_copies <= claimed:
            raise ReservationConflictError(
                "As cópias disponíveis estão separadas para reservas atendidas"
            )

        if next_reservation is None:
            return await self.loans.borrow_book(student_id, book_id, librarian_id, notes)

        # Reserva do próprio estudante na frente da fila: atende e empresta juntos
        async with self.stores.boundary.atomic():
            await self.reservations.fulfill_reservation(next_reservation.id)
            return await self.loans.borrow_book(student_id, book_id, librarian_id, notes)

    async def return_book(
        self,
        transaction_id: UUID,
        condition: str | BookCondition = BookCondition.GOOD,
        condition_notes: str | None = None,
    ) -> Transaction:
        """
        Devolução seguida do envio do livro ao atendimento de reservas.

        A devolução já está confirmada quando o livro é enviado ao
        dispatcher; o atendimento roda fora da requisição.
        """
        transaction = await self.loans.return_book(transaction_id, condition, condition_notes)
        if self.dispatcher is not None:
            self.dispatcher.submit(transaction.book_id)
        return transaction

    # ==========================================
    # Fulfillment
    # ==========================================

    async def fulfill_next_for_book(self, book_id: UUID) -> Reservation | None:
        """
        Atende a próxima reserva do livro, se houver cópia livre.

        Idempotente: só atende enquanto available_copies for maior que o
        número de reservas atendidas não retiradas. Reexecutar depois de
        sucesso não atende ninguém a mais.

        A contagem de reservas separadas, a escolha do início da fila e a
        transição rodam em uma única unidade atômica com o livro bloqueado
        (get_book_for_update): execuções concorrentes para o mesmo livro
        (worker, varredura, outra instância) são serializadas.

        Returns:
            Reserva atendida, ou None se não havia o que fazer
        """
        async with self.stores.boundary.atomic():
            book = await self.stores.catalog.get_book_for_update(book_id)
            if book is None:
                logger.warning(f"Atendimento ignorado: livro {book_id} não encontrado")
                return None

            claims = await self.reservations.list_outstanding_claims(book_id)
            if book.available_copies <= len(claims):
                return None

            next_reservation = await self.reservations.get_next_reservation_for_book(book_id)
            if next_reservation is None:
                return None

            try:
                fulfilled = await self.reservations.fulfill_reservation(next_reservation.id)
            except ReservationStateError:
                logger.info(
                    f"Reserva {next_reservation.id} saiu da fila antes do atendimento "
                    f"(livro {book_id})"
                )
                return None

        if self.notifier is not None:
            await self.notifier.book_available(fulfilled)
        return fulfilled

    async def fulfill_pending_for_book(self, book_id: UUID) -> list[Reservation]:
        """Atende reservas do livro enquanto houver cópia livre e fila."""
        fulfilled: list[Reservation] = []
        while True:
            reservation = await self.fulfill_next_for_book(book_id)
            if reservation is None:
                return fulfilled
            fulfilled.append(reservation)

    async def retry_pending_fulfillments(self) -> list[Reservation]:
        """
        Varre todos os livros com fila e atende o que for possível.

        Recupera reservas presas quando um atendimento assíncrono falhou.
        """
        fulfilled: list[Reservation] = []
        for book_id in await self.stores.reservations.list_books_with_active():
            fulfilled.extend(await self.fulfill_pending_for_book(book_id))

        if fulfilled:
            logger.info(f"Varredura de atendimento: {len(fulfilled)} reserva(s) atendida(s)")
        return fulfilled

    async def fulfill_reservation(self, reservation_id: UUID) -> Reservation:
        """
        Atendimento manual de uma reserva, com notificação ao estudante.

        Raises:
            NotFoundError: Reserva inexistente
            ReservationStateError: Reserva já em estado final
        """
        fulfilled = await self.reservations.fulfill_reservation(reservation_id)
        if self.notifier is not None:
            await self.notifier.book_available(fulfilled)
        return fulfilled

    async def expire_reservations(self) -> tuple[int, list[Reservation]]:
        """
        Expira reservas vencidas e reprocessa as filas.

        Uma reserva atendida e não retirada dentro da janela deixa de separar
        a cópia; a varredura seguinte entrega essa cópia ao próximo da fila.

        Returns:
            (reservas expiradas, reservas atendidas na varredura)
        """
        expired = await self.reservations.expire_reservations()
        fulfilled = await self.retry_pending_fulfillments()
        return expired, fulfilled

    # ==========================================
    # Eligibility checks
    # ==========================================

    async def can_student_borrow_book(
        self,
        student_id: UUID,
        book_id: UUID,
    ) -> BorrowingEligibility:
        """
        Verifica se o estudante pode pegar o livro agora, sem alterar nada.

        Raises:
            NotFoundError: Estudante ou livro inexistente
        """
        student = await self.stores.people.get_student(student_id)
        if student is None:
            raise NotFoundError("Estudante não encontrado")
        book = await self._get_book(book_id)

        eligibility = BorrowingEligibility(
            student_id=student_id,
            book_id=book_id,
            can_borrow=False,
        )

        active_loans = await self.stores.loans.list_open_by_student(student_id)
        rejection = evaluate_borrow(
            student, book, active_loans, book_id, self.loans.policy, self.loans.clock()
        )
        if rejection is not None:
            eligibility.reasons.append(rejection.message)
            return eligibility

        claim = await self.reservations.has_student_fulfilled_reservation(student_id, book_id)
        if claim is not None:
            eligibility.has_reservation_for_student = True
            eligibility.reservation_id = claim.id
            eligibility.can_borrow = True
            return eligibility

        next_reservation = await self.reservations.get_next_reservation_for_book(book_id)
        if next_reservation is not None and next_reservation.student_id != student_id:
            eligibility.reasons.append("Livro reservado por outro estudante")
            eligibility.has_reservation_conflict = True
            eligibility.next_reservation_id = next_reservation.id
            return eligibility

        claimed = await self._claims_of_others(book_id, student_id)
        if claimed and book.available_copies <= claimed:
            eligibility.reasons.append(
                "As cópias disponíveis estão separadas para reservas atendidas"
            )
            eligibility.has_reservation_conflict = True
            return eligibility

        if next_reservation is not None:
            eligibility.has_reservation_for_student = True
            eligibility.reservation_id = next_reservation.id

        eligibility.can_borrow = True
        return eligibility

    async def get_borrowing_options(
        self,
        student_id: UUID,
        book_id: UUID,
    ) -> BorrowingOptions:
        """Eligibility com a orientação de reservar quando fizer sentido."""
        eligibility = await self.can_student_borrow_book(student_id, book_id)

        student = await self.stores.people.get_student(student_id)
        book = await self._get_book(book_id)
        active_count = await self.stores.reservations.count_active_by_student(student_id)
        existing = await self.stores.reservations.get_active_for_pair(student_id, book_id)
        can_reserve = evaluate_reservation(
            student, book, active_count, existing is not None, self.reservations.policy
        ) is None

        if eligibility.has_reservation_conflict:
            message = "Livro reservado para outro estudante. Entre na fila de reservas."
            should_reserve = True
        elif eligibility.has_reservation_for_student:
            message = "Você tem uma reserva deste livro. O empréstimo atende sua reserva."
            should_reserve = False
        elif eligibility.can_borrow:
            message = "Livro disponível para empréstimo."
            should_reserve = False
        else:
            should_reserve = can_reserve
            message = (
                "Livro indisponível. Você pode entrar na fila de reservas."
                if can_reserve
                else "Empréstimo não permitido."
            )

        return BorrowingOptions(
            **eligibility.model_dump(),
            should_reserve=should_reserve,
            can_reserve=can_reserve,
            message=message,
        )

    async def get_book_availability_status(self, book_id: UUID) -> BookAvailabilityStatus:
        """
        Situação de cópias e fila de um livro.

        Raises:
            NotFoundError: Livro inexistente
        """
        book = await self._get_book(book_id)
        queue = await self.stores.reservations.list_active_by_book(book_id)
        claims = await self.reservations.list_outstanding_claims(book_id)
        head = queue[0] if queue else None

        return BookAvailabilityStatus(
            book_id=book.id,
            title=book.title,
            is_active=book.is_active,
            condition=book.condition,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            borrowed_copies=book.total_copies - book.available_copies,
            claimed_copies=len(claims),
            active_reservations=len(queue),
            next_reservation_id=head.id if head else None,
            next_reservation_student_id=head.student_id if head else None,
            is_available=book.is_active and book.available_copies > len(claims),
        )

    # ==========================================
    # Helpers
    # ==========================================

    async def _get_book(self, book_id: UUID) -> Book:
        book = await self.stores.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError("Livro não encontrado")
        return book

    async def _claims_of_others(self, book_id: UUID, student_id: UUID) -> int:
        claims = await self.reservations.list_outstanding_claims(book_id)
        return sum(1 for claim in claims if claim.student_id != student_id)
