"""
Service para a fila de reservas.

Regras de negócio:
    - Reserva só é permitida se NÃO há cópia disponível
    - Fila FIFO por (reserved_at, id); a posição é calculada na leitura
    - Reserva expira reservation_window_days depois de entrar na fila
    - Estados finais (fulfilled, cancelled, expired) são imutáveis: toda
      transição é um UPDATE condicional a status='active'
    - Reserva atendida dá prioridade, não move cópias: o estudante ainda
      precisa pegar o livro emprestado
"""

import logging
from datetime import timedelta
from uuid import UUID

from circulation.core.clock import Clock, utcnow
from circulation.core.exceptions import NotFoundError, ReservationStateError
from circulation.models.enums import ReservationStatus
from circulation.models.reservation import Reservation
from circulation.repositories.ports import LendingStores
from circulation.schemas.policy import DEFAULT_POLICY, LendingPolicy
from circulation.schemas.reservation import ReservationDetail
from circulation.services.eligibility import evaluate_reservation

logger = logging.getLogger(__name__)


class ReservationService:
    """Service para operações de Reservation."""

    def __init__(
        self,
        stores: LendingStores,
        policy: LendingPolicy = DEFAULT_POLICY,
        clock: Clock = utcnow,
    ):
        self.stores = stores
        self.policy = policy
        self.clock = clock

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.policy.reservation_window_days)

    # ==========================================
    # Create
    # ==========================================

    async def reserve_book(self, student_id: UUID, book_id: UUID) -> ReservationDetail:
        """
        Coloca o estudante na fila do livro.

        Returns:
            ReservationDetail com a posição na fila

        Raises:
            NotFoundError: Estudante ou livro inexistente
            UnavailableError: Há cópia disponível (deve emprestar)
            InactiveEntityError, QuotaExceededError,
            DuplicateReservationError: Regra de reserva violada
        """
        student = await self.stores.people.get_student(student_id)
        if student is None:
            raise NotFoundError("Estudante não encontrado")

        book = await self.stores.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError("Livro não encontrado")

        active_count = await self.stores.reservations.count_active_by_student(student_id)
        existing = await self.stores.reservations.get_active_for_pair(student_id, book_id)
        rejection = evaluate_reservation(
            student, book, active_count, existing is not None, self.policy
        )
        if rejection is not None:
            raise rejection

        now = self.clock()
        reservation = Reservation(
            student_id=student_id,
            book_id=book_id,
            reserved_at=now,
            expires_at=now + self.window,
            status=ReservationStatus.ACTIVE,
        )
        async with self.stores.boundary.atomic():
            reservation = await self.stores.reservations.add(reservation)

        position = await self.get_queue_position(reservation)
        logger.info(
            f"Reserva {reservation.id}: estudante {student_id} livro {book_id} "
            f"posição {position}"
        )
        return ReservationDetail.from_reservation(reservation, position)

    # ==========================================
    # Queue
    # ==========================================

    async def get_queue_position(self, reservation: Reservation) -> int | None:
        """Posição 1-based na fila do livro (None se não está active)."""
        if not reservation.is_active:
            return None
        queue = await self.stores.reservations.list_active_by_book(reservation.book_id)
        for position, queued in enumerate(queue, start=1):
            if queued.id == reservation.id:
                return position
        return None

    async def get_next_reservation_for_book(self, book_id: UUID) -> Reservation | None:
        """Primeira reserva active da fila, ou None."""
        return await self.stores.reservations.get_next_active_by_book(book_id)

    async def get_next_reservation_detail(self, book_id: UUID) -> ReservationDetail:
        """
        Início da fila do livro (posição 1).

        Raises:
            NotFoundError: Fila vazia
        """
        reservation = await self.get_next_reservation_for_book(book_id)
        if reservation is None:
            raise NotFoundError("Nenhuma reserva ativa para este livro")
        return ReservationDetail.from_reservation(reservation, 1)

    # ==========================================
    # Transitions
    # ==========================================

    async def cancel_reservation(self, reservation_id: UUID) -> Reservation:
        """
        active -> cancelled.

        Raises:
            NotFoundError: Reserva inexistente
            ReservationStateError: Reserva já em estado final
        """
        reservation = await self._transition(reservation_id, ReservationStatus.CANCELLED)
        logger.info(f"Reserva {reservation_id} cancelada")
        return reservation

    async def fulfill_reservation(self, reservation_id: UUID) -> Reservation:
        """
        active -> fulfilled, registrando fulfilled_at.

        Não altera cópias. Repetir a chamada nunca tem efeito duplo: a
        segunda tentativa falha com ReservationStateError.
        """
        reservation = await self._transition(
            reservation_id,
            ReservationStatus.FULFILLED,
            fulfilled_at=self.clock(),
        )
        logger.info(
            f"Reserva {reservation_id} atendida: estudante {reservation.student_id} "
            f"livro {reservation.book_id}"
        )
        return reservation

    async def expire_reservations(self) -> int:
        """
        Expira as reservas active com expires_at no passado.

        Returns:
            Quantidade de reservas expiradas
        """
        async with self.stores.boundary.atomic():
            expired_ids = await self.stores.reservations.expire_due(self.clock())

        if expired_ids:
            logger.info(f"{len(expired_ids)} reserva(s) expirada(s)")
        return len(expired_ids)

    async def _transition(
        self,
        reservation_id: UUID,
        new_status: ReservationStatus,
        **values,
    ) -> Reservation:
        reservation = await self.stores.reservations.get(reservation_id)
        if reservation is None:
            raise NotFoundError("Reserva não encontrada")
        if reservation.is_terminal:
            raise ReservationStateError(f"Reserva já está {reservation.status.value}")

        async with self.stores.boundary.atomic():
            updated = await self.stores.reservations.transition(
                reservation_id, new_status, **values
            )
            if updated is None:
                raise ReservationStateError("Reserva não está mais ativa")
        return updated

    # ==========================================
    # Claims
    # ==========================================

    async def has_student_fulfilled_reservation(
        self,
        student_id: UUID,
        book_id: UUID,
    ) -> Reservation | None:
        """
        Reserva atendida do estudante ainda não retirada.

        Vale dentro da janela de reserva a partir de fulfilled_at e até o
        primeiro empréstimo do livro pelo estudante.
        """
        claims = await self.stores.reservations.list_unclaimed_fulfilled(
            book_id, self.clock() - self.window, student_id
        )
        return claims[0] if claims else None

    async def list_outstanding_claims(self, book_id: UUID) -> list[Reservation]:
        """Reservas atendidas do livro ainda não retiradas (cópias separadas)."""
        return await self.stores.reservations.list_unclaimed_fulfilled(
            book_id, self.clock() - self.window
        )

    # ==========================================
    # Queries
    # ==========================================

    async def get_reservation(self, reservation_id: UUID) -> ReservationDetail:
        """
        Busca reserva com posição na fila.

        Raises:
            NotFoundError: Reserva não encontrada
        """
        reservation = await self.stores.reservations.get(reservation_id)
        if reservation is None:
            raise NotFoundError("Reserva não encontrada")
        position = await self.get_queue_position(reservation)
        return ReservationDetail.from_reservation(reservation, position)

    async def get_student_reservations(
        self,
        student_id: UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ReservationDetail]:
        reservations = await self.stores.reservations.list_by_student(student_id, limit, offset)
        details = []
        for reservation in reservations:
            position = await self.get_queue_position(reservation)
            details.append(ReservationDetail.from_reservation(reservation, position))
        return details

    async def get_book_reservations(self, book_id: UUID) -> list[ReservationDetail]:
        """Fila active do livro, em ordem, com posições."""
        queue = await self.stores.reservations.list_active_by_book(book_id)
        return [
            ReservationDetail.from_reservation(reservation, position)
            for position, reservation in enumerate(queue, start=1)
        ]

    async def get_all_reservations(
        self,
        limit: int = 20,
        offset: int = 0,
        status: ReservationStatus | None = None,
    ) -> list[ReservationDetail]:
        """Todas as reservas, mais recentes primeiro, opcionalmente por status."""
        reservations = await self.stores.reservations.list_all(limit, offset, status)
        details = []
        for reservation in reservations:
            position = await self.get_queue_position(reservation)
            details.append(ReservationDetail.from_reservation(reservation, position))
        return details
