"""
Repository de Reservation: implementação SQLAlchemy do ReservationStore.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.exceptions import DuplicateReservationError
from circulation.models.enums import ReservationStatus, TransactionType
from circulation.models.reservation import Reservation
from circulation.models.transaction import Transaction
from circulation.repositories.base import BaseRepository

# Ordem FIFO da fila: (reserved_at, id)
_QUEUE_ORDER = (Reservation.reserved_at.asc(), Reservation.id.asc())


class ReservationRepository(BaseRepository[Reservation]):
    """Fila de reservas com transições condicionais."""

    def __init__(self, db: AsyncSession):
        super().__init__(Reservation, db)

    async def get(self, reservation_id: UUID) -> Reservation | None:
        return await self.refresh_by_id(reservation_id)

    async def add(self, reservation: Reservation) -> Reservation:
        """
        Insere a reserva.

        O índice único parcial (student_id, book_id) WHERE status='active'
        barra duplicatas criadas em paralelo.
        """
        try:
            async with self.db.begin_nested():
                self.db.add(reservation)
                await self.db.flush()
        except IntegrityError as e:
            raise DuplicateReservationError(
                "Estudante já possui uma reserva ativa para este livro"
            ) from e
        return reservation

    async def list_active_by_book(self, book_id: UUID) -> list[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .order_by(*_QUEUE_ORDER)
        )
        return list(result.scalars().all())

    async def get_next_active_by_book(self, book_id: UUID) -> Reservation | None:
        """Primeira reserva active da fila do livro."""
        result = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .order_by(*_QUEUE_ORDER)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_active_by_student(self, student_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Reservation.id))
            .where(
                Reservation.student_id == student_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
        )
        return result.scalar_one()

    async def get_active_for_pair(self, student_id: UUID, book_id: UUID) -> Reservation | None:
        result = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.student_id == student_id,
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def has_active_by_other_students(self, book_id: UUID, student_id: UUID) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    Reservation.book_id == book_id,
                    Reservation.student_id != student_id,
                    Reservation.status == ReservationStatus.ACTIVE,
                )
            )
        )
        return bool(result.scalar())

    async def transition(
        self,
        reservation_id: UUID,
        new_status: ReservationStatus,
        *,
        fulfilled_at: datetime | None = None,
    ) -> Reservation | None:
        """
        Move a reserva para new_status somente se ainda estiver active.

        Returns:
            Reserva atualizada, ou None se ela já estava em estado final
        """
        values: dict = {"status": new_status}
        if fulfilled_at is not None:
            values["fulfilled_at"] = fulfilled_at

        result = await self.db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            return None
        return await self.refresh_by_id(reservation_id)

    async def expire_due(self, now: datetime) -> list[UUID]:
        """Expira, em um único UPDATE condicional, as reservas vencidas."""
        result = await self.db.execute(
            update(Reservation)
            .where(
                Reservation.status == ReservationStatus.ACTIVE,
                Reservation.expires_at < now,
            )
            .values(status=ReservationStatus.EXPIRED)
            .returning(Reservation.id)
            .execution_options(synchronize_session=False)
        )
        return list(result.scalars().all())

    async def list_unclaimed_fulfilled(
        self,
        book_id: UUID,
        since: datetime,
        student_id: UUID | None = None,
    ) -> list[Reservation]:
        """
        Reservas fulfilled ainda não convertidas em empréstimo.

        Uma reserva atendida é "consumida" pelo primeiro borrow do mesmo
        estudante/livro feito a partir de fulfilled_at.
        """
        claimed = exists().where(
            and_(
                Transaction.student_id == Reservation.student_id,
                Transaction.book_id == Reservation.book_id,
                Transaction.transaction_type == TransactionType.BORROW,
                Transaction.transaction_date >= Reservation.fulfilled_at,
            )
        )
        query = (
            select(Reservation)
            .where(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.FULFILLED,
                Reservation.fulfilled_at >= since,
                ~claimed,
            )
            .order_by(Reservation.fulfilled_at.asc(), Reservation.id.asc())
        )
        if student_id is not None:
            query = query.where(Reservation.student_id == student_id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_by_student(
        self,
        student_id: UUID,
        limit: int,
        offset: int,
    ) -> list[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.student_id == student_id)
            .order_by(Reservation.reserved_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_all(
        self,
        limit: int,
        offset: int,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        query = select(Reservation)
        if status is not None:
            query = query.where(Reservation.status == status)
        result = await self.db.execute(
            query.order_by(Reservation.reserved_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def list_books_with_active(self) -> list[UUID]:
        """IDs de livros com fila não vazia."""
        result = await self.db.execute(
            select(Reservation.book_id)
            .where(Reservation.status == ReservationStatus.ACTIVE)
            .distinct()
        )
        return list(result.scalars().all())
