"""
Repository de Transaction: implementação SQLAlchemy do LoanStore.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.models.enums import BookCondition, TransactionType
from circulation.models.transaction import Transaction
from circulation.repositories.base import BaseRepository

# Linha aberta = empréstimo atual do par estudante/livro
_IS_OPEN = (Transaction.returned_date.is_(None), Transaction.superseded_at.is_(None))


class TransactionRepository(BaseRepository[Transaction]):
    """Log de transações e projeção do empréstimo atual."""

    def __init__(self, db: AsyncSession):
        super().__init__(Transaction, db)

    async def get(self, transaction_id: UUID) -> Transaction | None:
        return await self.refresh_by_id(transaction_id)

    async def list_open_by_student(self, student_id: UUID) -> list[Transaction]:
        """Empréstimos abertos de um estudante, ordenados por vencimento."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.student_id == student_id, *_IS_OPEN)
            .order_by(Transaction.due_date)
        )
        return list(result.scalars().all())

    async def get_open_for_pair(self, student_id: UUID, book_id: UUID) -> Transaction | None:
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.student_id == student_id,
                Transaction.book_id == book_id,
                *_IS_OPEN,
            )
            .order_by(Transaction.transaction_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_renewals(self, student_id: UUID, book_id: UUID) -> int:
        """Conta linhas type=renew do par estudante/livro."""
        result = await self.db.execute(
            select(func.count(Transaction.id))
            .where(
                Transaction.student_id == student_id,
                Transaction.book_id == book_id,
                Transaction.transaction_type == TransactionType.RENEW,
            )
        )
        return result.scalar_one()

    async def close(
        self,
        transaction_id: UUID,
        *,
        returned_date: datetime,
        fine_amount: Decimal,
        return_condition: BookCondition,
        condition_notes: str | None,
    ) -> Transaction | None:
        """
        Fecha a transação se ela ainda estiver aberta.

        Returns:
            Transação atualizada, ou None se outra requisição já fechou
        """
        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, *_IS_OPEN)
            .values(
                returned_date=returned_date,
                fine_amount=fine_amount,
                return_condition=return_condition,
                condition_notes=condition_notes,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            return None
        return await self.refresh_by_id(transaction_id)

    async def supersede(self, transaction_id: UUID, superseded_at: datetime) -> bool:
        """Marca a linha aberta como substituída por uma renovação."""
        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, *_IS_OPEN)
            .values(superseded_at=superseded_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def mark_fine_paid(self, transaction_id: UUID) -> Transaction | None:
        await self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id)
            .values(fine_paid=True)
            .execution_options(synchronize_session="fetch")
        )
        return await self.refresh_by_id(transaction_id)

    async def list_overdue(self, now: datetime) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.due_date < now, *_IS_OPEN)
            .order_by(Transaction.due_date)
        )
        return list(result.scalars().all())

    async def list_by_student(
        self,
        student_id: UUID,
        limit: int,
        offset: int,
    ) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.student_id == student_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_renewals(self, student_id: UUID, book_id: UUID) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.student_id == student_id,
                Transaction.book_id == book_id,
                Transaction.transaction_type == TransactionType.RENEW,
            )
            .order_by(Transaction.transaction_date.desc())
        )
        return list(result.scalars().all())

    async def renewal_statistics(self, student_id: UUID) -> tuple[int, int]:
        """
        Returns:
            Tupla (total de renovações, livros distintos renovados)
        """
        result = await self.db.execute(
            select(
                func.count(Transaction.id),
                func.count(func.distinct(Transaction.book_id)),
            )
            .where(
                Transaction.student_id == student_id,
                Transaction.transaction_type == TransactionType.RENEW,
            )
        )
        total, books = result.one()
        return int(total), int(books)
