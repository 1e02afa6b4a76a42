"""
Repository de Book: implementação SQLAlchemy do CatalogAccessor.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.models.book import Book
from circulation.models.enums import BookCondition
from circulation.repositories.base import BaseRepository


class BookRepository(BaseRepository[Book]):
    """Acesso ao catálogo com contadores protegidos por guarda."""

    def __init__(self, db: AsyncSession):
        super().__init__(Book, db)

    async def get_book(self, book_id: UUID) -> Book | None:
        return await self.refresh_by_id(book_id)

    async def get_book_for_update(self, book_id: UUID) -> Book | None:
        """
        Lê o livro com SELECT ... FOR UPDATE.

        O lock de linha vale até o commit/rollback da unidade atômica e
        serializa o atendimento de reservas do mesmo livro entre sessões.
        """
        result = await self.db.execute(
            select(Book)
            .where(Book.id == book_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def decrement_available(self, book_id: UUID) -> bool:
        """
        Retira uma cópia da prateleira.

        UPDATE books SET available_copies = available_copies - 1
        WHERE id = ? AND available_copies > 0

        Returns:
            False se não havia cópia (guarda falhou)
        """
        result = await self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_copies > 0)
            .values(available_copies=Book.available_copies - 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def increment_available(self, book_id: UUID) -> bool:
        """Devolve uma cópia à prateleira sem ultrapassar total_copies."""
        result = await self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_copies < Book.total_copies)
            .values(available_copies=Book.available_copies + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def update_condition(self, book_id: UUID, condition: BookCondition) -> None:
        await self.db.execute(
            update(Book)
            .where(Book.id == book_id)
            .values(condition=condition)
            .execution_options(synchronize_session="fetch")
        )
