"""
Montagem das portas de persistência sobre uma AsyncSession.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.repositories.book import BookRepository
from circulation.repositories.person import PersonRepository
from circulation.repositories.ports import LendingStores
from circulation.repositories.reservation import ReservationRepository
from circulation.repositories.transaction import TransactionRepository


class SessionBoundary:
    """
    TransactionBoundary sobre uma AsyncSession.

    O nível mais externo de atomic() faz commit ou rollback; níveis
    internos apenas participam da mesma transação.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._depth = 0

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        self._depth += 1
        outermost = self._depth == 1
        try:
            yield
            if outermost:
                await self.db.commit()
        except BaseException:
            # Inclui CancelledError: timeout do chamador não deixa escrita parcial
            if outermost:
                await self.db.rollback()
            raise
        finally:
            self._depth -= 1


def build_sql_stores(db: AsyncSession) -> LendingStores:
    """Cria as portas SQLAlchemy compartilhando a mesma sessão."""
    return LendingStores(
        catalog=BookRepository(db),
        people=PersonRepository(db),
        loans=TransactionRepository(db),
        reservations=ReservationRepository(db),
        boundary=SessionBoundary(db),
    )
