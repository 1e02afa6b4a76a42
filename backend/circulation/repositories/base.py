"""
Repository base com operações genéricas.
"""

from typing import Generic, Type, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.db.session import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Repository base.

    Diferente de um CRUD com commit por método, aqui os métodos de escrita
    apenas fazem flush: quem confirma é a TransactionBoundary, para que
    várias escritas formem uma única unidade atômica.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    async def refresh_by_id(self, id: UUID) -> ModelType | None:
        """Busca registro por ID sobrescrevendo o estado no identity map."""
        return await self.db.get(self.model, id, populate_existing=True)

    async def add(self, instance: ModelType) -> ModelType:
        """Adiciona registro à unidade de trabalho atual."""
        self.db.add(instance)
        await self.db.flush()
        return instance
