"""
Repository de pessoas: implementação SQLAlchemy do PersonAccessor.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.models.person import Librarian, Student


class PersonRepository:
    """Leitura de estudantes e bibliotecários."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_student(self, student_id: UUID) -> Student | None:
        return await self.db.get(Student, student_id)

    async def get_librarian(self, librarian_id: UUID) -> Librarian | None:
        return await self.db.get(Librarian, librarian_id)
