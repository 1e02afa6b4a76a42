"""
Engine e sessões PostgreSQL (SQLAlchemy async + asyncpg).

Duas formas de obter uma sessão:
    - get_db: uma sessão por requisição, fechada ao fim da resposta
    - async_session_factory: usada diretamente pelo worker de atendimento,
      que abre uma sessão própria por livro processado

As duas compartilham o mesmo pool. As unidades atômicas ficam em
repositories.SessionBoundary; aqui nada faz commit.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from circulation.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

# expire_on_commit=False: services devolvem as linhas depois do commit
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Metadata de books, students, librarians, transactions e reservations."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Sessão da requisição; transação aberta e não confirmada é descartada."""
    async with async_session_factory() as session:
        yield session


async def check_database_connection() -> tuple[bool, str | None]:
    """
    SELECT 1 pelo pool, usado no startup e no /health.

    Returns:
        (ok, mensagem de erro)
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"PostgreSQL indisponível: {e}")
        return False, str(e)
    return True, None
