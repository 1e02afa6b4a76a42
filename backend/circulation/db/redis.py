"""
Configuração de conexão com Redis para cache e gatilho de notificações.

Este módulo fornece o cliente Redis e funções utilitárias. Quem usa o
cliente deve ler `circulation.db.redis.redis_client` no momento da chamada,
pois ele só é criado no startup.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from circulation.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Cliente Redis (será inicializado no startup)
redis_client: Optional[redis.Redis] = None


async def init_redis() -> redis.Redis:
    """
    Inicializa a conexão com o Redis.

    Returns:
        Cliente Redis conectado.
    """
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )
    return redis_client


async def close_redis() -> None:
    """Fecha a conexão com o Redis."""
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None


def get_redis_client() -> Optional[redis.Redis]:
    """Retorna o cliente atual (None se Redis não foi inicializado)."""
    return redis_client


async def check_redis_connection() -> bool:
    """
    Verifica se a conexão com o Redis está funcionando.

    Returns:
        True se conectou com sucesso, False caso contrário.
    """
    try:
        if redis_client:
            await redis_client.ping()
            return True
        return False
    except Exception as e:
        logger.warning(f"Erro ao verificar conexão Redis: {e}")
        return False
