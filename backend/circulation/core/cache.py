"""
Cache de disponibilidade usando Redis.

Configurável via variáveis de ambiente:
    - CACHE_ENABLED: bool (default: True) - Habilita/desabilita cache
    - CACHE_AVAILABILITY_TTL_SECONDS: int (default: 15) - TTL do cache

Uso:
    cache = CacheService()

    data = await cache.get_availability(book_id)
    if data:
        return data

    status = await coordinator.get_book_availability_status(book_id)
    await cache.set_availability(book_id, status.model_dump(mode="json"))

Invalidação (empréstimo, devolução, reserva, atendimento):
    await cache.invalidate_availability(book_id)

Erros de Redis nunca propagam: o cache é apenas um atalho de leitura.
"""

import json
import logging
from typing import Optional
from uuid import UUID

from circulation.core.config import get_settings
from circulation.db import redis as redis_db

logger = logging.getLogger(__name__)
settings = get_settings()


class CacheService:
    """Cache de GET /books/{id}/availability."""

    PREFIX_AVAILABILITY = "cache:availability"

    def __init__(self, ttl: Optional[int] = None, enabled: Optional[bool] = None):
        """
        Args:
            ttl: TTL padrão em segundos (default: config)
            enabled: Sobrescreve CACHE_ENABLED
        """
        self.ttl = ttl or settings.CACHE_AVAILABILITY_TTL_SECONDS
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled

    def _client(self):
        if not self.enabled:
            return None
        return redis_db.get_redis_client()

    def _key(self, book_id: UUID) -> str:
        return f"{self.PREFIX_AVAILABILITY}:{book_id}"

    async def get_availability(self, book_id: UUID) -> Optional[dict]:
        """Retorna o status em cache ou None."""
        client = self._client()
        if client is None:
            return None

        try:
            data = await client.get(self._key(book_id))
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            logger.warning(f"Erro ao buscar cache availability: {e}")
            return None

    async def set_availability(
        self,
        book_id: UUID,
        data: dict,
        ttl: Optional[int] = None,
    ) -> bool:
        client = self._client()
        if client is None:
            return False

        try:
            await client.setex(
                self._key(book_id),
                ttl or self.ttl,
                json.dumps(data, default=str),
            )
            return True
        except Exception as e:
            logger.warning(f"Erro ao salvar cache availability: {e}")
            return False

    async def invalidate_availability(self, *book_ids: UUID) -> bool:
        """Remove o status em cache dos livros informados."""
        client = self._client()
        if client is None or not book_ids:
            return False

        try:
            await client.delete(*(self._key(book_id) for book_id in book_ids))
            return True
        except Exception as e:
            logger.warning(f"Erro ao invalidar cache availability: {e}")
            return False
