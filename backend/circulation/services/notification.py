"""
Gatilho de notificação "livro disponível".

Publica um evento no canal Redis configurado quando uma reserva é
atendida. A entrega (email, push) é feita por outro sistema que assina o
canal. Sem Redis, o evento só é registrado no log.

Falhas nunca propagam: uma notificação perdida não desfaz o atendimento.
"""

import json
import logging

from circulation.core.config import get_settings
from circulation.db import redis as redis_db
from circulation.models.reservation import Reservation

logger = logging.getLogger(__name__)
settings = get_settings()


class NotificationTrigger:
    """Publica eventos de reserva atendida."""

    def __init__(self, channel: str | None = None, enabled: bool | None = None):
        self.channel = channel or settings.NOTIFICATION_CHANNEL
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    @staticmethod
    def build_payload(reservation: Reservation) -> dict:
        return {
            "event": "book_available",
            "reservation_id": str(reservation.id),
            "student_id": str(reservation.student_id),
            "book_id": str(reservation.book_id),
            "fulfilled_at": (
                reservation.fulfilled_at.isoformat() if reservation.fulfilled_at else None
            ),
        }

    async def book_available(self, reservation: Reservation) -> bool:
        """
        Dispara o evento de livro disponível.

        Returns:
            True se o evento foi publicado no Redis
        """
        if not self.enabled:
            return False

        payload = self.build_payload(reservation)
        client = redis_db.get_redis_client()
        if client is None:
            logger.info(f"Livro disponível (sem Redis): {payload}")
            return False

        try:
            await client.publish(self.channel, json.dumps(payload))
            logger.info(
                f"Notificação publicada: reserva {reservation.id} "
                f"estudante {reservation.student_id}"
            )
            return True
        except Exception as e:
            logger.warning(f"Erro ao publicar notificação da reserva {reservation.id}: {e}")
            return False
