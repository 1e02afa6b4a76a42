"""
Schemas Pydantic para Reservation.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from circulation.models.enums import ReservationStatus
from circulation.schemas.base import BaseSchema


class ReservationCreate(BaseSchema):
    """Schema para criação de reserva."""
    student_id: UUID
    book_id: UUID


class ReservationRead(BaseSchema):
    """Schema para leitura de reserva."""
    id: UUID
    student_id: UUID
    book_id: UUID
    reserved_at: datetime
    expires_at: datetime
    status: ReservationStatus
    fulfilled_at: datetime | None = None


class ReservationDetail(ReservationRead):
    """Reserva com a posição na fila calculada na leitura."""
    queue_position: int | None = Field(
        None,
        description="Posição na fila (apenas para active)",
    )

    @classmethod
    def from_reservation(
        cls,
        reservation,
        queue_position: int | None = None,
    ) -> "ReservationDetail":
        """Constrói a partir de um model Reservation."""
        return cls(
            id=reservation.id,
            student_id=reservation.student_id,
            book_id=reservation.book_id,
            reserved_at=reservation.reserved_at,
            expires_at=reservation.expires_at,
            status=reservation.status,
            fulfilled_at=reservation.fulfilled_at,
            queue_position=queue_position,
        )


class ReservationCreateResponse(BaseSchema):
    """Resposta da criação de reserva."""
    reservation: ReservationDetail
    message: str


class ReservationCancelResponse(BaseSchema):
    """Resposta do cancelamento de reserva."""
    reservation: ReservationDetail
    message: str


class ReservationFulfillResponse(BaseSchema):
    """Resposta do atendimento manual."""
    reservation: ReservationDetail
    message: str


class ExpireReservationsResult(BaseSchema):
    """Resultado da varredura de expiração."""
    expired_count: int
    fulfilled_count: int = 0
    fulfilled_ids: list[UUID] = Field(default_factory=list)
    message: str


class FulfillmentSweepResult(BaseSchema):
    """Resultado do reprocessamento de reservas pendentes."""
    fulfilled_count: int
    fulfilled_ids: list[UUID] = Field(default_factory=list)
    affected_book_ids: list[UUID] = Field(
        default_factory=list,
        description="IDs dos livros afetados (para invalidação de cache)",
    )
    message: str
