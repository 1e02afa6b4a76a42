"""
Model de reserva de livros.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, DateTime, Index, Enum as SQLEnum, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.session import Base
from circulation.models.base import UUIDMixin, TimestampMixin
from circulation.models.enums import ReservationStatus

if TYPE_CHECKING:
    from circulation.models.book import Book
    from circulation.models.person import Student


class Reservation(Base, UUIDMixin, TimestampMixin):
    """
    Reserva de um livro por um estudante.

    Fluxo de estados:
        1. active: Estudante entra na fila de espera
        2. fulfilled: Cópia devolvida; estudante tem prioridade para pegar
        3. cancelled: Cancelada explicitamente
        4. expired: Venceu (expires_at) antes de ser atendida

    Regras de negócio:
        - Fila FIFO por (reserved_at, id)
        - No máximo uma reserva active por par estudante/livro
        - Transições só saem de active (UPDATE condicional)

    Attributes:
        id: UUID único da reserva
        student_id: FK para o estudante
        book_id: FK para o livro
        reserved_at: Entrada na fila
        expires_at: reserved_at + janela de reserva
        status: Status atual
        fulfilled_at: Quando foi atendida
    """
    __tablename__ = "reservations"

    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )
    book_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
    )
    reserved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    status: Mapped[ReservationStatus] = mapped_column(
        SQLEnum(
            ReservationStatus,
            name="reservation_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ReservationStatus.ACTIVE,
    )
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    student: Mapped["Student"] = relationship(
        "Student",
        back_populates="reservations",
        lazy="noload",
    )
    book: Mapped["Book"] = relationship(
        "Book",
        back_populates="reservations",
        lazy="noload",
    )

    __table_args__ = (
        Index("ix_reservations_student_id", "student_id"),
        Index("ix_reservations_status", "status"),
        # Fila de um livro ordenada por (reserved_at, id)
        Index("ix_reservations_book_queue", "book_id", "status", "reserved_at", "id"),
        # Varredura de expiração
        Index(
            "ix_reservations_expires",
            "expires_at",
            postgresql_where=text("status = 'active'"),
        ),
        # No máximo uma reserva active por estudante/livro
        Index(
            "uq_reservations_student_book_active",
            "student_id",
            "book_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Reservation {self.id} - {self.status.value}>"

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status != ReservationStatus.ACTIVE

    @property
    def queue_key(self) -> tuple[datetime, uuid.UUID]:
        """Chave de ordenação da fila (FIFO com desempate por id)."""
        return (self.reserved_at, self.id)
