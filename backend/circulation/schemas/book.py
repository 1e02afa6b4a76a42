"""
Schemas Pydantic de disponibilidade e opções de empréstimo.
"""

from uuid import UUID

from pydantic import Field

from circulation.models.enums import BookCondition
from circulation.schemas.base import BaseSchema


class BookAvailabilityStatus(BaseSchema):
    """
    Situação de um livro para a tela de balcão.

    claimed_copies são cópias na prateleira reservadas para estudantes com
    reserva atendida ainda não retirada.
    """
    book_id: UUID
    title: str
    is_active: bool
    condition: BookCondition
    total_copies: int
    available_copies: int
    borrowed_copies: int
    claimed_copies: int = 0
    active_reservations: int = 0
    next_reservation_id: UUID | None = None
    next_reservation_student_id: UUID | None = None
    is_available: bool


class BorrowingEligibility(BaseSchema):
    """Resultado da consulta de empréstimo com reservas (sem efeitos)."""
    student_id: UUID
    book_id: UUID
    can_borrow: bool
    reasons: list[str] = Field(default_factory=list)
    has_reservation_conflict: bool = False
    has_reservation_for_student: bool = False
    reservation_id: UUID | None = None
    next_reservation_id: UUID | None = None


class BorrowingOptions(BorrowingEligibility):
    """Eligibility acrescida da orientação ao estudante."""
    should_reserve: bool = False
    can_reserve: bool = False
    message: str
