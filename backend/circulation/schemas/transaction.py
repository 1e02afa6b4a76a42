"""
Schemas Pydantic para Transaction (empréstimo/renovação).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from circulation.models.enums import BookCondition, TransactionType
from circulation.schemas.base import BaseSchema


class BorrowRequest(BaseSchema):
    """Schema para registrar empréstimo."""
    student_id: UUID
    book_id: UUID
    librarian_id: UUID | None = None
    notes: str | None = Field(None, max_length=1000)


class ReturnRequest(BaseSchema):
    """
    Schema para devolução.

    condition é texto livre aqui; o service valida contra BookCondition
    para responder com invalid_condition em vez de erro de schema.
    """
    condition: str = BookCondition.GOOD.value
    condition_notes: str | None = Field(None, max_length=1000)


class RenewRequest(BaseSchema):
    """Schema para renovação."""
    librarian_id: UUID | None = None


class TransactionRead(BaseSchema):
    """Schema de leitura de transação."""
    id: UUID
    student_id: UUID
    book_id: UUID
    transaction_type: TransactionType
    transaction_date: datetime
    due_date: datetime
    returned_date: datetime | None = None
    librarian_id: UUID | None = None
    fine_amount: Decimal
    fine_paid: bool
    return_condition: BookCondition | None = None
    condition_notes: str | None = None
    notes: str | None = None
    renewed_from_id: UUID | None = None
    superseded_at: datetime | None = None


class ReturnResponse(BaseSchema):
    """Resposta da devolução."""
    transaction: TransactionRead
    fine_applied: Decimal = Field(..., description="Multa aplicada (pode ser 0)")
    message: str


class RenewResponse(BaseSchema):
    """Resposta da renovação."""
    transaction: TransactionRead
    previous_transaction_id: UUID | None
    new_due_date: datetime
    message: str


class RenewalEligibility(BaseSchema):
    """Resultado da consulta de renovação."""
    transaction_id: UUID
    can_renew: bool
    reason: str


class RenewalStatistics(BaseSchema):
    """Totais de renovação de um estudante."""
    student_id: UUID
    total_renewals: int
    books_renewed: int
