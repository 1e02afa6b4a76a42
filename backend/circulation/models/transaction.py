"""
Model de transação de empréstimo.

Uma renovação é uma NOVA linha (type=renew) que aponta para a linha que
ela estende (renewed_from_id); a linha anterior recebe superseded_at.
O histórico é append-only e o "empréstimo atual" é a linha aberta da
cadeia: returned_date IS NULL AND superseded_at IS NULL.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    Text,
    Enum as SQLEnum,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.core.clock import as_utc
from circulation.db.session import Base
from circulation.models.base import UUIDMixin, TimestampMixin
from circulation.models.enums import BookCondition, TransactionType

if TYPE_CHECKING:
    from circulation.models.book import Book
    from circulation.models.person import Student


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Transaction(Base, UUIDMixin, TimestampMixin):
    """
    Evento de empréstimo (borrow) ou renovação (renew).

    Attributes:
        id: UUID único da transação
        student_id: FK para o estudante
        book_id: FK para o livro
        transaction_type: borrow ou renew
        transaction_date: Data/hora da operação
        due_date: Data de devolução prevista
        returned_date: Data/hora da devolução (null enquanto aberta)
        librarian_id: Quem processou a operação
        fine_amount: Multa calculada na devolução (2 casas decimais)
        fine_paid: Multa quitada
        return_condition: Condição informada na devolução
        condition_notes: Observações da devolução
        notes: Observações da operação
        renewed_from_id: Linha que esta renovação estende
        superseded_at: Quando uma renovação substituiu esta linha
    """
    __tablename__ = "transactions"

    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="RESTRICT"),
        nullable=False,
    )
    book_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("books.id", ondelete="RESTRICT"),
        nullable=False,
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SQLEnum(
            TransactionType,
            name="transaction_type",
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    due_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    returned_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    librarian_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("librarians.id", ondelete="SET NULL"),
        nullable=True,
    )
    fine_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    fine_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    return_condition: Mapped[Optional[BookCondition]] = mapped_column(
        SQLEnum(
            BookCondition,
            name="book_condition",
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    condition_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    renewed_from_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
    )
    superseded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    student: Mapped["Student"] = relationship(
        "Student",
        back_populates="transactions",
        lazy="noload",
    )
    book: Mapped["Book"] = relationship(
        "Book",
        back_populates="transactions",
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint("fine_amount >= 0", name="ck_transactions_fine_amount"),
        Index("ix_transactions_student_id", "student_id"),
        Index("ix_transactions_book_id", "book_id"),
        Index("ix_transactions_type", "transaction_type"),
        # Empréstimos abertos de um estudante / de um par estudante+livro
        Index(
            "ix_transactions_open",
            "student_id",
            "book_id",
            postgresql_where=text("returned_date IS NULL AND superseded_at IS NULL"),
        ),
        # Empréstimos atrasados
        Index("ix_transactions_overdue", "due_date", "returned_date"),
    )

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"<Transaction {self.id} {self.transaction_type.value} - {status}>"

    @property
    def is_returned(self) -> bool:
        return self.returned_date is not None

    @property
    def is_superseded(self) -> bool:
        return self.superseded_at is not None

    @property
    def is_open(self) -> bool:
        """True se esta linha é o empréstimo atual do par estudante/livro."""
        return self.returned_date is None and self.superseded_at is None

    def is_overdue(self, now: datetime) -> bool:
        """True se está aberta e o prazo já passou."""
        if not self.is_open:
            return False
        return as_utc(now) > as_utc(self.due_date)
