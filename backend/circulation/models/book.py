"""
Model de livro (catálogo).

O catálogo é uma entidade externa ao motor de circulação: o motor só lê
o livro e ajusta available_copies/condition através do CatalogAccessor.
"""

from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.session import Base
from circulation.models.base import UUIDMixin, TimestampMixin
from circulation.models.enums import BookCondition

if TYPE_CHECKING:
    from circulation.models.transaction import Transaction
    from circulation.models.reservation import Reservation


class Book(Base, UUIDMixin, TimestampMixin):
    """
    Livro com contadores de cópias.

    Invariante: 0 <= available_copies <= total_copies (também garantido
    por CHECK no banco).

    Attributes:
        id: UUID único do livro
        title: Título
        author: Autor
        total_copies: Quantidade de cópias físicas
        available_copies: Cópias na prateleira
        is_active: Livro disponível para circulação
        condition: Pior condição registrada em devoluções
    """
    __tablename__ = "books"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    condition: Mapped[BookCondition] = mapped_column(
        SQLEnum(
            BookCondition,
            name="book_condition",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=BookCondition.GOOD,
    )

    # Relationships
    transactions: Mapped[List["Transaction"]] = relationship(
        "Transaction",
        back_populates="book",
        lazy="noload",
    )
    reservations: Mapped[List["Reservation"]] = relationship(
        "Reservation",
        back_populates="book",
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint("total_copies >= 0", name="ck_books_total_copies"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    def __repr__(self) -> str:
        return f"<Book {self.title} ({self.available_copies}/{self.total_copies})>"
