"""
Models de pessoas: Student (leitor) e Librarian (quem processa a operação).
"""

from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, Integer, String, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from circulation.db.session import Base
from circulation.models.base import UUIDMixin, TimestampMixin

if TYPE_CHECKING:
    from circulation.models.transaction import Transaction
    from circulation.models.reservation import Reservation


class Student(Base, UUIDMixin, TimestampMixin):
    """
    Estudante que pega livros emprestados.

    Attributes:
        id: UUID único
        student_code: Matrícula (ex: STU2024001)
        first_name: Nome
        last_name: Sobrenome
        year_of_study: Ano de curso (define o prazo de empréstimo)
        is_active: Conta ativa
    """
    __tablename__ = "students"

    student_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    year_of_study: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    transactions: Mapped[List["Transaction"]] = relationship(
        "Transaction",
        back_populates="student",
        lazy="noload",
    )
    reservations: Mapped[List["Reservation"]] = relationship(
        "Reservation",
        back_populates="student",
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint(
            "year_of_study > 0 AND year_of_study <= 8",
            name="ck_students_year_of_study",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Student {self.student_code}>"


class Librarian(Base, UUIDMixin, TimestampMixin):
    """Bibliotecário(a) que registra empréstimos, renovações e devoluções."""
    __tablename__ = "librarians"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Librarian {self.email}>"
