"""
Models SQLAlchemy da aplicação.

Importar todos os models aqui para que o Alembic detecte as mudanças.
"""

from circulation.models.enums import BookCondition, ReservationStatus, TransactionType
from circulation.models.book import Book
from circulation.models.person import Librarian, Student
from circulation.models.transaction import Transaction
from circulation.models.reservation import Reservation

__all__ = [
    "BookCondition",
    "ReservationStatus",
    "TransactionType",
    "Book",
    "Librarian",
    "Student",
    "Transaction",
    "Reservation",
]
