"""
Módulo de repositórios - acesso a dados.
"""

from circulation.repositories.base import BaseRepository
from circulation.repositories.book import BookRepository
from circulation.repositories.person import PersonRepository
from circulation.repositories.ports import LendingStores
from circulation.repositories.reservation import ReservationRepository
from circulation.repositories.stores import SessionBoundary, build_sql_stores
from circulation.repositories.transaction import TransactionRepository

__all__ = [
    "BaseRepository",
    "BookRepository",
    "PersonRepository",
    "LendingStores",
    "ReservationRepository",
    "SessionBoundary",
    "TransactionRepository",
    "build_sql_stores",
]
