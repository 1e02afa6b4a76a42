"""
Fixtures compartilhadas para testes.

Os services rodam sobre os fakes em memória de tests/fakes.py e um
relógio congelado, sem PostgreSQL nem Redis.
"""

import uuid
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

from circulation.core.cache import CacheService
from circulation.core.deps import (
    get_cache,
    get_fulfillment_dispatcher,
    get_notifier,
    get_stores,
)
from circulation.main import app
from circulation.models import Book, BookCondition, Librarian, Student
from circulation.schemas.policy import LendingPolicy
from circulation.services.fulfillment import FulfillmentCoordinator
from circulation.services.loan import LoanService
from circulation.services.notification import NotificationTrigger
from circulation.services.reservation import ReservationService

from tests.fakes import FakeDatabase, FrozenClock, RecordingDispatcher, build_fake_stores


# ==========================================
# Event loop configuration
# ==========================================

@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# ==========================================
# Storage fixtures
# ==========================================

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def stores(fake_db):
    return build_fake_stores(fake_db)


@pytest.fixture
def policy() -> LendingPolicy:
    return LendingPolicy()


@pytest.fixture
def make_student(fake_db):
    """Factory de estudantes gravados no banco fake."""

    def _make(year_of_study: int = 1, is_active: bool = True) -> Student:
        student = Student(
            id=uuid.uuid4(),
            student_code=f"STU{uuid.uuid4().hex[:8].upper()}",
            first_name="Test",
            last_name="Student",
            year_of_study=year_of_study,
            is_active=is_active,
        )
        fake_db.students[student.id] = student
        return student

    return _make


@pytest.fixture
def make_book(fake_db):
    """Factory de livros; available_copies default = total_copies."""

    def _make(
        total_copies: int = 1,
        available_copies: int | None = None,
        is_active: bool = True,
        condition: BookCondition = BookCondition.GOOD,
        title: str = "Test Book",
    ) -> Book:
        book = Book(
            id=uuid.uuid4(),
            title=title,
            author="Test Author",
            total_copies=total_copies,
            available_copies=total_copies if available_copies is None else available_copies,
            is_active=is_active,
            condition=condition,
        )
        fake_db.books[book.id] = book
        return book

    return _make


@pytest.fixture
def librarian(fake_db) -> Librarian:
    librarian = Librarian(
        id=uuid.uuid4(),
        name="Test Librarian",
        email="librarian@example.com",
        is_active=True,
    )
    fake_db.librarians[librarian.id] = librarian
    return librarian


# ==========================================
# Service fixtures
# ==========================================

@pytest.fixture
def loan_service(stores, policy, clock) -> LoanService:
    return LoanService(stores, policy, clock)


@pytest.fixture
def reservation_service(stores, policy, clock) -> ReservationService:
    return ReservationService(stores, policy, clock)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def coordinator(stores, loan_service, reservation_service, dispatcher) -> FulfillmentCoordinator:
    return FulfillmentCoordinator(stores, loan_service, reservation_service, dispatcher)


# ==========================================
# HTTP Client fixtures
# ==========================================

@pytest.fixture
async def client(stores, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """
    Cliente HTTP assíncrono para testes.

    Substitui as portas SQL pelos fakes, desliga cache e notificações e
    registra os livros enviados ao atendimento de reservas.
    """
    app.dependency_overrides[get_stores] = lambda: stores
    app.dependency_overrides[get_fulfillment_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_cache] = lambda: CacheService(enabled=False)
    app.dependency_overrides[get_notifier] = lambda: NotificationTrigger(enabled=False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Limpar override após o teste
    app.dependency_overrides.clear()
