"""
Dependencies FastAPI para montagem dos services.

Cada requisição recebe uma sessão própria; as portas de persistência e os
services de uma mesma requisição compartilham essa sessão (FastAPI
reaproveita dependências dentro da requisição).
"""

import asyncio
from typing import Annotated, Awaitable, TypeVar
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.cache import CacheService
from circulation.core.config import get_settings
from circulation.core.logging import get_logger
from circulation.db.session import async_session_factory, get_db
from circulation.repositories.ports import LendingStores
from circulation.repositories.stores import build_sql_stores
from circulation.schemas.policy import LendingPolicy
from circulation.services.fulfillment import FulfillmentCoordinator, FulfillmentDispatcher
from circulation.services.loan import LoanService
from circulation.services.notification import NotificationTrigger
from circulation.services.reservation import ReservationService

settings = get_settings()
logger = get_logger(__name__)

T = TypeVar("T")


async def with_timeout(operation: Awaitable[T]) -> T:
    """
    Executa uma operação síncrona da API com OPERATION_TIMEOUT_SECONDS.

    No timeout a operação é cancelada e a unidade atômica em andamento
    faz rollback.
    """
    return await asyncio.wait_for(operation, timeout=settings.OPERATION_TIMEOUT_SECONDS)


def get_policy() -> LendingPolicy:
    return settings.lending_policy()


def get_stores(db: Annotated[AsyncSession, Depends(get_db)]) -> LendingStores:
    return build_sql_stores(db)


def get_fulfillment_dispatcher(request: Request) -> FulfillmentDispatcher | None:
    """Worker criado no lifespan (None se a aplicação não o iniciou)."""
    return getattr(request.app.state, "fulfillment_worker", None)


def get_notifier() -> NotificationTrigger:
    return NotificationTrigger()


def get_cache() -> CacheService:
    return CacheService()


def get_loan_service(
    stores: Annotated[LendingStores, Depends(get_stores)],
    policy: Annotated[LendingPolicy, Depends(get_policy)],
) -> LoanService:
    return LoanService(stores, policy)


def get_reservation_service(
    stores: Annotated[LendingStores, Depends(get_stores)],
    policy: Annotated[LendingPolicy, Depends(get_policy)],
) -> ReservationService:
    return ReservationService(stores, policy)


def get_coordinator(
    stores: Annotated[LendingStores, Depends(get_stores)],
    loans: Annotated[LoanService, Depends(get_loan_service)],
    reservations: Annotated[ReservationService, Depends(get_reservation_service)],
    dispatcher: Annotated[FulfillmentDispatcher | None, Depends(get_fulfillment_dispatcher)],
    notifier: Annotated[NotificationTrigger, Depends(get_notifier)],
) -> FulfillmentCoordinator:
    return FulfillmentCoordinator(stores, loans, reservations, dispatcher, notifier)


def build_coordinator(
    db: AsyncSession,
    dispatcher: FulfillmentDispatcher | None = None,
    notifier: NotificationTrigger | None = None,
) -> FulfillmentCoordinator:
    """Monta o coordenador fora de uma requisição (worker)."""
    stores = build_sql_stores(db)
    policy = settings.lending_policy()
    return FulfillmentCoordinator(
        stores,
        LoanService(stores, policy),
        ReservationService(stores, policy),
        dispatcher,
        notifier,
    )


async def run_fulfillment_job(book_id: UUID) -> int:
    """
    Job do FulfillmentWorker: atende a fila de um livro devolvido.

    Abre uma sessão própria, independente da requisição da devolução.

    Returns:
        Quantidade de reservas atendidas
    """
    async with async_session_factory() as session:
        coordinator = build_coordinator(session, notifier=NotificationTrigger())
        fulfilled = await coordinator.fulfill_pending_for_book(book_id)

    if fulfilled:
        await CacheService().invalidate_availability(book_id)
        logger.info(f"Livro {book_id}: {len(fulfilled)} reserva(s) atendida(s) pelo worker")
    return len(fulfilled)


# Type aliases para uso nos endpoints
LoanServiceDep = Annotated[LoanService, Depends(get_loan_service)]
ReservationServiceDep = Annotated[ReservationService, Depends(get_reservation_service)]
CoordinatorDep = Annotated[FulfillmentCoordinator, Depends(get_coordinator)]
CacheDep = Annotated[CacheService, Depends(get_cache)]
