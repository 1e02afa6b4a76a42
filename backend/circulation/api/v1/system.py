"""
Endpoints de Sistema (operação).

Contratos:
    - POST /system/expire-reservations: Expira reservas vencidas
    - POST /system/process-fulfillments: Reprocessa atendimentos pendentes
    - GET /system/fulfillment-failures: Falhas recentes do worker

Cache invalidation:
    - POST /system/expire-reservations: invalida availability dos livros atendidos
    - POST /system/process-fulfillments: invalida availability dos livros atendidos

Sem autenticação aqui: o acesso a estas rotas é controlado fora da aplicação.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from circulation.core.deps import CacheDep, CoordinatorDep
from circulation.schemas.reservation import ExpireReservationsResult, FulfillmentSweepResult

router = APIRouter(prefix="/system", tags=["System"])


class FulfillmentFailureRead(BaseModel):
    """Falha registrada pelo worker de atendimento."""

    book_id: UUID
    attempts: int
    error: str
    failed_at: datetime


@router.post(
    "/expire-reservations",
    response_model=ExpireReservationsResult,
    summary="Expirar reservas vencidas",
    description="Expira reservas vencidas e repassa cópias de reservas atendidas não retiradas.",
)
async def expire_reservations(
    coordinator: CoordinatorDep,
    cache: CacheDep,
) -> ExpireReservationsResult:
    """
    Move para expired toda reserva active com expires_at no passado e
    reprocessa as filas: cópias separadas para reservas atendidas cuja
    janela venceu passam ao próximo da fila.
    """
    expired, fulfilled = await coordinator.expire_reservations()
    book_ids = list(dict.fromkeys(reservation.book_id for reservation in fulfilled))
    await cache.invalidate_availability(*book_ids)

    return ExpireReservationsResult(
        expired_count=expired,
        fulfilled_count=len(fulfilled),
        fulfilled_ids=[reservation.id for reservation in fulfilled],
        message=f"{expired} reserva(s) expirada(s), {len(fulfilled)} atendida(s)",
    )


@router.post(
    "/process-fulfillments",
    response_model=FulfillmentSweepResult,
    summary="Reprocessar atendimentos",
    description="Atende reservas de todos os livros com fila e cópia livre.",
)
async def process_fulfillments(
    coordinator: CoordinatorDep,
    cache: CacheDep,
) -> FulfillmentSweepResult:
    """
    Recupera reservas que ficaram active porque o atendimento assíncrono
    falhou ou não rodou.
    """
    fulfilled = await coordinator.retry_pending_fulfillments()
    book_ids = list(dict.fromkeys(reservation.book_id for reservation in fulfilled))
    await cache.invalidate_availability(*book_ids)

    return FulfillmentSweepResult(
        fulfilled_count=len(fulfilled),
        fulfilled_ids=[reservation.id for reservation in fulfilled],
        affected_book_ids=book_ids,
        message=f"{len(fulfilled)} reserva(s) atendida(s)",
    )


@router.get(
    "/fulfillment-failures",
    response_model=list[FulfillmentFailureRead],
    summary="Falhas do worker de atendimento",
)
async def fulfillment_failures(request: Request) -> list[FulfillmentFailureRead]:
    worker = getattr(request.app.state, "fulfillment_worker", None)
    if worker is None:
        return []
    return [
        FulfillmentFailureRead(
            book_id=failure.book_id,
            attempts=failure.attempts,
            error=failure.error,
            failed_at=failure.failed_at,
        )
        for failure in worker.failures
    ]
