"""
Endpoints de Reservas.

Contratos:
    - POST /reservations: Entra na fila de um livro indisponível
    - GET /reservations: Todas as reservas (paginado, filtro por status)
    - GET /reservations/{id}: Detalhes com posição na fila
    - POST /reservations/{id}/cancel: Cancela reserva active
    - POST /reservations/{id}/fulfill: Atendimento manual de reserva active
    - GET /reservations/students/{id}: Reservas do estudante
    - GET /reservations/books/{id}: Fila active do livro
    - GET /reservations/books/{id}/next: Início da fila do livro

Cache invalidation:
    - POST /reservations, /cancel e /fulfill: invalida availability do livro

Status codes:
    - 200: Sucesso
    - 201: Criado com sucesso
    - 404: Reserva, estudante ou livro não encontrado / fila vazia
    - 409: Regra de reserva violada / reserva já finalizada
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from circulation.core.deps import (
    CacheDep,
    CoordinatorDep,
    ReservationServiceDep,
    with_timeout,
)
from circulation.models.enums import ReservationStatus
from circulation.schemas.reservation import (
    ReservationCancelResponse,
    ReservationCreate,
    ReservationCreateResponse,
    ReservationDetail,
    ReservationFulfillResponse,
)

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post(
    "",
    response_model=ReservationCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Criar reserva",
    description="Reserva só é permitida quando não há cópia disponível.",
)
async def create_reservation(
    data: ReservationCreate,
    service: ReservationServiceDep,
    cache: CacheDep,
) -> ReservationCreateResponse:
    """
    Raises:
        404: Estudante ou livro não encontrado
        409: Livro disponível, limite de reservas ou reserva duplicada
    """
    reservation = await with_timeout(service.reserve_book(data.student_id, data.book_id))
    await cache.invalidate_availability(data.book_id)
    return ReservationCreateResponse(
        reservation=reservation,
        message=f"Reserva criada. Posição na fila: {reservation.queue_position}",
    )


@router.get(
    "",
    response_model=list[ReservationDetail],
    summary="Listar reservas",
)
async def list_reservations(
    service: ReservationServiceDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: ReservationStatus | None = Query(None, alias="status"),
) -> list[ReservationDetail]:
    return await service.get_all_reservations(limit, offset, status_filter)


@router.get(
    "/students/{student_id}",
    response_model=list[ReservationDetail],
    summary="Reservas do estudante",
)
async def student_reservations(
    student_id: UUID,
    service: ReservationServiceDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> list[ReservationDetail]:
    return await service.get_student_reservations(student_id, limit, offset)


@router.get(
    "/books/{book_id}/next",
    response_model=ReservationDetail,
    summary="Próxima reserva do livro",
)
async def next_in_queue(
    book_id: UUID,
    service: ReservationServiceDep,
) -> ReservationDetail:
    """
    Raises:
        404: Nenhuma reserva active para o livro
    """
    return await service.get_next_reservation_detail(book_id)


@router.get(
    "/books/{book_id}",
    response_model=list[ReservationDetail],
    summary="Fila de reservas do livro",
)
async def book_queue(
    book_id: UUID,
    service: ReservationServiceDep,
) -> list[ReservationDetail]:
    return await service.get_book_reservations(book_id)


@router.get(
    "/{reservation_id}",
    response_model=ReservationDetail,
    summary="Detalhes da reserva",
)
async def get_reservation(
    reservation_id: UUID,
    service: ReservationServiceDep,
) -> ReservationDetail:
    return await service.get_reservation(reservation_id)


@router.post(
    "/{reservation_id}/cancel",
    response_model=ReservationCancelResponse,
    summary="Cancelar reserva",
)
async def cancel_reservation(
    reservation_id: UUID,
    service: ReservationServiceDep,
    cache: CacheDep,
) -> ReservationCancelResponse:
    """
    Raises:
        404: Reserva não encontrada
        409: Reserva já finalizada
    """
    reservation = await with_timeout(service.cancel_reservation(reservation_id))
    await cache.invalidate_availability(reservation.book_id)
    return ReservationCancelResponse(
        reservation=ReservationDetail.from_reservation(reservation),
        message="Reserva cancelada com sucesso",
    )


@router.post(
    "/{reservation_id}/fulfill",
    response_model=ReservationFulfillResponse,
    summary="Atender reserva",
    description="Atendimento manual: active -> fulfilled, sem mover cópias.",
)
async def fulfill_reservation(
    reservation_id: UUID,
    coordinator: CoordinatorDep,
    cache: CacheDep,
) -> ReservationFulfillResponse:
    """
    Raises:
        404: Reserva não encontrada
        409: Reserva já finalizada
    """
    reservation = await with_timeout(coordinator.fulfill_reservation(reservation_id))
    await cache.invalidate_availability(reservation.book_id)
    return ReservationFulfillResponse(
        reservation=ReservationDetail.from_reservation(reservation),
        message="Reserva atendida. O livro está separado para o estudante.",
    )
