"""
Endpoints de disponibilidade e elegibilidade.

Contratos:
    - GET /books/{id}/availability: Cópias e fila (com cache)
    - GET /students/{sid}/books/{bid}/borrow-eligibility: Consulta de empréstimo
    - GET /students/{sid}/books/{bid}/borrowing-options: Consulta com orientação

Cache:
    - availability usa Redis com TTL curto; invalidado por empréstimo,
      devolução, reserva e atendimento
"""

from uuid import UUID

from fastapi import APIRouter

from circulation.core.deps import CacheDep, CoordinatorDep
from circulation.schemas.book import (
    BookAvailabilityStatus,
    BorrowingEligibility,
    BorrowingOptions,
)

router = APIRouter(tags=["Availability"])


@router.get(
    "/books/{book_id}/availability",
    response_model=BookAvailabilityStatus,
    summary="Disponibilidade do livro",
)
async def book_availability(
    book_id: UUID,
    coordinator: CoordinatorDep,
    cache: CacheDep,
) -> BookAvailabilityStatus:
    """
    Retorna cópias, cópias separadas para reservas e o início da fila.

    Raises:
        404: Livro não encontrado
    """
    cached = await cache.get_availability(book_id)
    if cached:
        return BookAvailabilityStatus.model_validate(cached)

    availability = await coordinator.get_book_availability_status(book_id)
    await cache.set_availability(book_id, availability.model_dump(mode="json"))
    return availability


@router.get(
    "/students/{student_id}/books/{book_id}/borrow-eligibility",
    response_model=BorrowingEligibility,
    summary="Estudante pode pegar o livro?",
)
async def borrow_eligibility(
    student_id: UUID,
    book_id: UUID,
    coordinator: CoordinatorDep,
) -> BorrowingEligibility:
    return await coordinator.can_student_borrow_book(student_id, book_id)


@router.get(
    "/students/{student_id}/books/{book_id}/borrowing-options",
    response_model=BorrowingOptions,
    summary="Opções de empréstimo/reserva",
)
async def borrowing_options(
    student_id: UUID,
    book_id: UUID,
    coordinator: CoordinatorDep,
) -> BorrowingOptions:
    return await coordinator.get_borrowing_options(student_id, book_id)
