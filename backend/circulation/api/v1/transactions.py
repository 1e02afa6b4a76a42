"""
Endpoints de Transações (empréstimo, renovação, devolução).

Contratos:
    - POST /transactions/borrow: Registra empréstimo (ciente da fila)
    - POST /transactions/{id}/return: Devolve livro
    - POST /transactions/{id}/renew: Renova empréstimo
    - GET /transactions/{id}/renewal-eligibility: Consulta de renovação
    - POST /transactions/{id}/pay-fine: Quita multa
    - GET /transactions/overdue: Empréstimos atrasados
    - GET /transactions/students/{id}/history: Histórico do estudante
    - GET /transactions/students/{id}/renewals: Renovações de um livro
    - GET /transactions/students/{id}/renewal-statistics: Totais
    - GET /transactions/{id}: Detalhes

Status codes:
    - 200: Sucesso
    - 201: Criado com sucesso
    - 404: Transação, estudante ou livro não encontrado
    - 409: Regra de circulação violada
    - 422: Condição ou tipo de transação inválido
    - 503: Falha transitória (banco, timeout)
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from circulation.core.deps import (
    CacheDep,
    CoordinatorDep,
    LoanServiceDep,
    with_timeout,
)
from circulation.schemas.base import PageResponse
from circulation.schemas.transaction import (
    BorrowRequest,
    RenewalEligibility,
    RenewalStatistics,
    RenewRequest,
    RenewResponse,
    ReturnRequest,
    ReturnResponse,
    TransactionRead,
)

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post(
    "/borrow",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Registrar empréstimo",
    description="Empresta um livro respeitando limites, atrasos e a fila de reservas.",
)
async def borrow_book(
    data: BorrowRequest,
    coordinator: CoordinatorDep,
    cache: CacheDep,
) -> TransactionRead:
    """
    Registra empréstimo.

    Raises:
        404: Estudante ou livro não encontrado
        409: Livro indisponível, limite atingido, atraso, duplicidade ou
             livro reservado por outro estudante
    """
    transaction = await with_timeout(
        coordinator.borrow_book(
            data.student_id,
            data.book_id,
            data.librarian_id,
            data.notes,
        )
    )
    await cache.invalidate_availability(transaction.book_id)
    return TransactionRead.model_validate(transaction)


@router.get(
    "/overdue",
    response_model=list[TransactionRead],
    summary="Empréstimos atrasados",
)
async def list_overdue(service: LoanServiceDep) -> list[TransactionRead]:
    transactions = await service.get_overdue_transactions()
    return [TransactionRead.model_validate(t) for t in transactions]


@router.get(
    "/students/{student_id}/history",
    response_model=PageResponse[TransactionRead],
    summary="Histórico do estudante",
)
async def transaction_history(
    student_id: UUID,
    service: LoanServiceDep,
    limit: int = Query(20, ge=1, le=100, description="Itens por página"),
    offset: int = Query(0, ge=0, description="Deslocamento"),
) -> PageResponse[TransactionRead]:
    transactions = await service.get_transaction_history(student_id, limit, offset)
    return PageResponse[TransactionRead](
        items=[TransactionRead.model_validate(t) for t in transactions],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/students/{student_id}/renewals",
    response_model=list[TransactionRead],
    summary="Histórico de renovações de um livro",
)
async def renewal_history(
    student_id: UUID,
    service: LoanServiceDep,
    book_id: UUID = Query(..., description="Livro renovado"),
) -> list[TransactionRead]:
    transactions = await service.get_renewal_history(student_id, book_id)
    return [TransactionRead.model_validate(t) for t in transactions]


@router.get(
    "/students/{student_id}/renewal-statistics",
    response_model=RenewalStatistics,
    summary="Estatísticas de renovação",
)
async def renewal_statistics(
    student_id: UUID,
    service: LoanServiceDep,
) -> RenewalStatistics:
    return await service.get_renewal_statistics(student_id)


@router.get(
    "/{transaction_id}",
    response_model=TransactionRead,
    summary="Detalhes da transação",
)
async def get_transaction(
    transaction_id: UUID,
    service: LoanServiceDep,
) -> TransactionRead:
    transaction = await service.get_transaction(transaction_id)
    return TransactionRead.model_validate(transaction)


@router.post(
    "/{transaction_id}/return",
    response_model=ReturnResponse,
    summary="Devolver livro",
    description="Fecha o empréstimo, calcula multa e libera a cópia para a fila.",
)
async def return_book(
    transaction_id: UUID,
    coordinator: CoordinatorDep,
    cache: CacheDep,
    data: ReturnRequest | None = None,
) -> ReturnResponse:
    """
    Processa a devolução.

    A resposta sai assim que a devolução é confirmada; o atendimento da
    fila de reservas roda no worker.

    Raises:
        404: Transação não encontrada
        409: Já devolvida
        422: Condição inválida
    """
    data = data or ReturnRequest()
    transaction = await with_timeout(
        coordinator.return_book(transaction_id, data.condition, data.condition_notes)
    )
    await cache.invalidate_availability(transaction.book_id)

    if transaction.fine_amount > 0:
        message = f"Livro devolvido com atraso. Multa: {transaction.fine_amount:.2f}"
    else:
        message = "Livro devolvido com sucesso. Sem multa."

    return ReturnResponse(
        transaction=TransactionRead.model_validate(transaction),
        fine_applied=transaction.fine_amount,
        message=message,
    )


@router.post(
    "/{transaction_id}/renew",
    response_model=RenewResponse,
    summary="Renovar empréstimo",
)
async def renew_book(
    transaction_id: UUID,
    service: LoanServiceDep,
    data: RenewRequest | None = None,
) -> RenewResponse:
    """
    Renova o empréstimo criando uma nova transação renew.

    Raises:
        404: Transação não encontrada
        409: Devolvido, atrasado, limite de renovações ou reserva de outro estudante
    """
    data = data or RenewRequest()
    renewal = await with_timeout(service.renew_book(transaction_id, data.librarian_id))
    return RenewResponse(
        transaction=TransactionRead.model_validate(renewal),
        previous_transaction_id=renewal.renewed_from_id,
        new_due_date=renewal.due_date,
        message=(
            "Empréstimo renovado com sucesso. Nova data de devolução: "
            f"{renewal.due_date.strftime('%d/%m/%Y')}"
        ),
    )


@router.get(
    "/{transaction_id}/renewal-eligibility",
    response_model=RenewalEligibility,
    summary="Verificar renovação",
)
async def renewal_eligibility(
    transaction_id: UUID,
    service: LoanServiceDep,
) -> RenewalEligibility:
    can_renew, reason = await service.can_book_be_renewed(transaction_id)
    return RenewalEligibility(
        transaction_id=transaction_id,
        can_renew=can_renew,
        reason=reason,
    )


@router.post(
    "/{transaction_id}/pay-fine",
    response_model=TransactionRead,
    summary="Quitar multa",
)
async def pay_fine(
    transaction_id: UUID,
    service: LoanServiceDep,
) -> TransactionRead:
    """
    Raises:
        404: Transação não encontrada
        409: Transação sem multa a pagar
    """
    transaction = await with_timeout(service.pay_fine(transaction_id))
    return TransactionRead.model_validate(transaction)
