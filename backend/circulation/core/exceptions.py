"""
Erros de negócio do motor de circulação.

Cada regra violada tem sua própria classe, para que os chamadores possam
decidir status HTTP, política de retry e mensagem ao usuário sem
interpretar texto. Os handlers em main.py convertem LendingError em
ErrorResponse.

Mapeamento:
    - 404: entidade inexistente (nunca repetir automaticamente)
    - 409: regra de estado violada (corrigível pelo cliente)
    - 422: entrada inválida (condição, tipo de transação)
    - 503: falha transitória de infraestrutura
"""

from fastapi import status


class LendingError(Exception):
    """Erro base com categoria e status HTTP equivalente."""

    error_code: str = "lending_error"
    status_code: int = status.HTTP_409_CONFLICT
    default_message: str = "Operação não permitida"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LendingError):
    error_code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Registro não encontrado"


class InactiveEntityError(LendingError):
    error_code = "inactive_entity"
    default_message = "Registro inativo"


class UnavailableError(LendingError):
    error_code = "unavailable"
    default_message = "Livro não disponível"


class QuotaExceededError(LendingError):
    error_code = "quota_exceeded"
    default_message = "Limite atingido"


class DuplicateLoanError(LendingError):
    error_code = "duplicate_loan"
    default_message = "Estudante já possui este livro emprestado"


class DuplicateReservationError(LendingError):
    error_code = "duplicate_reservation"
    default_message = "Estudante já possui uma reserva ativa para este livro"


class OverdueBlockError(LendingError):
    error_code = "overdue_block"
    default_message = "Há empréstimos em atraso"


class InvalidConditionError(LendingError):
    error_code = "invalid_condition"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Condição de devolução inválida"


class InvalidTransactionTypeError(LendingError):
    error_code = "invalid_transaction_type"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Tipo de transação inválido para esta operação"


class AlreadyReturnedError(LendingError):
    error_code = "already_returned"
    default_message = "Livro já devolvido"


class ReservationConflictError(LendingError):
    error_code = "reservation_conflict"
    default_message = "Livro reservado por outro estudante"


class ReservationStateError(LendingError):
    error_code = "reservation_state"
    default_message = "Reserva não está ativa"


class InventoryConflictError(LendingError):
    error_code = "inventory_conflict"
    default_message = "Contagem de cópias inconsistente com os empréstimos"


class NoFineDueError(LendingError):
    error_code = "no_fine_due"
    default_message = "Não há multa a pagar para esta transação"


class TransientStorageError(LendingError):
    error_code = "transient_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Falha temporária de armazenamento. Tente novamente."
