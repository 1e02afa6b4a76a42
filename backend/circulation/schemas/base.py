"""
Schemas base reutilizáveis em toda a aplicação.
"""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Schema base com configurações padrão."""
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
    )


class PageResponse(BaseModel, Generic[T]):
    """
    Resposta paginada por limit/offset.

    Uso nos endpoints:
        @router.get("/...", response_model=PageResponse[TransactionRead])
    """
    items: List[T]
    limit: int
    offset: int

    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseModel):
    """
    Resposta de erro padrão.

    Gerada pelos exception handlers a partir de LendingError:
        {"error": "quota_exceeded", "message": "..."}
    """
    error: str
    message: str


class MessageResponse(BaseModel):
    """Resposta simples com mensagem."""
    message: str
