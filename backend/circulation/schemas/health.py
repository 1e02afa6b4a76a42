"""
Schemas Pydantic para o endpoint de healthcheck.
"""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """
    Resposta do endpoint de healthcheck.

    Attributes:
        status: "healthy" ou "degraded" (banco indisponível)
        app_name: Nome da aplicação
        environment: Ambiente atual (development, staging, production)
        database: Banco respondeu ao SELECT 1
        redis: Redis respondeu ao PING
        pending_fulfillments: Livros aguardando o worker de reservas
    """

    status: str
    app_name: str
    environment: str
    database: bool
    redis: bool
    pending_fulfillments: int = 0

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "app_name": "Library Circulation API",
                    "environment": "development",
                    "database": True,
                    "redis": True,
                    "pending_fulfillments": 0,
                }
            ]
        }
    }
