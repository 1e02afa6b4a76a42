"""
Ponto de entrada da aplicação FastAPI.

Este módulo configura a aplicação FastAPI, inclui rotas, registra os
handlers de erro e define o ciclo de vida (startup/shutdown), incluindo o
worker de atendimento de reservas.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from circulation.api.v1.router import api_router
from circulation.core.config import get_settings
from circulation.core.deps import run_fulfillment_job
from circulation.core.exceptions import LendingError, TransientStorageError
from circulation.core.logging import setup_logging, get_logger
from circulation.db.session import check_database_connection, engine
from circulation.db.redis import init_redis, close_redis, check_redis_connection
from circulation.schemas.base import ErrorResponse
from circulation.schemas.health import HealthResponse
from circulation.services.worker import FulfillmentWorker

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.

    Startup:
        - Configura logging
        - Conecta ao Redis
        - Verifica conexão com PostgreSQL
        - Inicia o worker de atendimento de reservas

    Shutdown:
        - Para o worker
        - Fecha conexão com Redis
        - Fecha pool de conexões do banco
    """
    # Startup
    setup_logging()
    logger.info(f"Iniciando {settings.APP_NAME} em ambiente {settings.ENVIRONMENT}")

    # Inicializa Redis
    try:
        await init_redis()
        if await check_redis_connection():
            logger.info("Conexão com Redis estabelecida")
        else:
            logger.warning("Redis não disponível - cache e notificações desabilitados")
    except Exception as e:
        logger.warning(f"Falha ao conectar ao Redis: {e}")

    # Verifica PostgreSQL
    try:
        success, error = await check_database_connection()
        if success:
            logger.info("Conexão com PostgreSQL estabelecida")
        else:
            logger.warning(f"PostgreSQL não disponível: {error}")
    except Exception as e:
        logger.warning(f"Falha ao conectar ao PostgreSQL: {e}")

    worker = FulfillmentWorker(
        run_fulfillment_job,
        max_attempts=settings.FULFILLMENT_MAX_ATTEMPTS,
        retry_delay=settings.FULFILLMENT_RETRY_DELAY_SECONDS,
    )
    worker.start()
    app.state.fulfillment_worker = worker

    yield

    # Shutdown
    logger.info(f"Encerrando {settings.APP_NAME}")
    await worker.stop()
    app.state.fulfillment_worker = None
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="API de circulação de biblioteca: empréstimos, renovações, devoluções e reservas",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# ==========================================
# Exception handlers
# ==========================================

def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
    )


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    """Converte erros de negócio em ErrorResponse com o status da categoria."""
    return _error_response(exc.status_code, exc.error_code, exc.message)


@app.exception_handler(DBAPIError)
async def storage_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    logger.error(f"Falha de banco em {request.method} {request.url.path}: {exc}")
    transient = TransientStorageError()
    return _error_response(transient.status_code, transient.error_code, transient.message)


@app.exception_handler(asyncio.TimeoutError)
async def timeout_error_handler(request: Request, exc: asyncio.TimeoutError) -> JSONResponse:
    logger.warning(f"Timeout em {request.method} {request.url.path}")
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        TransientStorageError.error_code,
        "Operação excedeu o tempo limite. Tente novamente.",
    )


# Inclui rotas da API v1
app.include_router(api_router)


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Verifica status da aplicação",
    description="Retorna o status da aplicação, do banco, do Redis e da fila de atendimento.",
)
async def health_check(request: Request) -> HealthResponse:
    """
    Endpoint de healthcheck para monitoramento.

    "degraded" quando o banco não responde; Redis indisponível não
    degrada (cache e notificações são opcionais).
    """
    database_ok, _ = await check_database_connection()
    redis_ok = await check_redis_connection()
    worker = getattr(request.app.state, "fulfillment_worker", None)

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        app_name=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
        database=database_ok,
        redis=redis_ok,
        pending_fulfillments=worker.pending if worker else 0,
    )
