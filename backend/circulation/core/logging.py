"""
Logging da API e do worker de atendimento de reservas.

Os módulos usam logging.getLogger(__name__); aqui se define só o destino
(stdout), o formato e o nível (LOG_LEVEL). Loggers de bibliotecas ruidosas
ficam em WARNING, a não ser com DEBUG ligado.
"""

import logging
import sys
from typing import Optional

from circulation.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "asyncio")


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configura o root logger. Pode ser chamado de novo: os handlers
    anteriores são substituídos.

    Args:
        level: Sobrescreve LOG_LEVEL
    """
    settings = get_settings()
    log_level = (level or settings.LOG_LEVEL).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(log_level)

    noisy_level = logging.DEBUG if settings.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    logging.getLogger(__name__).info(
        f"Logging em {log_level} (ambiente {settings.ENVIRONMENT})"
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
