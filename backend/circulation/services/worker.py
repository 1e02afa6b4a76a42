"""
Worker assíncrono de atendimento de reservas.

Consome livros devolvidos de uma asyncio.Queue e executa o job de
atendimento para cada um, fora do ciclo de vida da requisição que fez a
devolução (cancelar a requisição não cancela o atendimento).

Semântica at-least-once: o job é idempotente, então reprocessar um livro
nunca atende reservas a mais. Falhas são registradas no log e em
`failures`; a reserva continua active e é recuperada pela próxima
devolução ou por POST /api/v1/system/process-fulfillments.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable
from uuid import UUID

from circulation.core.clock import utcnow

logger = logging.getLogger(__name__)

FulfillmentJob = Callable[[UUID], Awaitable[object]]


@dataclass(frozen=True)
class FulfillmentFailure:
    """Registro de um livro cujo atendimento esgotou as tentativas."""
    book_id: UUID
    attempts: int
    error: str
    failed_at: datetime


class FulfillmentWorker:
    """Fila em memória com um consumidor e retry limitado."""

    def __init__(
        self,
        job: FulfillmentJob,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        max_failures: int = 100,
    ):
        self._job = job
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._queue: asyncio.Queue[UUID] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self.failures: deque[FulfillmentFailure] = deque(maxlen=max_failures)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, book_id: UUID) -> None:
        """Enfileira um livro devolvido (não bloqueia)."""
        self._queue.put_nowait(book_id)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="fulfillment-worker")
        logger.info("Worker de atendimento de reservas iniciado")

    async def stop(self) -> None:
        """Cancela o consumidor; livros ainda na fila são descartados."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if self.pending:
            logger.warning(
                f"Worker encerrado com {self.pending} livro(s) na fila; "
                "use process-fulfillments para reprocessar"
            )

    async def join(self) -> None:
        """Aguarda até que todos os livros enfileirados sejam processados."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            book_id = await self._queue.get()
            try:
                await self._process(book_id)
            finally:
                self._queue.task_done()

    async def _process(self, book_id: UUID) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._job(book_id)
                return
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.exception(
                        f"Atendimento do livro {book_id} falhou após {attempt} tentativa(s)"
                    )
                    self.failures.append(
                        FulfillmentFailure(
                            book_id=book_id,
                            attempts=attempt,
                            error=f"{type(e).__name__}: {e}",
                            failed_at=utcnow(),
                        )
                    )
                    return
                logger.warning(
                    f"Atendimento do livro {book_id} falhou (tentativa {attempt}): {e}"
                )
                await asyncio.sleep(self.retry_delay)
