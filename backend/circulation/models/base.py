"""
Colunas comuns às tabelas de circulação.

created_at/updated_at são auditoria da linha. As datas de negócio
(transaction_date, due_date, reserved_at, fulfilled_at...) ficam nos
próprios models e são gravadas com o relógio do service.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column


class UUIDMixin:
    """Chave primária UUID gerada na aplicação (id conhecido antes do flush)."""
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    # Também avança nos UPDATEs condicionais dos repositories
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
