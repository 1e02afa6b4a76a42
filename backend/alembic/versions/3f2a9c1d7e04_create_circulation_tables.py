"""
Create circulation tables: books, students, librarians, transactions, reservations

Copy counters are protected by a CHECK constraint (0 <= available <= total).
At most one active reservation per student/book is enforced by a partial
unique index (WHERE status = 'active').

Revision ID: 3f2a9c1d7e04
Revises:
Create Date: 2026-10-19 10:12:41.518204
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "3f2a9c1d7e04"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

book_condition = postgresql.ENUM(
    "excellent", "good", "fair", "poor", "damaged",
    name="book_condition",
    create_type=False,
)
transaction_type = postgresql.ENUM("borrow", "renew", name="transaction_type", create_type=False)
reservation_status = postgresql.ENUM(
    "active", "fulfilled", "cancelled", "expired",
    name="reservation_status",
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create enums, tables, constraints and indexes."""
    bind = op.get_bind()
    book_condition.create(bind, checkfirst=True)
    transaction_type.create(bind, checkfirst=True)
    reservation_status.create(bind, checkfirst=True)

    op.create_table(
        "books",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("author", sa.String(255), nullable=False, server_default=""),
        sa.Column("total_copies", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("available_copies", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("condition", book_condition, nullable=False, server_default="good"),
        *_timestamps(),
        sa.CheckConstraint("total_copies >= 0", name="ck_books_total_copies"),
        sa.CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    op.create_table(
        "students",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("student_code", sa.String(20), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("year_of_study", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "year_of_study > 0 AND year_of_study <= 8",
            name="ck_students_year_of_study",
        ),
    )

    op.create_table(
        "librarians",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("students.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "book_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("books.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("transaction_type", transaction_type, nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("returned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "librarian_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("librarians.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("fine_amount", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column("fine_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("return_condition", book_condition, nullable=True),
        sa.Column("condition_notes", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "renewed_from_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("fine_amount >= 0", name="ck_transactions_fine_amount"),
    )
    op.create_index("ix_transactions_student_id", "transactions", ["student_id"])
    op.create_index("ix_transactions_book_id", "transactions", ["book_id"])
    op.create_index("ix_transactions_type", "transactions", ["transaction_type"])
    op.create_index(
        "ix_transactions_open",
        "transactions",
        ["student_id", "book_id"],
        postgresql_where=sa.text("returned_date IS NULL AND superseded_at IS NULL"),
    )
    op.create_index("ix_transactions_overdue", "transactions", ["due_date", "returned_date"])

    op.create_table(
        "reservations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "book_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("books.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", reservation_status, nullable=False, server_default="active"),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_reservations_student_id", "reservations", ["student_id"])
    op.create_index("ix_reservations_status", "reservations", ["status"])
    op.create_index(
        "ix_reservations_book_queue",
        "reservations",
        ["book_id", "status", "reserved_at", "id"],
    )
    op.create_index(
        "ix_reservations_expires",
        "reservations",
        ["expires_at"],
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "uq_reservations_student_book_active",
        "reservations",
        ["student_id", "book_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )


def downgrade() -> None:
    """Drop tables and enums."""
    op.drop_table("reservations")
    op.drop_table("transactions")
    op.drop_table("librarians")
    op.drop_table("students")
    op.drop_table("books")

    bind = op.get_bind()
    reservation_status.drop(bind, checkfirst=True)
    transaction_type.drop(bind, checkfirst=True)
    book_condition.drop(bind, checkfirst=True)
