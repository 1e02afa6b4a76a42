"""
Testes para LoanService (empréstimo, devolução, renovação e multas).
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from circulation.core.exceptions import (
    AlreadyReturnedError,
    DuplicateLoanError,
    InactiveEntityError,
    InvalidConditionError,
    InventoryConflictError,
    NoFineDueError,
    NotFoundError,
    OverdueBlockError,
    QuotaExceededError,
    ReservationConflictError,
    UnavailableError,
)
from circulation.models import BookCondition, Reservation, ReservationStatus, TransactionType


def add_active_reservation(fake_db, student, book, reserved_at):
    reservation = Reservation(
        id=uuid.uuid4(),
        student_id=student.id,
        book_id=book.id,
        reserved_at=reserved_at,
        expires_at=reserved_at + timedelta(days=7),
        status=ReservationStatus.ACTIVE,
    )
    fake_db.reservations[reservation.id] = reservation
    return reservation


# ==========================================
# Borrow
# ==========================================

class TestBorrowBook:
    """Testes para borrow_book."""

    @pytest.mark.anyio
    async def test_borrow_success(self, loan_service, make_student, make_book, clock):
        """Empréstimo cria transação borrow e decrementa cópias."""
        student = make_student(year_of_study=1)
        book = make_book(total_copies=2)

        transaction = await loan_service.borrow_book(student.id, book.id)

        assert transaction.id is not None
        assert transaction.transaction_type == TransactionType.BORROW
        assert transaction.transaction_date == clock.now
        assert transaction.due_date == clock.now + timedelta(days=14)
        assert transaction.is_open
        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_due_date_by_year_of_study(self, loan_service, make_student, make_book, clock):
        senior = make_student(year_of_study=5)
        book = make_book()

        transaction = await loan_service.borrow_book(senior.id, book.id)

        assert transaction.due_date == clock.now + timedelta(days=28)

    @pytest.mark.anyio
    async def test_borrow_with_librarian_and_notes(
        self, loan_service, make_student, make_book, librarian
    ):
        student = make_student()
        book = make_book()

        transaction = await loan_service.borrow_book(
            student.id, book.id, librarian_id=librarian.id, notes="balcão"
        )

        assert transaction.librarian_id == librarian.id
        assert transaction.notes == "balcão"

    @pytest.mark.anyio
    async def test_borrow_unknown_librarian(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()

        with pytest.raises(NotFoundError) as exc_info:
            await loan_service.borrow_book(student.id, book.id, librarian_id=uuid.uuid4())

        assert "Bibliotecário" in exc_info.value.message
        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_borrow_unknown_student(self, loan_service, make_book):
        book = make_book()

        with pytest.raises(NotFoundError):
            await loan_service.borrow_book(uuid.uuid4(), book.id)

    @pytest.mark.anyio
    async def test_borrow_unknown_book(self, loan_service, make_student):
        student = make_student()

        with pytest.raises(NotFoundError):
            await loan_service.borrow_book(student.id, uuid.uuid4())

    @pytest.mark.anyio
    async def test_borrow_inactive_student(self, loan_service, make_student, make_book):
        student = make_student(is_active=False)
        book = make_book()

        with pytest.raises(InactiveEntityError):
            await loan_service.borrow_book(student.id, book.id)

    @pytest.mark.anyio
    async def test_borrow_without_copies(self, loan_service, make_student, make_book, fake_db):
        student = make_student()
        book = make_book(total_copies=1, available_copies=0)

        with pytest.raises(UnavailableError):
            await loan_service.borrow_book(student.id, book.id)

        assert fake_db.transactions == {}

    @pytest.mark.anyio
    async def test_borrow_lost_race_rolls_back(
        self, loan_service, stores, make_student, make_book, fake_db
    ):
        """Decremento protegido que falha não deixa transação gravada."""
        student = make_student()
        book = make_book()

        with patch.object(
            stores.catalog, "decrement_available", AsyncMock(return_value=False)
        ):
            with pytest.raises(UnavailableError):
                await loan_service.borrow_book(student.id, book.id)

        assert fake_db.transactions == {}
        assert stores.boundary.rollbacks == 1
        assert stores.boundary.commits == 0

    @pytest.mark.anyio
    async def test_last_copy_goes_to_one_student(self, loan_service, make_student, make_book):
        first = make_student()
        second = make_student()
        book = make_book(total_copies=1)

        await loan_service.borrow_book(first.id, book.id)
        with pytest.raises(UnavailableError):
            await loan_service.borrow_book(second.id, book.id)

        assert book.available_copies == 0

    @pytest.mark.anyio
    async def test_borrow_cap(self, loan_service, make_student, make_book, policy):
        student = make_student()
        loans = []
        for _ in range(policy.max_books_per_user):
            loans.append(await loan_service.borrow_book(student.id, make_book().id))

        extra = make_book()
        with pytest.raises(QuotaExceededError):
            await loan_service.borrow_book(student.id, extra.id)

        assert extra.available_copies == 1

        await loan_service.return_book(loans[0].id)
        transaction = await loan_service.borrow_book(student.id, extra.id)

        assert transaction.book_id == extra.id
        assert extra.available_copies == 0

    @pytest.mark.anyio
    async def test_borrow_same_title_twice(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book(total_copies=2)

        await loan_service.borrow_book(student.id, book.id)
        with pytest.raises(DuplicateLoanError):
            await loan_service.borrow_book(student.id, book.id)

    @pytest.mark.anyio
    async def test_borrow_blocked_by_overdue(self, loan_service, make_student, make_book, clock):
        student = make_student()
        await loan_service.borrow_book(student.id, make_book().id)
        clock.advance(days=20)

        with pytest.raises(OverdueBlockError):
            await loan_service.borrow_book(student.id, make_book().id)


# ==========================================
# Return
# ==========================================

class TestReturnBook:
    """Testes para return_book."""

    @pytest.mark.anyio
    async def test_return_on_time(self, loan_service, make_student, make_book, clock):
        student = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)
        clock.advance(days=3)

        returned = await loan_service.return_book(transaction.id)

        assert returned.returned_date == clock.now
        assert returned.fine_amount == Decimal("0.00")
        assert returned.return_condition == BookCondition.GOOD
        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_return_late_applies_fine(self, loan_service, make_student, make_book, clock):
        """Dois dias de atraso a 0.50 por dia."""
        student = make_student(year_of_study=1)
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)
        clock.advance(days=16)

        returned = await loan_service.return_book(transaction.id, "fair", "capa riscada")

        assert returned.fine_amount == Decimal("1.00")
        assert returned.condition_notes == "capa riscada"
        assert returned.fine_paid is False

    @pytest.mark.anyio
    async def test_return_twice(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)
        await loan_service.return_book(transaction.id)

        with pytest.raises(AlreadyReturnedError):
            await loan_service.return_book(transaction.id)

        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_return_unknown_transaction(self, loan_service):
        with pytest.raises(NotFoundError):
            await loan_service.return_book(uuid.uuid4())

    @pytest.mark.anyio
    async def test_return_invalid_condition(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)

        with pytest.raises(InvalidConditionError) as exc_info:
            await loan_service.return_book(transaction.id, "soaked")

        assert exc_info.value.status_code == 422
        assert transaction.is_open
        assert book.available_copies == 0

    @pytest.mark.anyio
    async def test_return_degrades_book_condition(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book(condition=BookCondition.GOOD)
        transaction = await loan_service.borrow_book(student.id, book.id)

        await loan_service.return_book(transaction.id, BookCondition.DAMAGED)

        assert book.condition == BookCondition.DAMAGED

    @pytest.mark.anyio
    async def test_return_never_improves_condition(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book(condition=BookCondition.POOR)
        transaction = await loan_service.borrow_book(student.id, book.id)

        await loan_service.return_book(transaction.id, "excellent")

        assert book.condition == BookCondition.POOR

    @pytest.mark.anyio
    async def test_return_inventory_conflict_rolls_back(
        self, loan_service, stores, make_student, make_book, clock
    ):
        """Contador já no total: a devolução inteira é desfeita."""
        student = make_student()
        book = make_book(total_copies=1)
        transaction = await loan_service.borrow_book(student.id, book.id)
        book.available_copies = 1

        with pytest.raises(InventoryConflictError):
            await loan_service.return_book(transaction.id)

        assert transaction.returned_date is None
        assert transaction.is_open
        assert book.available_copies == 1
        assert stores.boundary.rollbacks == 1

    @pytest.mark.anyio
    async def test_copies_conserved_across_operations(
        self, loan_service, make_student, make_book, fake_db
    ):
        book = make_book(total_copies=3)
        students = [make_student() for _ in range(3)]
        transactions = [await loan_service.borrow_book(s.id, book.id) for s in students]
        await loan_service.renew_book(transactions[0].id)
        await loan_service.return_book(transactions[1].id)

        open_loans = sum(
            1 for t in fake_db.transactions.values() if t.book_id == book.id and t.is_open
        )
        assert book.available_copies + open_loans == book.total_copies


# ==========================================
# Renew
# ==========================================

class TestRenewBook:
    """Testes para renew_book."""

    @pytest.mark.anyio
    async def test_renew_creates_new_row(self, loan_service, make_student, make_book, clock):
        student = make_student()
        book = make_book()
        original = await loan_service.borrow_book(student.id, book.id)
        clock.advance(days=5)

        renewal = await loan_service.renew_book(original.id)

        assert renewal.id != original.id
        assert renewal.transaction_type == TransactionType.RENEW
        assert renewal.renewed_from_id == original.id
        assert renewal.due_date == clock.now + timedelta(days=14)
        assert renewal.is_open
        assert original.superseded_at == clock.now
        assert original.returned_date is None
        assert not original.is_open
        assert book.available_copies == 0

    @pytest.mark.anyio
    async def test_renewal_limit(self, loan_service, make_student, make_book, policy):
        student = make_student()
        book = make_book()
        current = await loan_service.borrow_book(student.id, book.id)
        for _ in range(policy.max_renewals):
            current = await loan_service.renew_book(current.id)

        with pytest.raises(QuotaExceededError):
            await loan_service.renew_book(current.id)

        assert current.is_open

    @pytest.mark.anyio
    async def test_stale_id_resolves_to_current_loan(
        self, loan_service, make_student, make_book
    ):
        """O id original continua valendo depois de uma renovação."""
        student = make_student()
        book = make_book()
        original = await loan_service.borrow_book(student.id, book.id)
        renewal = await loan_service.renew_book(original.id)

        returned = await loan_service.return_book(original.id)

        assert returned.id == renewal.id
        assert renewal.returned_date is not None
        assert original.returned_date is None
        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_stale_id_after_return(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()
        original = await loan_service.borrow_book(student.id, book.id)
        renewal = await loan_service.renew_book(original.id)
        await loan_service.return_book(renewal.id)

        with pytest.raises(AlreadyReturnedError):
            await loan_service.return_book(original.id)

    @pytest.mark.anyio
    async def test_renew_twice_from_same_stale_id(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()
        original = await loan_service.borrow_book(student.id, book.id)
        first = await loan_service.renew_book(original.id)

        second = await loan_service.renew_book(original.id)

        assert second.renewed_from_id == first.id

    @pytest.mark.anyio
    async def test_renew_overdue(self, loan_service, make_student, make_book, clock):
        student = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)
        clock.advance(days=15)

        with pytest.raises(OverdueBlockError):
            await loan_service.renew_book(transaction.id)

    @pytest.mark.anyio
    async def test_renew_returned(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)
        await loan_service.return_book(transaction.id)

        with pytest.raises(AlreadyReturnedError):
            await loan_service.renew_book(transaction.id)

    @pytest.mark.anyio
    async def test_renew_blocked_by_other_reservation(
        self, loan_service, make_student, make_book, fake_db, clock
    ):
        holder = make_student()
        waiting = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(holder.id, book.id)
        add_active_reservation(fake_db, waiting, book, clock.now)

        with pytest.raises(ReservationConflictError):
            await loan_service.renew_book(transaction.id)

    @pytest.mark.anyio
    async def test_renew_unknown_librarian(self, loan_service, make_student, make_book):
        student = make_student()
        book = make_book()
        transaction = await loan_service.borrow_book(student.id, book.id)

        with pytest.raises(NotFoundError):
            await loan_service.renew_book(transaction.id, librarian_id=uuid.uuid4())

        assert transaction.is_open


class TestCanBookBeRenewed:
    """Testes para can_book_be_renewed."""

    @pytest.mark.anyio
    async def test_unknown_transaction(self, loan_service):
        assert await loan_service.can_book_be_renewed(uuid.uuid4()) == (
            False,
            "Transação não encontrada",
        )

    @pytest.mark.anyio
    async def test_renewable(self, loan_service, make_student, make_book):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)

        can_renew, reason = await loan_service.can_book_be_renewed(transaction.id)

        assert can_renew is True
        assert reason == "Empréstimo pode ser renovado"

    @pytest.mark.anyio
    async def test_eligibility_check_does_not_modify(self, loan_service, make_student, make_book, fake_db):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)

        await loan_service.can_book_be_renewed(transaction.id)

        assert len(fake_db.transactions) == 1
        assert transaction.is_open

    @pytest.mark.anyio
    async def test_reports_reason(self, loan_service, make_student, make_book, clock):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)
        clock.advance(days=30)

        can_renew, reason = await loan_service.can_book_be_renewed(transaction.id)

        assert can_renew is False
        assert "atrasado" in reason


# ==========================================
# Fines
# ==========================================

class TestPayFine:
    """Testes para pay_fine."""

    @pytest.mark.anyio
    async def test_pay_fine(self, loan_service, make_student, make_book, clock):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)
        clock.advance(days=20)
        returned = await loan_service.return_book(transaction.id)

        paid = await loan_service.pay_fine(returned.id)

        assert paid.fine_paid is True
        assert paid.fine_amount == Decimal("3.00")

    @pytest.mark.anyio
    async def test_pay_fine_idempotent(self, loan_service, make_student, make_book, clock, stores):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)
        clock.advance(days=20)
        await loan_service.return_book(transaction.id)
        await loan_service.pay_fine(transaction.id)
        commits = stores.boundary.commits

        again = await loan_service.pay_fine(transaction.id)

        assert again.fine_paid is True
        assert stores.boundary.commits == commits

    @pytest.mark.anyio
    async def test_open_loan_has_no_fine(self, loan_service, make_student, make_book):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)

        with pytest.raises(NoFineDueError):
            await loan_service.pay_fine(transaction.id)

    @pytest.mark.anyio
    async def test_on_time_return_has_no_fine(self, loan_service, make_student, make_book):
        student = make_student()
        transaction = await loan_service.borrow_book(student.id, make_book().id)
        await loan_service.return_book(transaction.id)

        with pytest.raises(NoFineDueError):
            await loan_service.pay_fine(transaction.id)


# ==========================================
# Queries
# ==========================================

class TestLoanQueries:
    """Testes para consultas de histórico."""

    @pytest.mark.anyio
    async def test_overdue_transactions(self, loan_service, make_student, make_book, clock):
        student = make_student(year_of_study=1)
        senior = make_student(year_of_study=5)
        late = await loan_service.borrow_book(student.id, make_book().id)
        await loan_service.borrow_book(senior.id, make_book().id)
        clock.advance(days=15)

        overdue = await loan_service.get_overdue_transactions()

        assert [t.id for t in overdue] == [late.id]

    @pytest.mark.anyio
    async def test_history_includes_renewals(self, loan_service, make_student, make_book, clock):
        student = make_student()
        original = await loan_service.borrow_book(student.id, make_book().id)
        clock.advance(days=1)
        renewal = await loan_service.renew_book(original.id)

        history = await loan_service.get_transaction_history(student.id)

        assert [t.id for t in history] == [renewal.id, original.id]

    @pytest.mark.anyio
    async def test_history_unknown_student(self, loan_service):
        with pytest.raises(NotFoundError):
            await loan_service.get_transaction_history(uuid.uuid4())

    @pytest.mark.anyio
    async def test_renewal_history_and_statistics(
        self, loan_service, make_student, make_book, clock
    ):
        student = make_student()
        book = make_book()
        other = make_book()
        current = await loan_service.borrow_book(student.id, book.id)
        clock.advance(days=1)
        current = await loan_service.renew_book(current.id)
        clock.advance(days=1)
        await loan_service.renew_book(current.id)
        loan = await loan_service.borrow_book(student.id, other.id)
        await loan_service.renew_book(loan.id)

        history = await loan_service.get_renewal_history(student.id, book.id)
        stats = await loan_service.get_renewal_statistics(student.id)

        assert len(history) == 2
        assert all(t.transaction_type == TransactionType.RENEW for t in history)
        assert stats.total_renewals == 3
        assert stats.books_renewed == 2
