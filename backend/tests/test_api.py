"""
Testes de integração dos endpoints /api/v1 sobre os fakes em memória.
"""

import asyncio
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import DBAPIError

from circulation.services.fulfillment import FulfillmentCoordinator

API = "/api/v1"


async def borrow(client: AsyncClient, student, book):
    return await client.post(
        f"{API}/transactions/borrow",
        json={"student_id": str(student.id), "book_id": str(book.id)},
    )


# ==========================================
# Transactions
# ==========================================

class TestTransactionEndpoints:
    """Testes para /transactions."""

    @pytest.mark.anyio
    async def test_borrow_success(self, client: AsyncClient, make_student, make_book):
        student = make_student()
        book = make_book(total_copies=2)

        response = await borrow(client, student, book)

        assert response.status_code == 201
        data = response.json()
        assert data["student_id"] == str(student.id)
        assert data["transaction_type"] == "borrow"
        assert data["returned_date"] is None
        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_borrow_unknown_student(self, client: AsyncClient, make_book):
        response = await client.post(
            f"{API}/transactions/borrow",
            json={"student_id": str(uuid.uuid4()), "book_id": str(make_book().id)},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.anyio
    async def test_borrow_unavailable(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)

        response = await borrow(client, make_student(), book)

        assert response.status_code == 409
        assert response.json()["error"] == "unavailable"

    @pytest.mark.anyio
    async def test_borrow_invalid_payload(self, client: AsyncClient):
        response = await client.post(
            f"{API}/transactions/borrow",
            json={"student_id": "not-a-uuid"},
        )

        assert response.status_code == 422

    @pytest.mark.anyio
    async def test_return_dispatches_fulfillment(
        self, client: AsyncClient, make_student, make_book, dispatcher
    ):
        book = make_book()
        transaction_id = (await borrow(client, make_student(), book)).json()["id"]

        response = await client.post(
            f"{API}/transactions/{transaction_id}/return",
            json={"condition": "fair", "condition_notes": "orelhas nas páginas"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["transaction"]["return_condition"] == "fair"
        assert data["message"] == "Livro devolvido com sucesso. Sem multa."
        assert dispatcher.submitted == [book.id]
        assert book.available_copies == 1

    @pytest.mark.anyio
    async def test_return_without_body(self, client: AsyncClient, make_student, make_book):
        transaction_id = (await borrow(client, make_student(), make_book())).json()["id"]

        response = await client.post(f"{API}/transactions/{transaction_id}/return")

        assert response.status_code == 200
        assert response.json()["transaction"]["return_condition"] == "good"

    @pytest.mark.anyio
    async def test_return_invalid_condition(self, client: AsyncClient, make_student, make_book):
        transaction_id = (await borrow(client, make_student(), make_book())).json()["id"]

        response = await client.post(
            f"{API}/transactions/{transaction_id}/return",
            json={"condition": "soaked"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_condition"

    @pytest.mark.anyio
    async def test_return_twice(self, client: AsyncClient, make_student, make_book):
        transaction_id = (await borrow(client, make_student(), make_book())).json()["id"]
        await client.post(f"{API}/transactions/{transaction_id}/return")

        response = await client.post(f"{API}/transactions/{transaction_id}/return")

        assert response.status_code == 409
        assert response.json()["error"] == "already_returned"

    @pytest.mark.anyio
    async def test_renew(self, client: AsyncClient, make_student, make_book):
        transaction_id = (await borrow(client, make_student(), make_book())).json()["id"]

        response = await client.post(f"{API}/transactions/{transaction_id}/renew")

        assert response.status_code == 200
        data = response.json()
        assert data["previous_transaction_id"] == transaction_id
        assert data["transaction"]["transaction_type"] == "renew"
        assert data["transaction"]["id"] != transaction_id

    @pytest.mark.anyio
    async def test_renewal_eligibility(self, client: AsyncClient, make_student, make_book):
        transaction_id = (await borrow(client, make_student(), make_book())).json()["id"]

        response = await client.get(f"{API}/transactions/{transaction_id}/renewal-eligibility")

        assert response.status_code == 200
        assert response.json()["can_renew"] is True

    @pytest.mark.anyio
    async def test_get_unknown_transaction(self, client: AsyncClient):
        response = await client.get(f"{API}/transactions/{uuid.uuid4()}")

        assert response.status_code == 404

    @pytest.mark.anyio
    async def test_pay_fine_without_fine(self, client: AsyncClient, make_student, make_book):
        transaction_id = (await borrow(client, make_student(), make_book())).json()["id"]

        response = await client.post(f"{API}/transactions/{transaction_id}/pay-fine")

        assert response.status_code == 409
        assert response.json()["error"] == "no_fine_due"

    @pytest.mark.anyio
    async def test_history_and_statistics(self, client: AsyncClient, make_student, make_book):
        student = make_student()
        transaction_id = (await borrow(client, student, make_book())).json()["id"]
        await client.post(f"{API}/transactions/{transaction_id}/renew")

        history = await client.get(
            f"{API}/transactions/students/{student.id}/history", params={"limit": 10}
        )
        stats = await client.get(
            f"{API}/transactions/students/{student.id}/renewal-statistics"
        )

        assert history.status_code == 200
        assert len(history.json()["items"]) == 2
        assert history.json()["limit"] == 10
        assert stats.json()["total_renewals"] == 1

    @pytest.mark.anyio
    async def test_overdue_list_empty(self, client: AsyncClient, make_student, make_book):
        await borrow(client, make_student(), make_book())

        response = await client.get(f"{API}/transactions/overdue")

        assert response.status_code == 200
        assert response.json() == []


# ==========================================
# Reservations
# ==========================================

class TestReservationEndpoints:
    """Testes para /reservations."""

    @pytest.mark.anyio
    async def test_create_reservation(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)

        response = await client.post(
            f"{API}/reservations",
            json={"student_id": str(make_student().id), "book_id": str(book.id)},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["reservation"]["status"] == "active"
        assert data["reservation"]["queue_position"] == 1

    @pytest.mark.anyio
    async def test_reserve_available_book(self, client: AsyncClient, make_student, make_book):
        response = await client.post(
            f"{API}/reservations",
            json={"student_id": str(make_student().id), "book_id": str(make_book().id)},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "unavailable"

    @pytest.mark.anyio
    async def test_cancel_then_cancel_again(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)
        created = await client.post(
            f"{API}/reservations",
            json={"student_id": str(make_student().id), "book_id": str(book.id)},
        )
        reservation_id = created.json()["reservation"]["id"]

        first = await client.post(f"{API}/reservations/{reservation_id}/cancel")
        second = await client.post(f"{API}/reservations/{reservation_id}/cancel")

        assert first.status_code == 200
        assert first.json()["reservation"]["status"] == "cancelled"
        assert second.status_code == 409
        assert second.json()["error"] == "reservation_state"

    @pytest.mark.anyio
    async def test_book_queue(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)
        for _ in range(2):
            await client.post(
                f"{API}/reservations",
                json={"student_id": str(make_student().id), "book_id": str(book.id)},
            )

        response = await client.get(f"{API}/reservations/books/{book.id}")

        assert response.status_code == 200
        assert [r["queue_position"] for r in response.json()] == [1, 2]

    @pytest.mark.anyio
    async def test_next_in_queue(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)
        empty = await client.get(f"{API}/reservations/books/{book.id}/next")
        first = make_student()
        for student in (first, make_student()):
            await client.post(
                f"{API}/reservations",
                json={"student_id": str(student.id), "book_id": str(book.id)},
            )

        response = await client.get(f"{API}/reservations/books/{book.id}/next")

        assert empty.status_code == 404
        assert response.status_code == 200
        assert response.json()["student_id"] == str(first.id)
        assert response.json()["queue_position"] == 1

    @pytest.mark.anyio
    async def test_fulfill_then_fulfill_again(
        self, client: AsyncClient, make_student, make_book
    ):
        book = make_book(total_copies=1, available_copies=0)
        created = await client.post(
            f"{API}/reservations",
            json={"student_id": str(make_student().id), "book_id": str(book.id)},
        )
        reservation_id = created.json()["reservation"]["id"]

        first = await client.post(f"{API}/reservations/{reservation_id}/fulfill")
        second = await client.post(f"{API}/reservations/{reservation_id}/fulfill")

        assert first.status_code == 200
        assert first.json()["reservation"]["status"] == "fulfilled"
        assert first.json()["reservation"]["fulfilled_at"] is not None
        assert second.status_code == 409
        assert second.json()["error"] == "reservation_state"
        assert book.available_copies == 0

    @pytest.mark.anyio
    async def test_fulfill_unknown_reservation(self, client: AsyncClient):
        response = await client.post(f"{API}/reservations/{uuid.uuid4()}/fulfill")

        assert response.status_code == 404

    @pytest.mark.anyio
    async def test_list_reservations(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)
        ids = []
        for _ in range(3):
            created = await client.post(
                f"{API}/reservations",
                json={"student_id": str(make_student().id), "book_id": str(book.id)},
            )
            ids.append(created.json()["reservation"]["id"])
        await client.post(f"{API}/reservations/{ids[0]}/cancel")

        everything = await client.get(f"{API}/reservations")
        page = await client.get(f"{API}/reservations", params={"limit": 2})
        cancelled = await client.get(f"{API}/reservations", params={"status": "cancelled"})

        assert everything.status_code == 200
        assert sorted(r["id"] for r in everything.json()) == sorted(ids)
        assert len(page.json()) == 2
        assert [r["id"] for r in cancelled.json()] == [ids[0]]
        assert cancelled.json()[0]["queue_position"] is None

    @pytest.mark.anyio
    async def test_list_reservations_invalid_status(self, client: AsyncClient):
        response = await client.get(f"{API}/reservations", params={"status": "lost"})

        assert response.status_code == 422


# ==========================================
# Availability / System
# ==========================================

class TestAvailabilityAndSystemEndpoints:
    """Testes para consultas de elegibilidade e rotas de operação."""

    @pytest.mark.anyio
    async def test_book_availability(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=2)
        await borrow(client, make_student(), book)

        response = await client.get(f"{API}/books/{book.id}/availability")

        assert response.status_code == 200
        data = response.json()
        assert data["available_copies"] == 1
        assert data["borrowed_copies"] == 1
        assert data["is_available"] is True

    @pytest.mark.anyio
    async def test_borrowing_options(self, client: AsyncClient, make_student, make_book):
        student = make_student()
        book = make_book(total_copies=1, available_copies=0)

        response = await client.get(
            f"{API}/students/{student.id}/books/{book.id}/borrowing-options"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["can_borrow"] is False
        assert data["should_reserve"] is True

    @pytest.mark.anyio
    async def test_borrow_eligibility_unknown_book(self, client: AsyncClient, make_student):
        response = await client.get(
            f"{API}/students/{make_student().id}/books/{uuid.uuid4()}/borrow-eligibility"
        )

        assert response.status_code == 404

    @pytest.mark.anyio
    async def test_process_fulfillments(self, client: AsyncClient, make_student, make_book):
        book = make_book(total_copies=1, available_copies=0)
        await client.post(
            f"{API}/reservations",
            json={"student_id": str(make_student().id), "book_id": str(book.id)},
        )
        book.available_copies = 1

        response = await client.post(f"{API}/system/process-fulfillments")

        assert response.status_code == 200
        data = response.json()
        assert data["fulfilled_count"] == 1
        assert data["affected_book_ids"] == [str(book.id)]

    @pytest.mark.anyio
    async def test_expire_reservations(self, client: AsyncClient):
        response = await client.post(f"{API}/system/expire-reservations")

        assert response.status_code == 200
        assert response.json()["expired_count"] == 0
        assert response.json()["fulfilled_count"] == 0

    @pytest.mark.anyio
    async def test_fulfillment_failures_without_worker(self, client: AsyncClient):
        response = await client.get(f"{API}/system/fulfillment-failures")

        assert response.status_code == 200
        assert response.json() == []


# ==========================================
# Falhas transitórias
# ==========================================

class TestTransientFailures:
    """Falhas de banco e timeout viram 503."""

    @pytest.mark.anyio
    async def test_timeout_returns_503(self, client: AsyncClient, make_student, make_book):
        with patch.object(
            FulfillmentCoordinator,
            "borrow_book",
            AsyncMock(side_effect=asyncio.TimeoutError()),
        ):
            response = await borrow(client, make_student(), make_book())

        assert response.status_code == 503
        assert response.json()["error"] == "transient_failure"

    @pytest.mark.anyio
    async def test_database_error_returns_503(self, client: AsyncClient, make_student, make_book):
        error = DBAPIError("UPDATE books", {}, Exception("connection reset"))
        with patch.object(
            FulfillmentCoordinator, "borrow_book", AsyncMock(side_effect=error)
        ):
            response = await borrow(client, make_student(), make_book())

        assert response.status_code == 503
        assert response.json()["error"] == "transient_failure"
