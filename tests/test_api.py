"""API tests: identity, error mapping and the main booking flows"""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient

from nannygold.config import settings
from nannygold.db.models import BookingStatus, UserRole


class TestIdentity:
    async def test_missing_identity_is_401(self, client: AsyncClient):
        response = await client.get("/api/v1/bookings/")
        assert response.status_code == 401
        assert response.json()["error"] == "permission_denied"

    async def test_malformed_user_id_is_422(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/bookings/", headers={"X-User-Id": "nope", "X-User-Role": "client"}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    async def test_unknown_role_is_422(self, client: AsyncClient, headers_for):
        response = await client.get("/api/v1/bookings/", headers=headers_for(uuid.uuid4(), "parent"))
        assert response.status_code == 422


class TestBookingEndpoints:
    async def test_create_booking(self, client: AsyncClient, headers_for, make_client, make_nanny):
        customer = await make_client()
        nanny = await make_nanny(rating=4.9)

        response = await client.post(
            "/api/v1/bookings/",
            json={"booking_type": "long-term", "base_rate": "8000", "home_size": "Family Hub"},
            headers=headers_for(customer.id, UserRole.CLIENT),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["nanny_id"] == str(nanny.id)
        assert data["status"] == BookingStatus.PENDING.value
        assert Decimal(str(data["total_cost"])) == Decimal("8000")

    async def test_nanny_cannot_create_booking(self, client: AsyncClient, headers_for, make_nanny):
        nanny = await make_nanny()

        response = await client.post(
            "/api/v1/bookings/",
            json={"booking_type": "long_term", "base_rate": "8000", "home_size": "family_hub"},
            headers=headers_for(nanny.id, UserRole.NANNY),
        )
        assert response.status_code == 403

    async def test_unknown_booking_is_404(self, client: AsyncClient, headers_for, admins):
        response = await client.get(
            f"/api/v1/bookings/{uuid.uuid4()}", headers=headers_for(admins[0].id, UserRole.ADMIN)
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_stranger_cannot_read_booking(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking
    ):
        booking = await make_booking(await make_client(), await make_nanny())

        response = await client.get(
            f"/api/v1/bookings/{booking.id}", headers=headers_for(uuid.uuid4(), UserRole.CLIENT)
        )
        assert response.status_code == 403

    async def test_list_is_scoped_to_caller(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking
    ):
        nanny = await make_nanny()
        mine = await make_booking(await make_client("Ayanda"), nanny)
        await make_booking(await make_client("Busi"), nanny)

        response = await client.get("/api/v1/bookings/", headers=headers_for(mine.client_id, UserRole.CLIENT))

        assert response.status_code == 200
        assert [b["id"] for b in response.json()["data"]] == [str(mine.id)]

    async def test_completing_pending_booking_is_409(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking
    ):
        booking = await make_booking(await make_client(), await make_nanny())

        response = await client.post(
            f"/api/v1/bookings/{booking.id}/complete", headers=headers_for(booking.client_id, UserRole.CLIENT)
        )
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_cancel_by_client(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking
    ):
        booking = await make_booking(await make_client(), await make_nanny())

        response = await client.post(
            f"/api/v1/bookings/{booking.id}/cancel",
            json={"reason": "Moving abroad"},
            headers=headers_for(booking.client_id, UserRole.CLIENT),
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == BookingStatus.CANCELLED.value

    async def test_adjustment_requires_admin(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking
    ):
        booking = await make_booking(await make_client(), await make_nanny())

        response = await client.post(
            f"/api/v1/bookings/{booking.id}/adjustments",
            json={"delta": "250.00", "reason": "Extra hours"},
            headers=headers_for(booking.client_id, UserRole.CLIENT),
        )
        assert response.status_code == 403

    async def test_nanny_rejection_reassigns(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking, admins
    ):
        original = await make_nanny("Original", rating=4.0)
        replacement = await make_nanny("Replacement", rating=4.8)
        booking = await make_booking(await make_client(), original)

        response = await client.post(
            f"/api/v1/bookings/{booking.id}/reject",
            json={"reason": "Family emergency"},
            headers=headers_for(original.id, UserRole.NANNY),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["new_nanny_id"] == str(replacement.id)
        assert data["client_response"] == "pending"


class TestRevenueQuote:
    async def test_long_term_quote(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/bookings/revenue-split",
            params={"booking_type": "long_term", "amount": "8000", "home_size": "family_hub"},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "fixed_fee": 2500.0,
            "commission_percent": 15.0,
            "commission_amount": 1200.0,
            "payer_total": 3700.0,
            "payee_net": 6800.0,
        }

    async def test_negative_amount_rejected(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/bookings/revenue-split",
            params={"booking_type": "short_term", "amount": "-1"},
        )
        assert response.status_code == 422


class TestPaymentEndpoints:
    async def test_payments_disabled_is_503(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking, monkeypatch
    ):
        monkeypatch.setattr(settings, "enable_payments", False)
        booking = await make_booking(await make_client(), await make_nanny())

        response = await client.post(
            "/api/v1/payments/authorize",
            json={"booking_id": str(booking.id), "period_start": "2025-04-01", "period_end": "2025-04-30"},
            headers=headers_for(booking.client_id, UserRole.CLIENT),
        )
        assert response.status_code == 503

    async def test_authorize_as_client(
        self, client: AsyncClient, headers_for, make_client, make_nanny, make_booking, gateway, monkeypatch
    ):
        monkeypatch.setattr(settings, "enable_payments", True)
        booking = await make_booking(
            await make_client(), await make_nanny(), status=BookingStatus.CONFIRMED
        )

        response = await client.post(
            "/api/v1/payments/authorize",
            json={"booking_id": str(booking.id), "period_start": "2025-04-01", "period_end": "2025-04-30"},
            headers=headers_for(booking.client_id, UserRole.CLIENT),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "authorized"
        gateway.authorize.assert_awaited_once()

    async def test_sweeps_are_admin_only(self, client: AsyncClient, headers_for, make_client):
        customer = await make_client()

        response = await client.post(
            "/api/v1/payments/sweeps/capture", headers=headers_for(customer.id, UserRole.CLIENT)
        )
        assert response.status_code == 403

    async def test_expire_sweep_runs_without_payments(
        self, client: AsyncClient, headers_for, admins, monkeypatch
    ):
        monkeypatch.setattr(settings, "enable_payments", False)

        response = await client.post(
            "/api/v1/payments/sweeps/expire-reassignments",
            headers=headers_for(admins[0].id, UserRole.ADMIN),
        )
        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.parametrize("action", ["refund", "authorise"])
    async def test_unknown_sweep_is_422(self, client: AsyncClient, headers_for, admins, action):
        response = await client.post(
            f"/api/v1/payments/sweeps/{action}", headers=headers_for(admins[0].id, UserRole.ADMIN)
        )
        assert response.status_code == 422


class TestProfileEndpoints:
    async def test_client_saves_profile(self, client: AsyncClient, headers_for):
        user_id = uuid.uuid4()

        response = await client.put(
            "/api/v1/profiles/client",
            json={
                "profile": {"first_name": "Naledi", "phone": "082 555 0101"},
                "client": {"home_size": "Epic Estates", "number_of_children": 1},
            },
            headers=headers_for(user_id, UserRole.CLIENT),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == str(user_id)
        assert data["home_size"] == "epic_estates"

    async def test_bad_phone_is_422(self, client: AsyncClient, headers_for):
        response = await client.put(
            "/api/v1/profiles/client",
            json={"profile": {"phone": "0123"}},
            headers=headers_for(uuid.uuid4(), UserRole.CLIENT),
        )
        assert response.status_code == 422

    async def test_client_cannot_save_nanny_profile(self, client: AsyncClient, headers_for):
        response = await client.put(
            "/api/v1/profiles/nanny", json={}, headers=headers_for(uuid.uuid4(), UserRole.CLIENT)
        )
        assert response.status_code == 403
