"""Tests for the Paystack gateway client"""

import json
from decimal import Decimal

import httpx
import pytest

from nannygold.errors import ExternalServiceError
from nannygold.services.gateway import PaystackGateway, to_minor_units


def make_gateway(handler, max_attempts: int = 3) -> PaystackGateway:
    return PaystackGateway(
        secret_key="sk_test_123",
        base_url="https://paystack.test",
        max_attempts=max_attempts,
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
    )


def success_body(reference: str) -> dict:
    return {
        "status": True,
        "message": "Charge attempted",
        "data": {
            "id": 4099260516,
            "status": "success",
            "reference": reference,
            "gateway_response": "Approved",
            "authorization": {"authorization_code": "AUTH_new"},
        },
    }


class TestAuthorize:
    async def test_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=success_body("ref-1"))

        result = await make_gateway(handler).authorize(
            amount=Decimal("8000.00"),
            reference="ref-1",
            email="payer@example.com",
            authorization_code="AUTH_saved",
            metadata={"booking_id": "b1"},
        )

        assert result.succeeded
        assert result.authorization_id == "4099260516"
        assert result.authorization_code == "AUTH_new"
        request = seen[0]
        assert request.url.path == "/transaction/charge_authorization"
        assert request.headers["Authorization"] == "Bearer sk_test_123"
        payload = json.loads(request.content)
        assert payload["amount"] == 800000
        assert payload["currency"] == "ZAR"

    async def test_decline_is_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                200,
                json={"status": True, "data": {"status": "failed", "gateway_response": "Declined"}},
            )

        result = await make_gateway(handler).authorize(
            amount=Decimal("100"), reference="ref-2", email="p@example.com", authorization_code="AUTH"
        )

        assert not result.succeeded
        assert result.status == "declined"
        assert result.message == "Declined"
        assert calls == 1

    async def test_provider_error_status_is_a_decline(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"status": False, "message": "Invalid authorization code"})

        result = await make_gateway(handler).authorize(
            amount=Decimal("100"), reference="ref-3", email="p@example.com", authorization_code="bad"
        )
        assert result.status == "declined"
        assert result.message == "Invalid authorization code"

    async def test_server_errors_are_retried_then_succeed(self):
        responses = [httpx.Response(502), httpx.Response(503), httpx.Response(200, json=success_body("ref-4"))]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        result = await make_gateway(handler).authorize(
            amount=Decimal("100"), reference="ref-4", email="p@example.com", authorization_code="AUTH"
        )
        assert result.succeeded
        assert responses == []

    async def test_transport_errors_exhaust_attempts(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceError) as exc_info:
            await make_gateway(handler, max_attempts=2).authorize(
                amount=Decimal("100"), reference="ref-5", email="p@example.com", authorization_code="AUTH"
            )

        assert calls == 2
        assert exc_info.value.details["retryable"] is True

    async def test_missing_secret_key(self, monkeypatch):
        from nannygold.config import settings

        monkeypatch.setattr(settings, "paystack_secret_key", None)
        gateway = PaystackGateway(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        with pytest.raises(ExternalServiceError) as exc_info:
            await gateway.verify("ref-6")
        assert exc_info.value.details["retryable"] is False


class TestVerify:
    async def test_verify_uses_reference_path(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/transaction/verify/ref-7"
            return httpx.Response(200, json=success_body("ref-7"))

        result = await make_gateway(handler).verify("ref-7")
        assert result.succeeded
        assert result.reference == "ref-7"

    async def test_unreadable_body_is_a_decline(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        result = await make_gateway(handler).verify("ref-8")
        assert result.status == "declined"


def test_minor_units_round_half_up():
    assert to_minor_units(Decimal("10.005")) == 1001
    assert to_minor_units(Decimal("8000")) == 800000
