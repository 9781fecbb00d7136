"""Paystack payment gateway client"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx

from nannygold.config import settings
from nannygold.errors import ExternalServiceError

logger = logging.getLogger(__name__)

SUCCESS = "success"
DECLINED = "declined"


@dataclass
class GatewayResult:
    status: str
    reference: str
    authorization_id: str | None = None
    authorization_code: str | None = None
    message: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS


def to_minor_units(amount: Decimal) -> int:
    """Paystack takes amounts in cents"""
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class PaystackGateway:
    """
    Thin async client for the Paystack transaction API

    Transport failures, timeouts, 429 and 5xx responses are retried with
    exponential backoff. A provider rejection comes back as a declined
    GatewayResult and is never retried.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret_key = secret_key or settings.paystack_secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
        self.max_attempts = max(max_attempts or settings.gateway_max_attempts, 1)
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.gateway_backoff_seconds
        )
        self.transport = transport

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> httpx.Response:
        if not self.secret_key:
            raise ExternalServiceError("Paystack is not configured", retryable=False)

        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        last_error = "unknown error"

        for attempt in range(self.max_attempts):
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    headers=headers,
                    transport=self.transport,
                ) as client:
                    response = await client.request(method, path, json=payload)
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code < 500 and response.status_code != 429:
                    return response
                last_error = f"HTTP {response.status_code}"

            logger.warning(
                f"Paystack {method} {path} failed (attempt {attempt + 1}/{self.max_attempts}): {last_error}"
            )
            if attempt < self.max_attempts - 1:
                await asyncio.sleep(self.backoff_seconds * (2**attempt))

        raise ExternalServiceError(
            f"Paystack unavailable after {self.max_attempts} attempts: {last_error}",
            retryable=True,
        )

    def _parse(self, response: httpx.Response, reference: str) -> GatewayResult:
        try:
            body = response.json()
        except ValueError:
            return GatewayResult(
                status=DECLINED,
                reference=reference,
                message=f"Unreadable gateway response (HTTP {response.status_code})",
            )

        data = body.get("data") or {}
        authorization = data.get("authorization") or {}
        succeeded = bool(body.get("status")) and data.get("status") == SUCCESS
        return GatewayResult(
            status=SUCCESS if succeeded else DECLINED,
            reference=data.get("reference") or reference,
            authorization_id=str(data["id"]) if data.get("id") is not None else None,
            authorization_code=authorization.get("authorization_code"),
            message=data.get("gateway_response") or body.get("message"),
            raw=body,
        )

    async def authorize(
        self,
        amount: Decimal,
        reference: str,
        email: str,
        authorization_code: str,
        metadata: dict[str, Any] | None = None,
        currency: str | None = None,
    ) -> GatewayResult:
        """Charge a stored card authorization for a booking period"""
        response = await self._request(
            "POST",
            "/transaction/charge_authorization",
            {
                "authorization_code": authorization_code,
                "email": email,
                "amount": to_minor_units(amount),
                "currency": currency or settings.currency,
                "reference": reference,
                "metadata": metadata or {},
            },
        )
        result = self._parse(response, reference)
        logger.info(
            f"Paystack authorization {reference}: {result.status}",
            extra={"reference": reference, "gateway_message": result.message},
        )
        return result

    async def verify(self, reference: str) -> GatewayResult:
        """Confirm the transaction behind a reference settled successfully"""
        response = await self._request("GET", f"/transaction/verify/{reference}")
        result = self._parse(response, reference)
        logger.info(
            f"Paystack verification {reference}: {result.status}",
            extra={"reference": reference, "gateway_message": result.message},
        )
        return result
