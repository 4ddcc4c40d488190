# /copay_ussd/services/payment_service.py

import httpx
import logging
import tenacity
from typing import Any, Dict, Optional

from copay_ussd.config.settings import settings
from copay_ussd.models.directory import PaymentResult, PaymentTypeOption
from copay_ussd.services.collaborators import PaymentInitiator
from copay_ussd.services.session_store import session_store
from copay_ussd.utils.circuit_breaker import RedisCircuitBreaker
from copay_ussd.utils.exceptions import DownstreamError

# Client for the Co-Pay payments API. The API de-duplicates on the
# idempotency key, which is what makes transport-level retries here safe:
# every attempt of one initiation carries the same key.

logger = logging.getLogger(__name__)


class PaymentService(PaymentInitiator):
    def __init__(self, base_url: str, api_key: Optional[str], redis_client: Any = None, timeout: float = 15.0):
        self.base_url = base_url
        self.api_key = api_key
        self.http_client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.circuit_breaker = RedisCircuitBreaker(redis_client, "payments_api")

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=1, min=0.5, max=4),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.circuit_breaker.call(func, *args, **kwargs)

    def _headers(self, idempotency_key: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Idempotency-Key": idempotency_key}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def initiate(
        self,
        idempotency_key: str,
        user_id: str,
        cooperative_id: str,
        payment_type: PaymentTypeOption,
        channel: str,
        payment_account: str,
    ) -> PaymentResult:
        payload = {
            "idempotencyKey": idempotency_key,
            "senderId": user_id,
            "targetCooperativeId": cooperative_id,
            "paymentTypeId": payment_type.id,
            "amount": payment_type.amount,
            "paymentMethod": channel,
            "paymentAccount": payment_account,
            "description": f"USSD Payment - {payment_type.name}",
        }

        response = await self.resilient_api_call(
            self.http_client.post, "/payments/initiate", json=payload, headers=self._headers(idempotency_key)
        )

        if response.status_code >= 400:
            logger.error(
                f"payment_initiation_failed key={idempotency_key}: {response.status_code} - {response.text[:200]}"
            )
            raise DownstreamError("payments_api", "initiation rejected", status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise DownstreamError("payments_api", "response is not JSON", status_code=response.status_code) from e

        # The backend wraps some responses in {"data": {...}}.
        data = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("id"):
            raise DownstreamError("payments_api", "response has no payment id", status_code=response.status_code)

        result = PaymentResult(
            id=str(data["id"]),
            amount=data.get("amount", payment_type.amount),
            status=str(data.get("status", "")).upper(),
        )
        logger.info(f"Payment {result.id} initiated with status {result.status} (key={idempotency_key})")
        return result

    async def cleanup(self):
        await self.http_client.aclose()


# Globally accessible instance
payment_service = PaymentService(
    settings.payments_api_url,
    settings.payments_api_key,
    redis_client=getattr(session_store, "redis", None),
)
