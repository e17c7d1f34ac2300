"""
Outbound journey webhook client.
Posts scheduled messages to the external messaging system.
"""
import json
import logging
import time
from typing import Optional, Dict, Any

import httpx

from pipeline_journey.config import settings
from pipeline_journey.core.exceptions import WebhookDeliveryError
from pipeline_journey.core.security import sign_payload
from pipeline_journey.models.enums import DispatchErrorClass
from pipeline_journey.services.integrations.base import DeliveryResult, WebhookDispatcher

logger = logging.getLogger(__name__)


class HttpWebhookDispatcher(WebhookDispatcher):
    """
    httpx-based dispatcher with a bounded per-call timeout.

    Every request carries an Idempotency-Key so receivers can drop the
    duplicate a reclaimed row may produce. When a secret is configured the
    body is signed (X-Journey-Timestamp / X-Journey-Signature).
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self.secret = secret if secret is not None else settings.JOURNEY_WEBHOOK_SECRET
        self.client = client or httpx.AsyncClient(timeout=self.timeout)

    def _headers(self, body: bytes, idempotency_key: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        if self.secret:
            timestamp = str(int(time.time()))
            headers["X-Journey-Timestamp"] = timestamp
            headers["X-Journey-Signature"] = sign_payload(self.secret, timestamp, body)
        return headers

    async def dispatch(
        self,
        url: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None
    ) -> DeliveryResult:
        body = json.dumps(payload, default=str).encode("utf-8")
        start_time = time.monotonic()

        try:
            response = await self.client.post(
                url,
                content=body,
                headers=self._headers(body, idempotency_key),
                timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Journey webhook timeout after {self.timeout}s: {url}")
            raise WebhookDeliveryError(DispatchErrorClass.TIMEOUT.value, str(e) or "Request timeout")
        except httpx.TransportError as e:
            logger.warning(f"Journey webhook connection error: {url} ({e})")
            raise WebhookDeliveryError(DispatchErrorClass.CONNECTION_ERROR.value, str(e) or type(e).__name__)

        duration_ms = int((time.monotonic() - start_time) * 1000)

        if response.is_success:
            return DeliveryResult(status_code=response.status_code, duration_ms=duration_ms)

        logger.warning(f"Journey webhook rejected message: {url} -> {response.status_code}")
        raise WebhookDeliveryError(
            DispatchErrorClass.HTTP_STATUS.value,
            f"HTTP {response.status_code}: {response.text[:200]}",
            status_code=response.status_code
        )

    async def aclose(self):
        await self.client.aclose()
