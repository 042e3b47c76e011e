"""
Webhook delivery.

Signs JSON payloads with HMAC-SHA256 and posts them to a configured
endpoint. Used for stage events, filing notifications and workflow triggers.
"""
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from docintel.config import get_settings

logger = structlog.get_logger(__name__)

USER_AGENT = "DocIntel-Webhooks/1.0"


@dataclass
class WebhookDelivery:
    """Outcome of a single delivery attempt."""

    event_type: str
    event_id: str
    success: bool
    status_code: Optional[int] = None
    response_time_ms: int = 0
    error_message: Optional[str] = None


def generate_signature(secret: str, payload: str) -> str:
    """
    Generate HMAC-SHA256 signature for webhook payload.

    The signature is sent in the X-Webhook-Signature header as
    "sha256=<hex>". Receivers recompute it to authenticate the request.
    """
    return hmac.new(
        secret.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class WebhookClient:
    """Synchronous webhook sender. Never raises on delivery failure."""

    def __init__(
        self,
        url: str,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._client = client

    def _headers(self, event_type: str, event_id: str, body: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Event": event_type,
            "X-Webhook-Event-ID": event_id,
            "X-Webhook-Timestamp": str(int(time.time())),
            "User-Agent": USER_AGENT,
        }
        if self.secret:
            headers["X-Webhook-Signature"] = f"sha256={generate_signature(self.secret, body)}"
        return headers

    def deliver(self, event_type: str, data: Dict[str, Any], event_id: Optional[str] = None) -> WebhookDelivery:
        """
        Deliver one event.

        Args:
            event_type: Event name, sent in X-Webhook-Event.
            data: JSON-serializable event data.
            event_id: Unique event id; generated when omitted.

        Returns:
            WebhookDelivery; success only for 2xx responses.
        """
        event_id = event_id or str(uuid.uuid4())
        body = json.dumps({
            "event": event_type,
            "event_id": event_id,
            "timestamp": datetime.utcnow().isoformat(),
            "data": data,
        }, default=str)
        headers = self._headers(event_type, event_id, body)

        start_time = time.time()
        delivery = WebhookDelivery(event_type=event_type, event_id=event_id, success=False)
        try:
            if self._client is not None:
                response = self._client.post(self.url, content=body, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client() as client:
                    response = client.post(self.url, content=body, headers=headers, timeout=self.timeout)

            delivery.status_code = response.status_code
            delivery.response_time_ms = int((time.time() - start_time) * 1000)
            if 200 <= response.status_code < 300:
                delivery.success = True
                logger.info(
                    "webhook_delivered",
                    event_type=event_type,
                    status_code=response.status_code,
                    response_time_ms=delivery.response_time_ms,
                )
            else:
                delivery.error_message = f"HTTP {response.status_code}"
                logger.warning(
                    "webhook_delivery_failed",
                    event_type=event_type,
                    status_code=response.status_code,
                )

        except httpx.TimeoutException:
            delivery.response_time_ms = int((time.time() - start_time) * 1000)
            delivery.error_message = "Request timeout"
            logger.warning("webhook_timeout", event_type=event_type, url=self.url)

        except httpx.RequestError as e:
            delivery.response_time_ms = int((time.time() - start_time) * 1000)
            delivery.error_message = str(e)
            logger.error("webhook_request_error", event_type=event_type, error=str(e))

        return delivery


def get_webhook_client() -> Optional[WebhookClient]:
    """Client for the configured webhook URL, or None when none is configured."""
    settings = get_settings()
    if not settings.webhook_url:
        return None
    return WebhookClient(settings.webhook_url, settings.webhook_secret, settings.webhook_timeout)
