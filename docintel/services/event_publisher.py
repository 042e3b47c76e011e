"""
Stage event publishers.
"""
from typing import List, Optional

import structlog

from docintel.pipeline.collaborators import EventPublisher
from docintel.pipeline.models import StageEvent, to_primitive
from docintel.services.webhook_service import WebhookClient, get_webhook_client

logger = structlog.get_logger(__name__)


class LoggingEventPublisher(EventPublisher):
    """Writes each event to the log and keeps it in memory."""

    def __init__(self):
        self.events: List[StageEvent] = []

    def publish(self, event: StageEvent) -> None:
        self.events.append(event)
        logger.info(
            "stage_event",
            event_type=event.event_type,
            document_id=event.document_id,
            tenant_id=event.tenant_id,
            **to_primitive(event.summary),
        )


class WebhookEventPublisher(EventPublisher):
    """Posts events to a webhook. Failed deliveries are logged, never raised."""

    def __init__(self, client: WebhookClient):
        self.client = client

    def publish(self, event: StageEvent) -> None:
        delivery = self.client.deliver(
            event.event_type.lower(),
            {
                "document_id": event.document_id,
                "tenant_id": event.tenant_id,
                "occurred_at": event.timestamp.isoformat(),
                "summary": to_primitive(event.summary),
            },
        )
        if not delivery.success:
            logger.warning(
                "stage_event_not_delivered",
                event_type=event.event_type,
                document_id=event.document_id,
                error=delivery.error_message,
            )


def get_event_publisher() -> EventPublisher:
    """Webhook publisher when a webhook URL is configured, else the logging publisher."""
    client: Optional[WebhookClient] = get_webhook_client()
    if client is not None:
        return WebhookEventPublisher(client)
    return LoggingEventPublisher()
