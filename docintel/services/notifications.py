"""
Filing action collaborators: notifications and workflow triggers over webhooks.
"""
from typing import Any, Dict, Optional

import structlog

from docintel.exceptions import ExternalServiceError
from docintel.pipeline.collaborators import NotificationSender, WorkflowTrigger
from docintel.pipeline.models import DocumentRecord, to_primitive
from docintel.services.webhook_service import WebhookClient, get_webhook_client

logger = structlog.get_logger(__name__)


def _document_payload(document: DocumentRecord, parameters: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "document_id": document.id,
        "tenant_id": document.tenant_id,
        "file_name": document.file_name,
        "document_type": to_primitive(document.document_type),
        "parameters": to_primitive(parameters),
    }


class WebhookNotificationSender(NotificationSender):
    """SEND_NOTIFICATION delivered as a "document.notification" webhook."""

    EVENT_TYPE = "document.notification"

    def __init__(self, client: WebhookClient):
        self.client = client

    def send(self, document: DocumentRecord, parameters: Dict) -> None:
        delivery = self.client.deliver(self.EVENT_TYPE, _document_payload(document, parameters))
        if not delivery.success:
            raise ExternalServiceError("notification webhook", delivery.error_message or "delivery failed")


class WebhookWorkflowTrigger(WorkflowTrigger):
    """TRIGGER_WORKFLOW delivered as a "document.workflow" webhook."""

    EVENT_TYPE = "document.workflow"

    def __init__(self, client: WebhookClient):
        self.client = client

    def trigger(self, document: DocumentRecord, parameters: Dict) -> None:
        workflow = parameters.get("workflow")
        delivery = self.client.deliver(self.EVENT_TYPE, _document_payload(document, parameters))
        if not delivery.success:
            raise ExternalServiceError("workflow webhook", delivery.error_message or "delivery failed")
        logger.info("workflow_triggered", document_id=document.id, workflow=workflow)


def get_notification_sender() -> Optional[WebhookNotificationSender]:
    client = get_webhook_client()
    return WebhookNotificationSender(client) if client else None


def get_workflow_trigger() -> Optional[WebhookWorkflowTrigger]:
    client = get_webhook_client()
    return WebhookWorkflowTrigger(client) if client else None
