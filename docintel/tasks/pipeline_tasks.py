"""
Background document processing.
"""
from typing import Any, Dict

import structlog
from sqlalchemy.orm import Session

from docintel.celery_app import celery_app
from docintel.database import SessionLocal
from docintel.exceptions import ExternalServiceError
from docintel.middleware.logging import log_performance, set_correlation_id
from docintel.services.pipeline_factory import build_pipeline
from docintel.services.repository import SQLDocumentRepository

logger = structlog.get_logger(__name__)


def get_db_session() -> Session:
    """Get a database session for use in Celery tasks."""
    return SessionLocal()


@log_performance("process_document")
def run_pipeline(db: Session, document_id: str, tenant_id: str) -> Dict[str, Any]:
    """Run the pipeline for a stored document and summarize the outcome."""
    result = build_pipeline(db).process(document_id, tenant_id)
    return {
        "document_id": document_id,
        "template_id": result.extraction.template_id,
        "fields": len(result.extraction.extracted_fields),
        "filing_path": result.filing.filing_path,
        "filing_status": result.filing.status.value,
        "events": result.events,
    }


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def process_document_task(self, document_id: str, tenant_id: str) -> Dict[str, Any]:
    """
    Process a stored document.

    Retries only when an external service is unavailable; every other
    error marks the document failed.
    """
    set_correlation_id(self.request.id or "")
    db = get_db_session()
    try:
        logger.info("document_processing_started", document_id=document_id, tenant_id=tenant_id)
        return run_pipeline(db, document_id, tenant_id)

    except ExternalServiceError as e:
        if self.request.retries < self.max_retries:
            logger.warning(
                "document_processing_retry",
                document_id=document_id,
                attempt=self.request.retries + 1,
                error=e.message,
            )
            raise self.retry(exc=e)
        logger.error("document_processing_failed", document_id=document_id, error=e.message)
        db.rollback()
        SQLDocumentRepository(db).mark_failed(document_id, tenant_id, e.message)
        raise

    except Exception as e:
        logger.error("document_processing_failed", document_id=document_id, error=str(e))
        db.rollback()
        SQLDocumentRepository(db).mark_failed(document_id, tenant_id, str(e))
        raise

    finally:
        db.close()
