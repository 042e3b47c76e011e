"""
Wires the default collaborators into a DocumentPipeline.
"""
from sqlalchemy.orm import Session

from docintel.config import get_settings
from docintel.pipeline.extraction import FieldExtractor
from docintel.pipeline.filing import FilingRuleEngine
from docintel.pipeline.orchestrator import DocumentPipeline
from docintel.services.event_publisher import get_event_publisher
from docintel.services.nlp_service import get_entity_extractor
from docintel.services.notifications import get_notification_sender, get_workflow_trigger
from docintel.services.ocr_service import get_ocr_provider
from docintel.services.repository import SQLDocumentRepository


def build_field_extractor() -> FieldExtractor:
    settings = get_settings()
    return FieldExtractor(
        entity_extractor=get_entity_extractor(),
        enable_post_processing=settings.enable_post_processing,
        enable_validation=settings.enable_validation,
    )


def build_filing_engine() -> FilingRuleEngine:
    return FilingRuleEngine(
        notifier=get_notification_sender(),
        workflow=get_workflow_trigger(),
        base_path=get_settings().filing_base_path,
    )


def build_pipeline(db: Session) -> DocumentPipeline:
    """Pipeline over the SQL repository with the configured OCR, NLP and webhook collaborators."""
    return DocumentPipeline(
        repository=SQLDocumentRepository(db),
        ocr_provider=get_ocr_provider(),
        extractor=build_field_extractor(),
        filing_engine=build_filing_engine(),
        publisher=get_event_publisher(),
    )
