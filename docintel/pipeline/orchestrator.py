"""
Document processing pipeline.

Runs one stored document through recognition, extraction (with validation)
and filing, publishing a stage event after each step and saving the
updated document at the end.
"""
import time
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Sequence

import structlog

from docintel.config import get_settings
from docintel.exceptions import (
    DocumentNotFoundError,
    OCRError,
    OCRInputError,
    PipelineCancelledError,
)
from docintel.pipeline.collaborators import DocumentRepository, EventPublisher, OCRProvider
from docintel.pipeline.extraction import FieldExtractor
from docintel.pipeline.filing import FilingRuleEngine
from docintel.pipeline.models import (
    DataExtractionResult,
    DocumentRecord,
    DocumentType,
    FilingResult,
    OCRResult,
    StageEvent,
    TemplateRecognitionResult,
)
from docintel.pipeline.recognition import TemplateRecognizer

logger = structlog.get_logger(__name__)

TEMPLATE_RECOGNITION_COMPLETED = "TEMPLATE_RECOGNITION_COMPLETED"
DATA_EXTRACTION_COMPLETED = "DATA_EXTRACTION_COMPLETED"
DOCUMENT_FILED = "DOCUMENT_FILED"


@dataclass
class PipelineResult:
    document_id: str
    tenant_id: str
    recognition: TemplateRecognitionResult
    extraction: DataExtractionResult
    filing: FilingResult
    document: DocumentRecord
    processing_time: float = 0.0
    events: List[str] = field(default_factory=list)


class DocumentPipeline:
    """Sequential recognition -> extraction -> filing for stored documents."""

    def __init__(
        self,
        repository: DocumentRepository,
        ocr_provider: Optional[OCRProvider] = None,
        recognizer: Optional[TemplateRecognizer] = None,
        extractor: Optional[FieldExtractor] = None,
        filing_engine: Optional[FilingRuleEngine] = None,
        publisher: Optional[EventPublisher] = None,
        min_template_confidence: Optional[float] = None,
    ):
        settings = get_settings()
        self.repository = repository
        self.ocr_provider = ocr_provider
        self.recognizer = recognizer or TemplateRecognizer()
        self.extractor = extractor or FieldExtractor(
            enable_post_processing=settings.enable_post_processing,
            enable_validation=settings.enable_validation,
        )
        self.filing_engine = filing_engine or FilingRuleEngine(base_path=settings.filing_base_path)
        self.publisher = publisher
        self.min_template_confidence = (
            min_template_confidence if min_template_confidence is not None else settings.min_template_confidence
        )

    def _check_cancelled(
        self,
        cancel_check: Optional[Callable[[], bool]],
        document_id: str,
        stage: str,
    ) -> None:
        if cancel_check is not None and cancel_check():
            logger.info("pipeline_cancelled", document_id=document_id, stage=stage)
            raise PipelineCancelledError(document_id, stage)

    def _publish(self, event: StageEvent) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.warning(
                "event_publish_failed",
                event_type=event.event_type,
                document_id=event.document_id,
                error=str(e),
            )

    def _load_ocr(self, document: DocumentRecord) -> List[OCRResult]:
        if self.ocr_provider is None or not document.file_path:
            raise OCRInputError(document.id, "no OCR results supplied and no stored file to recognize")
        try:
            pages = self.ocr_provider.recognize(document.file_path, document_id=document.id)
        except OCRError:
            raise
        except (OSError, ValueError) as e:
            raise OCRInputError(document.id, str(e)) from e
        if not pages:
            raise OCRInputError(document.id, "OCR produced no pages")
        return pages

    def process(
        self,
        document_id: str,
        tenant_id: str,
        ocr_results: Optional[Sequence[OCRResult]] = None,
        expected_document_type: Optional[DocumentType] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> PipelineResult:
        """
        Process a stored document end to end.

        Raises:
            DocumentNotFoundError: document does not exist for the tenant.
            OCRInputError: no OCR results could be obtained.
            PipelineCancelledError: cancel_check() returned True between stages.
            UnsupportedActionError: a fired filing rule has no action handler.
        """
        start_time = time.perf_counter()
        log = logger.bind(document_id=document_id, tenant_id=tenant_id)

        document = self.repository.get_document(document_id, tenant_id)
        if document is None:
            raise DocumentNotFoundError(document_id, tenant_id=tenant_id)

        pages = list(ocr_results) if ocr_results else self._load_ocr(document)
        language = document.language or get_settings().default_language
        events: List[str] = []

        # Recognition
        self._check_cancelled(cancel_check, document_id, "recognition")
        templates = self.repository.get_templates(language)
        recognition = self.recognizer.recognize(
            document_id,
            pages,
            templates,
            language=language,
            expected_document_type=expected_document_type,
        )
        self._publish(StageEvent(
            event_type=TEMPLATE_RECOGNITION_COMPLETED,
            document_id=document_id,
            tenant_id=tenant_id,
            summary={
                "template_id": recognition.recognized_template.id if recognition.recognized_template else None,
                "confidence": recognition.confidence,
            },
        ))
        events.append(TEMPLATE_RECOGNITION_COMPLETED)

        # Extraction and validation
        self._check_cancelled(cancel_check, document_id, "extraction")
        template = recognition.recognized_template
        if template is not None and recognition.confidence < self.min_template_confidence:
            log.info(
                "template_below_threshold",
                template=template.id,
                confidence=recognition.confidence,
                threshold=self.min_template_confidence,
            )
            template = None
        extraction = self.extractor.extract(document_id, pages, template=template, language=language)
        self._publish(StageEvent(
            event_type=DATA_EXTRACTION_COMPLETED,
            document_id=document_id,
            tenant_id=tenant_id,
            summary={
                "template_id": extraction.template_id,
                "fields": len(extraction.extracted_fields),
                "confidence": extraction.confidence,
            },
        ))
        events.append(DATA_EXTRACTION_COMPLETED)

        # Filing
        self._check_cancelled(cancel_check, document_id, "filing")
        if document.document_type is None and template is not None:
            document = replace(document, document_type=template.document_type)
        filing = self.filing_engine.file(
            document,
            extraction.extracted_fields,
            rules=self.repository.get_rules(),
        )

        updated = replace(
            document,
            document_type=filing.updated_document_type or document.document_type,
            classification=filing.updated_classification or document.classification,
            tags=list(filing.tags),
            metadata=dict(filing.updated_metadata),
            filing_path=filing.filing_path or document.filing_path,
        )
        self.repository.save_document(updated)

        self._publish(StageEvent(
            event_type=DOCUMENT_FILED,
            document_id=document_id,
            tenant_id=tenant_id,
            summary={
                "filing_path": filing.filing_path,
                "status": filing.status.value,
                "applied_rules": [r.rule_id for r in filing.applied_rules],
            },
        ))
        events.append(DOCUMENT_FILED)

        processing_time = round((time.perf_counter() - start_time) * 1000, 2)
        log.info(
            "document_processed",
            template=extraction.template_id,
            fields=len(extraction.extracted_fields),
            filing_path=filing.filing_path,
            duration_ms=processing_time,
        )
        return PipelineResult(
            document_id=document_id,
            tenant_id=tenant_id,
            recognition=recognition,
            extraction=extraction,
            filing=filing,
            document=updated,
            processing_time=processing_time,
            events=events,
        )
