"""
Tests for the end-to-end document pipeline.
"""
from dataclasses import replace
from typing import List

import pytest

from docintel.exceptions import (
    DocumentNotFoundError,
    OCRInputError,
    PipelineCancelledError,
)
from docintel.pipeline.collaborators import EventPublisher, OCRProvider
from docintel.pipeline.models import DocumentClassification, DocumentType, OCRResult, StageEvent
from docintel.pipeline.orchestrator import (
    DATA_EXTRACTION_COMPLETED,
    DOCUMENT_FILED,
    TEMPLATE_RECOGNITION_COMPLETED,
    DocumentPipeline,
)
from docintel.services.event_publisher import LoggingEventPublisher
from docintel.services.repository import InMemoryDocumentRepository
from ocr_builders import make_line, make_page


class FailingPublisher(EventPublisher):
    def publish(self, event: StageEvent) -> None:
        raise ConnectionError("broker unreachable")


class StaticOCRProvider(OCRProvider):
    def __init__(self, pages: List[OCRResult]):
        self.pages = pages
        self.calls: List[str] = []

    def recognize(self, file_path: str, document_id: str = "") -> List[OCRResult]:
        self.calls.append(file_path)
        return self.pages


class CancelAt:
    """cancel_check that returns True on its n-th call."""

    def __init__(self, n: int):
        self.n = n
        self.calls = 0

    def __call__(self) -> bool:
        self.calls += 1
        return self.calls >= self.n


@pytest.fixture
def trade_pages(tc_page) -> List[OCRResult]:
    lines = list(tc_page.lines) + [
        make_line("Trade Date: 03/15/2026", 50, 400, width=300),
        make_line("Net Amount: $150,000.00", 50, 430, width=300),
    ]
    return [make_page(lines)]


@pytest.fixture
def untyped_document(trade_document):
    return replace(trade_document, document_type=None)


@pytest.fixture
def repository(untyped_document) -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository([untyped_document])


@pytest.fixture
def publisher() -> LoggingEventPublisher:
    return LoggingEventPublisher()


class TestDocumentPipeline:
    """Tests for DocumentPipeline.process."""

    def test_high_value_trade(self, repository, publisher, trade_pages):
        """Test a trade confirmation is recognized, extracted and filed."""
        pipeline = DocumentPipeline(repository, publisher=publisher)

        result = pipeline.process("doc-1", "tenant-a", ocr_results=trade_pages)

        assert result.recognition.recognized_template.id == "trade_confirmation_v1"
        assert result.extraction.get_field("amount").value == 150000.0
        assert [r.rule_id for r in result.filing.applied_rules] == ["high_value_trades"]
        assert result.document.document_type == DocumentType.TRADE_CONFIRMATION
        assert result.document.classification == DocumentClassification.HIGHLY_CONFIDENTIAL
        assert "high-value" in result.document.tags
        assert result.document.filing_path == "/documents/trades/2026/03/portfolio_P1/confirm.pdf"

    def test_saved_and_events_published(self, repository, publisher, trade_pages):
        """Test the updated document is saved and one event follows each stage."""
        result = DocumentPipeline(repository, publisher=publisher).process(
            "doc-1", "tenant-a", ocr_results=trade_pages,
        )

        assert repository.saved == [result.document]
        assert [e.event_type for e in publisher.events] == [
            TEMPLATE_RECOGNITION_COMPLETED,
            DATA_EXTRACTION_COMPLETED,
            DOCUMENT_FILED,
        ]
        assert result.events == [e.event_type for e in publisher.events]
        assert publisher.events[-1].summary["applied_rules"] == ["high_value_trades"]

    def test_low_confidence_template_dropped(self, repository, trade_pages):
        """Test templates under the confidence threshold do not guide extraction."""
        pipeline = DocumentPipeline(repository, min_template_confidence=0.99)

        result = pipeline.process("doc-1", "tenant-a", ocr_results=trade_pages)

        assert result.extraction.template_id is None
        assert result.extraction.get_field("amount") is None
        assert result.filing.applied_rules == []

    def test_publisher_errors_ignored(self, repository, trade_pages):
        """Test a failing publisher never fails processing."""
        result = DocumentPipeline(repository, publisher=FailingPublisher()).process(
            "doc-1", "tenant-a", ocr_results=trade_pages,
        )

        assert result.filing.filing_path
        assert len(repository.saved) == 1

    def test_ocr_provider_used_for_stored_file(self, untyped_document, trade_pages):
        """Test stored files are recognized when no OCR is supplied."""
        stored = replace(untyped_document, file_path="/uploads/confirm.pdf")
        provider = StaticOCRProvider(trade_pages)

        result = DocumentPipeline(InMemoryDocumentRepository([stored]), ocr_provider=provider).process(
            "doc-1", "tenant-a",
        )

        assert provider.calls == ["/uploads/confirm.pdf"]
        assert result.recognition.recognized_template.id == "trade_confirmation_v1"

    def test_no_ocr_available(self, repository):
        """Test processing without OCR input or a provider fails."""
        with pytest.raises(OCRInputError):
            DocumentPipeline(repository).process("doc-1", "tenant-a")

    def test_empty_provider_output(self, untyped_document):
        """Test a provider returning no pages fails."""
        stored = replace(untyped_document, file_path="/uploads/confirm.pdf")
        pipeline = DocumentPipeline(InMemoryDocumentRepository([stored]), ocr_provider=StaticOCRProvider([]))

        with pytest.raises(OCRInputError):
            pipeline.process("doc-1", "tenant-a")

    def test_unknown_document(self, repository, trade_pages):
        """Test unknown documents and other tenants' documents are not found."""
        pipeline = DocumentPipeline(repository)

        with pytest.raises(DocumentNotFoundError):
            pipeline.process("missing", "tenant-a", ocr_results=trade_pages)
        with pytest.raises(DocumentNotFoundError):
            pipeline.process("doc-1", "tenant-b", ocr_results=trade_pages)

    @pytest.mark.parametrize("call,stage,events", [
        (1, "recognition", 0),
        (2, "extraction", 1),
        (3, "filing", 2),
    ])
    def test_cancelled_between_stages(self, repository, publisher, trade_pages, call, stage, events):
        """Test cancellation stops before the next stage and nothing is saved."""
        pipeline = DocumentPipeline(repository, publisher=publisher)

        with pytest.raises(PipelineCancelledError) as exc_info:
            pipeline.process("doc-1", "tenant-a", ocr_results=trade_pages, cancel_check=CancelAt(call))

        assert exc_info.value.details["stage"] == stage
        assert len(publisher.events) == events
        assert repository.saved == []
