"""
Tests for document repositories.
"""
from dataclasses import replace

import pytest

from docintel.exceptions import DocumentNotFoundError
from docintel.models.document import Document, DocumentStatus
from docintel.models.reference import FilingRuleModel, Template
from docintel.pipeline.models import ActionType, DocumentClassification, DocumentType
from docintel.services.repository import InMemoryDocumentRepository, SQLDocumentRepository


@pytest.fixture
def repository(db_session) -> SQLDocumentRepository:
    return SQLDocumentRepository(db_session)


class TestSQLDocumentRepository:
    """Tests for SQLDocumentRepository."""

    def test_round_trip(self, repository, trade_document):
        """Test an added document reads back as the same record."""
        repository.add_document(trade_document)

        record = repository.get_document("doc-1", "tenant-a")

        assert record.file_name == "confirm.pdf"
        assert record.document_type == DocumentType.TRADE_CONFIRMATION
        assert record.portfolio_id == "P1"
        assert record.uploaded_at == trade_document.uploaded_at

    def test_scoped_by_tenant(self, repository, trade_document):
        """Test documents are invisible to other tenants."""
        repository.add_document(trade_document)

        assert repository.get_document("doc-1", "tenant-b") is None

    def test_save_updates_row(self, repository, db_session, trade_document):
        """Test saving writes pipeline results and completes the document."""
        repository.add_document(trade_document)
        updated = replace(
            trade_document,
            classification=DocumentClassification.HIGHLY_CONFIDENTIAL,
            tags=["high-value"],
            metadata={"desk": "equities"},
            filing_path="/documents/trades/2026/03/portfolio_P1/confirm.pdf",
        )

        repository.save_document(updated)
        row = db_session.query(Document).filter(Document.id == "doc-1").first()

        assert row.status == DocumentStatus.COMPLETED
        assert row.processed_at is not None
        assert row.tags == ["high-value"]
        assert row.doc_metadata == {"desk": "equities"}
        assert row.classification == DocumentClassification.HIGHLY_CONFIDENTIAL

    def test_save_unknown_document(self, repository, trade_document):
        """Test saving a document that was never added fails."""
        with pytest.raises(DocumentNotFoundError):
            repository.save_document(trade_document)

    def test_mark_failed(self, repository, db_session, trade_document):
        """Test failures are recorded on the row."""
        repository.add_document(trade_document)

        repository.mark_failed("doc-1", "tenant-a", "OCR engine offline")
        row = db_session.query(Document).filter(Document.id == "doc-1").first()

        assert row.status == DocumentStatus.FAILED
        assert row.error_message == "OCR engine offline"

    def test_templates_fall_back_to_reference_data(self, repository):
        """Test bundled templates are used when none are stored."""
        templates = repository.get_templates("en")

        assert [t.id for t in templates] == ["trade_confirmation_v1", "account_statement_v1"]
        assert repository.get_templates("de") == []

    def test_stored_templates_replace_reference_data(self, repository, db_session):
        """Test stored templates are returned instead of the bundled ones."""
        db_session.add(Template(
            id="custom_trade",
            name="Custom trade",
            document_type="TRADE_CONFIRMATION",
            language="en",
            definition={"patterns": [{"type": "LAYOUT", "pattern": "HAS_TABLE", "weight": 1.0}]},
        ))
        db_session.commit()

        templates = repository.get_templates("en")

        assert [t.id for t in templates] == ["custom_trade"]
        assert templates[0].document_type == DocumentType.TRADE_CONFIRMATION
        assert templates[0].template_patterns[0].pattern == "HAS_TABLE"
        assert repository.get_template("trade_confirmation_v1") is not None

    def test_stored_rules(self, repository, db_session):
        """Test stored filing rules are parsed."""
        db_session.add(FilingRuleModel(
            id="tag_all",
            name="Tag everything",
            priority=5,
            definition={
                "conditions": [{"field": "document.fileName", "operator": "EXISTS"}],
                "actions": [{"type": "ADD_TAG", "parameters": {"tag": "seen"}}],
            },
        ))
        db_session.commit()

        rules = repository.get_rules()

        assert [r.id for r in rules] == ["tag_all"]
        assert rules[0].priority == 5
        assert rules[0].actions[0].action_type == ActionType.ADD_TAG


class TestInMemoryDocumentRepository:
    """Tests for InMemoryDocumentRepository."""

    def test_get_and_save(self, trade_document):
        """Test saved documents replace the stored copy."""
        repository = InMemoryDocumentRepository([trade_document])
        updated = replace(trade_document, tags=["x"])

        repository.save_document(updated)

        assert repository.get_document("doc-1", "tenant-a").tags == ["x"]
        assert repository.saved == [updated]

    def test_save_unknown(self, trade_document):
        """Test saving an unknown document fails."""
        with pytest.raises(DocumentNotFoundError):
            InMemoryDocumentRepository().save_document(trade_document)

    def test_templates_filtered_by_language(self):
        """Test explicit templates are filtered by language."""
        repository = InMemoryDocumentRepository(templates=[])

        assert repository.get_templates("en") == []
        assert len(InMemoryDocumentRepository().get_templates("en")) == 2
