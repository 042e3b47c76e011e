"""
Document repositories.

SQLDocumentRepository persists through SQLAlchemy; InMemoryDocumentRepository
backs tests and one-off runs. Both fall back to the bundled YAML reference
data when no templates are stored.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from docintel.exceptions import DocumentNotFoundError
from docintel.models.document import Document, DocumentStatus
from docintel.models.reference import FilingRuleModel, Template
from docintel.pipeline.collaborators import DocumentRepository
from docintel.pipeline.models import DocumentRecord, DocumentTemplate, FilingRule
from docintel.services.reference_data import ReferenceDataService, get_reference_data

logger = structlog.get_logger(__name__)


class SQLDocumentRepository(DocumentRepository):
    """Repository on a SQLAlchemy session. Commits on save."""

    def __init__(self, db: Session, reference_data: Optional[ReferenceDataService] = None):
        self.db = db
        self._reference_data = reference_data

    @property
    def reference_data(self) -> ReferenceDataService:
        if self._reference_data is None:
            self._reference_data = get_reference_data()
        return self._reference_data

    def _row(self, document_id: str, tenant_id: str) -> Optional[Document]:
        return (
            self.db.query(Document)
            .filter(Document.id == document_id, Document.tenant_id == tenant_id)
            .first()
        )

    def get_document(self, document_id: str, tenant_id: str) -> Optional[DocumentRecord]:
        row = self._row(document_id, tenant_id)
        return row.to_record() if row else None

    def save_document(self, document: DocumentRecord) -> None:
        row = self._row(document.id, document.tenant_id)
        if row is None:
            raise DocumentNotFoundError(document.id, tenant_id=document.tenant_id)
        row.apply_record(document)
        row.status = DocumentStatus.COMPLETED
        row.processed_at = datetime.utcnow()
        self.db.commit()
        logger.info("document_saved", document_id=document.id, filing_path=document.filing_path)

    def add_document(self, document: DocumentRecord) -> Document:
        """Insert a new document row."""
        row = Document(
            id=document.id,
            tenant_id=document.tenant_id,
            file_name=document.file_name,
            file_path=document.file_path,
            language=document.language,
            client_id=document.client_id,
            portfolio_id=document.portfolio_id,
            uploaded_at=document.uploaded_at,
        )
        row.apply_record(document)
        self.db.add(row)
        self.db.commit()
        return row

    def mark_failed(self, document_id: str, tenant_id: str, error_message: str) -> None:
        row = self._row(document_id, tenant_id)
        if row is None:
            return
        row.status = DocumentStatus.FAILED
        row.error_message = error_message[:2000]
        self.db.commit()

    def get_templates(self, language: Optional[str] = None) -> List[DocumentTemplate]:
        query = self.db.query(Template)
        if language is not None:
            query = query.filter(Template.language == language)
        stored = [row.to_template() for row in query.all()]
        if stored:
            return stored
        return self.reference_data.templates_for(language)

    def get_template(self, template_id: str) -> Optional[DocumentTemplate]:
        row = self.db.query(Template).filter(Template.id == template_id).first()
        if row is not None:
            return row.to_template()
        return self.reference_data.get_template(template_id)

    def get_rules(self) -> List[FilingRule]:
        return [row.to_rule() for row in self.db.query(FilingRuleModel).all()]


class InMemoryDocumentRepository(DocumentRepository):
    """Dict-backed repository."""

    def __init__(
        self,
        documents: Iterable[DocumentRecord] = (),
        templates: Optional[Iterable[DocumentTemplate]] = None,
        rules: Iterable[FilingRule] = (),
    ):
        self._documents: Dict[Tuple[str, str], DocumentRecord] = {
            (d.tenant_id, d.id): d for d in documents
        }
        self._templates = list(templates) if templates is not None else None
        self._rules = list(rules)
        self.saved: List[DocumentRecord] = []

    def add_document(self, document: DocumentRecord) -> None:
        self._documents[(document.tenant_id, document.id)] = document

    def get_document(self, document_id: str, tenant_id: str) -> Optional[DocumentRecord]:
        return self._documents.get((tenant_id, document_id))

    def save_document(self, document: DocumentRecord) -> None:
        key = (document.tenant_id, document.id)
        if key not in self._documents:
            raise DocumentNotFoundError(document.id, tenant_id=document.tenant_id)
        self._documents[key] = document
        self.saved.append(document)

    def get_templates(self, language: Optional[str] = None) -> List[DocumentTemplate]:
        if self._templates is None:
            return get_reference_data().templates_for(language)
        return [t for t in self._templates if language is None or t.language == language]

    def get_rules(self) -> List[FilingRule]:
        return list(self._rules)
