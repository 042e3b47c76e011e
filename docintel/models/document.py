"""
Document model for stored financial documents.

Holds the file reference plus everything the pipeline updates: type,
classification, tags, metadata and filing path.
"""
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Enum, String, Text

from docintel.database import Base
from docintel.pipeline.models import DocumentClassification, DocumentRecord, DocumentType


class DocumentStatus(str, enum.Enum):
    """Document processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(Base):
    """
    SQLAlchemy model for stored documents.

    Attributes:
        id: Unique identifier.
        tenant_id: Owning tenant; every lookup is scoped by it.
        file_name: Original file name.
        file_path: Storage path of the uploaded file.
        document_type: Known or inferred document type.
        classification: Confidentiality level.
        tags: Tag names.
        doc_metadata: Free-form metadata (column "metadata").
        filing_path: Path assigned by filing.
        status: Current processing status.
    """

    __tablename__ = "documents"

    id: str = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    tenant_id: str = Column(String(64), nullable=False, index=True)
    file_name: str = Column(String(255), nullable=False)
    file_path: Optional[str] = Column(String(500), nullable=True)
    title: Optional[str] = Column(String(500), nullable=True)
    description: Optional[str] = Column(Text, nullable=True)
    document_type: Optional[DocumentType] = Column(Enum(DocumentType), nullable=True)
    classification: DocumentClassification = Column(
        Enum(DocumentClassification),
        default=DocumentClassification.INTERNAL,
        nullable=False,
    )
    tags = Column(JSON, default=list, nullable=False)
    doc_metadata = Column("metadata", JSON, default=dict, nullable=False)
    language: str = Column(String(10), default="en", nullable=False)
    client_id: Optional[str] = Column(String(64), nullable=True)
    portfolio_id: Optional[str] = Column(String(64), nullable=True)
    filing_path: Optional[str] = Column(String(1000), nullable=True)
    status: DocumentStatus = Column(
        Enum(DocumentStatus),
        default=DocumentStatus.PENDING,
        nullable=False,
    )
    error_message: Optional[str] = Column(Text, nullable=True)
    uploaded_at: datetime = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at: Optional[datetime] = Column(DateTime, nullable=True)

    def to_record(self) -> DocumentRecord:
        return DocumentRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            file_name=self.file_name,
            title=self.title or "",
            description=self.description or "",
            document_type=self.document_type,
            classification=self.classification or DocumentClassification.INTERNAL,
            tags=list(self.tags or []),
            metadata=dict(self.doc_metadata or {}),
            uploaded_at=self.uploaded_at or datetime.utcnow(),
            client_id=self.client_id,
            portfolio_id=self.portfolio_id,
            language=self.language or "en",
            file_path=self.file_path,
            filing_path=self.filing_path,
        )

    def apply_record(self, record: DocumentRecord) -> None:
        """Copy pipeline-updated values from a record onto this row."""
        self.document_type = record.document_type
        self.classification = record.classification
        self.tags = list(record.tags)
        self.doc_metadata = dict(record.metadata)
        self.filing_path = record.filing_path
        self.title = record.title
        self.description = record.description

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, file_name='{self.file_name}', status={self.status})>"
