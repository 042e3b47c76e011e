"""
Tenant-editable reference data: templates and filing rules.

Definitions are stored as JSON in the same shape as the YAML reference
files and parsed with the pipeline's from_dict constructors.
"""
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from docintel.database import Base
from docintel.pipeline.models import DocumentTemplate, FilingRule


class Template(Base):
    """Stored document template."""

    __tablename__ = "templates"

    id: str = Column(String(100), primary_key=True)
    name: str = Column(String(255), nullable=False)
    document_type: str = Column(String(50), nullable=False, index=True)
    language: str = Column(String(10), default="en", nullable=False, index=True)
    is_active: bool = Column(Boolean, default=True, nullable=False)
    definition = Column(JSON, nullable=False)
    created_at: datetime = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: datetime = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_template(self) -> DocumentTemplate:
        data = dict(self.definition or {})
        data.update({
            "id": self.id,
            "name": self.name,
            "document_type": self.document_type,
            "language": self.language,
            "is_active": self.is_active,
        })
        return DocumentTemplate.from_dict(data)

    def __repr__(self) -> str:
        return f"<Template(id={self.id}, name='{self.name}')>"


class FilingRuleModel(Base):
    """Stored filing rule."""

    __tablename__ = "filing_rules"

    id: str = Column(String(100), primary_key=True)
    name: str = Column(String(255), nullable=False)
    priority: int = Column(Integer, default=0, nullable=False)
    is_active: bool = Column(Boolean, default=True, nullable=False)
    definition = Column(JSON, nullable=False)
    created_at: datetime = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_rule(self) -> FilingRule:
        data = dict(self.definition or {})
        data.update({
            "id": self.id,
            "name": self.name,
            "priority": self.priority,
            "is_active": self.is_active,
        })
        return FilingRule.from_dict(data)

    def __repr__(self) -> str:
        return f"<FilingRuleModel(id={self.id}, priority={self.priority})>"
