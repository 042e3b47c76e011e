"""
Interfaces for the services the pipeline calls out to, and a keyed registry
for resolving implementations by name.
"""
from abc import ABC, abstractmethod
from typing import Dict, Generic, List, Optional, Sequence, TypeVar

from docintel.exceptions import UnknownCollaboratorError
from docintel.pipeline.models import (
    ClassifierOutput,
    DocumentRecord,
    DocumentTemplate,
    Entity,
    FilingRule,
    ModelPrediction,
    OCRResult,
    StageEvent,
)

T = TypeVar("T")


class Registry(Generic[T]):
    """
    String-keyed registration table.

    Lookups of unregistered keys raise UnknownCollaboratorError rather than
    returning None.
    """

    def __init__(self, kind: str, entries: Optional[Dict[str, T]] = None):
        self.kind = kind
        self._entries: Dict[str, T] = dict(entries or {})

    def register(self, key: str, value: T) -> None:
        self._entries[key] = value

    def get(self, key: str) -> T:
        try:
            return self._entries[key]
        except KeyError:
            raise UnknownCollaboratorError(self.kind, key, available=sorted(self._entries)) from None

    def resolve(self, key: str, fallback: str) -> T:
        """Look up `key`, falling back to `fallback` when it is not registered."""
        if key in self._entries:
            return self._entries[key]
        return self.get(fallback)

    def keys(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class OCRProvider(ABC):
    """Produces OCR pages for a stored file."""

    @abstractmethod
    def recognize(self, file_path: str, document_id: str = "") -> List[OCRResult]:
        """
        Run OCR over a document file.

        Raises:
            OCRError: when the file cannot be read or recognized.
        """


class TemplateClassifier(ABC):
    """Scores document types from OCR-derived numeric features."""

    @abstractmethod
    def classify(self, features: Sequence[float]) -> ClassifierOutput:
        """Return the most likely document type and the alternatives."""


class DocumentTypeClassifier(ABC):
    """Classifies a document into a DocumentType from its text."""

    @abstractmethod
    def classify(self, text: str) -> ClassifierOutput:
        """Return the most likely document type for the text."""


class EntityExtractor(ABC):
    """Named-entity extraction."""

    @abstractmethod
    def extract(self, text: str, language: str = "en") -> List[Entity]:
        """Return entities found in `text`."""


class FieldModel(ABC):
    """Per-field value prediction model."""

    @abstractmethod
    def predict(self, field_name: str, text: str) -> Optional[ModelPrediction]:
        """Predict a value for `field_name`, or None when nothing is found."""


class DocumentRepository(ABC):
    """Storage for documents and reference data."""

    @abstractmethod
    def get_document(self, document_id: str, tenant_id: str) -> Optional[DocumentRecord]:
        pass

    @abstractmethod
    def save_document(self, document: DocumentRecord) -> None:
        pass

    @abstractmethod
    def get_templates(self, language: Optional[str] = None) -> List[DocumentTemplate]:
        pass

    @abstractmethod
    def get_rules(self) -> List[FilingRule]:
        pass


class EventPublisher(ABC):
    """Fire-and-forget delivery of stage events."""

    @abstractmethod
    def publish(self, event: StageEvent) -> None:
        pass


class NotificationSender(ABC):
    @abstractmethod
    def send(self, document: DocumentRecord, parameters: Dict) -> None:
        pass


class WorkflowTrigger(ABC):
    @abstractmethod
    def trigger(self, document: DocumentRecord, parameters: Dict) -> None:
        pass
