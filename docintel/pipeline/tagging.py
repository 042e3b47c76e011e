"""
Automatic tag generation for filed documents.

Sources: financial keywords in the title/description, the document type,
extracted fields, and document metadata (portfolio, client, language, upload
month).
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from docintel.pipeline.models import DocumentRecord, DocumentTag, DocumentType, ExtractedField

logger = structlog.get_logger(__name__)


def tag_name(text: str) -> str:
    return "-".join(text.strip().lower().replace("_", " ").split())


class TagGenerator:
    """Builds a deduplicated, relevance-ordered tag list for a document."""

    MAX_TAGS = 20
    KEYWORD_CONFIDENCE = 0.8
    HIGH_VALUE_THRESHOLD = 100000

    def __init__(self, financial_keywords: Optional[Sequence[str]] = None):
        if financial_keywords is None:
            from docintel.services.reference_data import get_reference_data

            financial_keywords = get_reference_data().financial_keywords
        self.financial_keywords = [k.lower() for k in financial_keywords]

    def keyword_tags(self, document: DocumentRecord) -> List[DocumentTag]:
        text = f"{document.title or ''} {document.description or ''}".lower()
        tags = [
            DocumentTag(
                name=keyword,
                category="CONTENT",
                confidence=self.KEYWORD_CONFIDENCE,
                relevance=float(text.count(keyword)),
                source="KEYWORD",
            )
            for keyword in self.financial_keywords
            if keyword in text
        ]
        return tags

    @staticmethod
    def type_tags(document_type: Optional[DocumentType]) -> List[DocumentTag]:
        if document_type is None:
            return []
        return [DocumentTag(
            name=tag_name(document_type.value),
            category="DOCUMENT_TYPE",
            confidence=0.9,
            relevance=1.0,
            source="METADATA",
        )]

    def data_tags(self, fields: Sequence[ExtractedField], now: datetime) -> List[DocumentTag]:
        tags = []
        current_year = str(now.year)
        for extracted in fields:
            if not extracted.field_name or extracted.value in (None, ""):
                continue
            tags.append(DocumentTag(
                name=tag_name(extracted.field_name),
                category="EXTRACTED_DATA",
                confidence=extracted.confidence,
                relevance=extracted.confidence,
                source="EXTRACTED_DATA",
            ))

            name = extracted.field_name.lower()
            value = extracted.value
            if (
                "amount" in name
                and isinstance(value, (int, float))
                and not isinstance(value, bool)
                and value > self.HIGH_VALUE_THRESHOLD
            ):
                tags.append(DocumentTag("high-value", "EXTRACTED_DATA", 0.9, 0.9, "EXTRACTED_DATA"))
            if "date" in name and current_year in str(value):
                tags.append(DocumentTag("current-year", "EXTRACTED_DATA", 0.8, 0.7, "EXTRACTED_DATA"))
        return tags

    @staticmethod
    def metadata_tags(document: DocumentRecord) -> List[DocumentTag]:
        tags = []
        if document.portfolio_id:
            tags.append(DocumentTag(f"portfolio-{document.portfolio_id}", "METADATA", 1.0, 0.9, "METADATA"))
        if document.client_id:
            tags.append(DocumentTag(f"client-{document.client_id}", "METADATA", 1.0, 0.9, "METADATA"))
        if document.language:
            tags.append(DocumentTag(f"lang-{document.language}", "METADATA", 1.0, 0.6, "METADATA"))
        uploaded = document.uploaded_at
        tags.append(DocumentTag(
            f"uploaded-{uploaded.year}-{uploaded.month:02d}", "METADATA", 1.0, 0.5, "METADATA",
        ))
        return tags

    def generate(
        self,
        document: DocumentRecord,
        fields: Sequence[ExtractedField] = (),
        document_type: Optional[DocumentType] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[List[DocumentTag], float]:
        """
        Generate tags for a document.

        Args:
            document: Document being filed.
            fields: Extracted fields.
            document_type: Resolved type; defaults to the document's own.
            now: Reference time for "current-year".

        Returns:
            (tags, mean tag confidence). At most MAX_TAGS, highest relevance first.
        """
        now = now or datetime.utcnow()
        candidates: List[DocumentTag] = []
        candidates.extend(self.keyword_tags(document))
        candidates.extend(self.type_tags(document_type or document.document_type))
        candidates.extend(self.data_tags(fields, now))
        candidates.extend(self.metadata_tags(document))

        unique: Dict[str, DocumentTag] = {}
        for tag in candidates:
            existing = unique.get(tag.name)
            if existing is None or tag.confidence > existing.confidence:
                unique[tag.name] = tag

        tags = sorted(unique.values(), key=lambda t: t.relevance, reverse=True)[:self.MAX_TAGS]
        confidence = sum(t.confidence for t in tags) / len(tags) if tags else 0.0
        logger.debug("tags_generated", document_id=document.id, tags=len(tags))
        return tags, confidence
