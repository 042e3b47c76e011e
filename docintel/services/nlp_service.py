"""
Pattern-based named-entity extraction.

Recognizes dates, money amounts, e-mail addresses and phone numbers in
document text. Stands in for a statistical NER model behind the same
EntityExtractor interface.
"""
import re
from typing import List, Optional, Pattern, Tuple

import structlog

from docintel.pipeline.collaborators import EntityExtractor
from docintel.pipeline.models import Entity

logger = structlog.get_logger(__name__)


ENTITY_PATTERNS: List[Tuple[str, Pattern, float]] = [
    (
        "DATE",
        re.compile(
            r"\b(?:\d{1,2}[/-]\d{1,2}[/-]\d{2,4}"
            r"|\d{4}-\d{2}-\d{2}"
            r"|(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4})\b",
            re.IGNORECASE,
        ),
        0.9,
    ),
    ("MONEY", re.compile(r"(?:[$€£]\s?\d[\d,]*(?:\.\d{1,2})?|\b\d[\d,]*\.\d{2}\s?(?:USD|EUR|GBP)\b)"), 0.85),
    ("EMAIL", re.compile(r"\b[\w.+-]+@[\w-]+(?:\.[\w-]+)+\b"), 0.9),
    ("PHONE", re.compile(r"(?:\+?1[\s.-]?)?\(?\b\d{3}\)?[\s.-]\d{3}[\s.-]\d{4}\b"), 0.8),
]


class RegexEntityExtractor(EntityExtractor):
    """Entity extractor driven by ENTITY_PATTERNS, ordered by position in the text."""

    def __init__(self, patterns: Optional[List[Tuple[str, Pattern, float]]] = None):
        self.patterns = patterns if patterns is not None else ENTITY_PATTERNS

    def extract(self, text: str, language: str = "en") -> List[Entity]:
        entities = []
        for label, pattern, confidence in self.patterns:
            for match in pattern.finditer(text or ""):
                entities.append(Entity(
                    text=match.group(0).strip(),
                    label=label,
                    confidence=confidence,
                    start=match.start(),
                    end=match.end(),
                ))
        entities.sort(key=lambda e: (e.start, e.end))
        logger.debug("entities_extracted", count=len(entities), language=language)
        return entities


_extractor_instance: Optional[RegexEntityExtractor] = None


def get_entity_extractor() -> RegexEntityExtractor:
    """Get singleton RegexEntityExtractor instance."""
    global _extractor_instance
    if _extractor_instance is None:
        _extractor_instance = RegexEntityExtractor()
    return _extractor_instance
