"""
Domain keyword extraction over OCR lines.
"""
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from docintel.pipeline.models import DocumentType, KeywordMatch, OCRResult

logger = structlog.get_logger(__name__)

KeywordDictionaries = Mapping[str, Mapping[DocumentType, Mapping[str, float]]]

DEFAULT_LANGUAGE_KEY = "default"


class KeywordExtractor:
    """
    Scans OCR lines for per-document-type keyword dictionaries.

    Every whole-word, case-insensitive occurrence yields one KeywordMatch whose
    confidence is the keyword's configured weight. Repeats are kept; callers
    aggregate as they need.
    """

    def __init__(self, dictionaries: Optional[KeywordDictionaries] = None):
        """
        Initialize keyword extractor.

        Args:
            dictionaries: language -> document type -> keyword -> weight. The
                "default" language entry is used when a language has no set of
                its own. Loaded from reference data when omitted.
        """
        if dictionaries is None:
            from docintel.services.reference_data import get_reference_data

            dictionaries = get_reference_data().keyword_dictionaries

        self._compiled: Dict[str, List[Tuple[DocumentType, str, float, re.Pattern]]] = {}
        for language, by_type in dictionaries.items():
            entries = []
            for document_type, keywords in by_type.items():
                for keyword, weight in keywords.items():
                    pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
                    entries.append((DocumentType(document_type), keyword, float(weight), pattern))
            self._compiled[language.lower()] = entries

    def languages(self) -> List[str]:
        return sorted(self._compiled)

    def _entries_for(self, language: Optional[str]):
        if language and language.lower() in self._compiled:
            return self._compiled[language.lower()]
        return self._compiled.get(DEFAULT_LANGUAGE_KEY, [])

    def extract(
        self,
        ocr_results: Optional[Sequence[OCRResult]],
        language: Optional[str] = None,
    ) -> List[KeywordMatch]:
        """
        Find every dictionary keyword occurrence.

        Args:
            ocr_results: OCR pages.
            language: Target language; selects the dictionary set.

        Returns:
            Matches ordered by confidence, highest first (stable for ties).
        """
        entries = self._entries_for(language)
        matches: List[KeywordMatch] = []

        for page in ocr_results or []:
            for line in page.lines:
                for document_type, keyword, weight, pattern in entries:
                    for _ in pattern.finditer(line.text):
                        matches.append(KeywordMatch(
                            keyword=keyword,
                            document_type=document_type,
                            confidence=weight,
                            bounding_box=line.bounding_box,
                            page_number=page.page_number,
                            context=line.text,
                        ))

        matches.sort(key=lambda m: m.confidence, reverse=True)
        logger.debug("keywords_extracted", language=language, matches=len(matches))
        return matches
