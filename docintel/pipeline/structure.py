"""
Layout structure analysis over OCR pages.

Detects headers, footers, tables, form fields, signatures, logos, barcodes and
text blocks using positional rules and weighted regex indicators.
"""
import re
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from docintel.pipeline.models import (
    BoundingBox,
    DocumentStructure,
    LayoutFeature,
    LayoutFeatureType,
    OCRLine,
    OCRResult,
)

logger = structlog.get_logger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class StructureAnalyzer:
    """
    Turns OCR pages into a DocumentStructure.

    Pure function of its input: the analyzer holds only constant tables and
    never raises. A page that cannot be analyzed is logged and skipped.
    """

    HEADER_ZONE = 0.15
    FOOTER_ZONE = 0.85
    ACCEPT_THRESHOLD = 0.7
    HEADER_BASELINE = 0.5

    ROW_TOLERANCE = 10
    MIN_TABLE_ROWS = 3
    TABLE_CONFIDENCE = 0.8

    FORM_FIELD_CONFIDENCE = 0.8
    SIGNATURE_CONFIDENCE = 0.7
    BARCODE_CONFIDENCE = 0.9
    LOGO_THRESHOLD = 0.8
    LOGO_MAX_Y = 100

    HEADER_INDICATORS: List[Tuple[re.Pattern, float]] = [
        (re.compile(r"^(?=.*[A-Z])[A-Z0-9\s&.,\-]+$"), 0.3),
        (re.compile(r"\b(company|corporation|inc\.|ltd\.|llc)", re.IGNORECASE), 0.4),
        (re.compile(r"\b(statement|report|invoice|contract|confirmation)\b", re.IGNORECASE), 0.5),
        (re.compile(r"^\s*\d{1,2}/\d{1,2}/\d{4}\s*$"), -0.3),
        (re.compile(r"^\s*page\s+\d+", re.IGNORECASE), -0.5),
    ]

    FOOTER_INDICATORS: List[Tuple[re.Pattern, float]] = [
        (re.compile(r"\bpage\s+\d+", re.IGNORECASE), 0.6),
        (re.compile(r"\b(confidential|proprietary)\b", re.IGNORECASE), 0.5),
        (re.compile(r"(copyright|©|\(c\))", re.IGNORECASE), 0.5),
        (re.compile(r"(www\.|@|\.com)", re.IGNORECASE), 0.4),
        (re.compile(r"\d{1,2}/\d{1,2}/\d{4}"), 0.3),
    ]

    COMPANY_INDICATORS: List[Tuple[re.Pattern, float]] = [
        (re.compile(r"\b(inc|ltd|llc|corp|corporation|company|co)\b\.?", re.IGNORECASE), 0.5),
        (re.compile(r"^[A-Z][a-zA-Z\s&.,]+$"), 0.3),
        (re.compile(r"\b(investment|financial|capital|fund|group)s?\b", re.IGNORECASE), 0.4),
        (re.compile(r"\b(bank|trust|securities|asset)s?\b", re.IGNORECASE), 0.4),
    ]

    FORM_FIELD_PATTERNS = [
        re.compile(r"\b(name|date|signature|amount|address|phone|email)\s*:?\s*$", re.IGNORECASE),
        re.compile(r"_{3,}\s*$"),
        re.compile(r"\[\s*\]"),
        re.compile("☐"),
    ]

    SIGNATURE_KEYWORDS = ("sign", "signature", "signed", "x:", "/s/")

    BARCODE_PATTERN = re.compile(r"^(?=.*\d)[A-Z0-9]{8,}$")

    def analyze(self, ocr_results: Optional[Sequence[OCRResult]]) -> DocumentStructure:
        """
        Analyze every page and aggregate the detected features.

        Args:
            ocr_results: OCR pages in document order. None or empty is allowed.

        Returns:
            DocumentStructure; empty when there is nothing to analyze.
        """
        structure = DocumentStructure()
        for page in ocr_results or []:
            try:
                self._analyze_page(page, structure)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(
                    "structure_page_skipped",
                    page=getattr(page, "page_number", None),
                    error=str(e),
                )

        logger.debug(
            "structure_analyzed",
            pages=len(ocr_results or []),
            features=len(structure.all_features()),
        )
        return structure

    def _analyze_page(self, page: OCRResult, structure: DocumentStructure) -> None:
        # Collect into a scratch structure so a failing page adds nothing
        scratch = DocumentStructure()
        page_height = self._page_height(page)

        if page_height > 0:
            scratch.headers.extend(self._detect_headers(page.lines, page_height))
            scratch.footers.extend(self._detect_footers(page.lines, page_height))
        scratch.tables.extend(self._detect_tables(page.lines))
        scratch.form_fields.extend(self._detect_form_fields(page.lines))
        scratch.signatures.extend(self._detect_signatures(page.lines))
        scratch.logos.extend(self._detect_logos(page))
        scratch.barcodes.extend(self._detect_barcodes(page.lines))
        scratch.text_blocks.extend(
            LayoutFeature(
                type=LayoutFeatureType.TEXT_BLOCK,
                bounding_box=paragraph.bounding_box,
                confidence=paragraph.confidence,
                text=paragraph.text,
            )
            for paragraph in page.paragraphs
        )

        for feature_type in LayoutFeatureType:
            structure.bucket(feature_type).extend(scratch.bucket(feature_type))

    @staticmethod
    def _page_height(page: OCRResult) -> float:
        boxes = [r.bounding_box for r in page.regions] or [line.bounding_box for line in page.lines]
        return max((b.bottom for b in boxes), default=0.0)

    # -------------------------------------------------------------------------
    # Header / footer
    # -------------------------------------------------------------------------

    def header_confidence(self, text: str) -> float:
        score = sum(weight for pattern, weight in self.HEADER_INDICATORS if pattern.search(text))
        return _clamp(score + self.HEADER_BASELINE)

    def footer_confidence(self, text: str) -> float:
        score = sum(weight for pattern, weight in self.FOOTER_INDICATORS if pattern.search(text))
        return _clamp(score)

    def _detect_headers(self, lines: Iterable[OCRLine], page_height: float) -> List[LayoutFeature]:
        features = []
        for line in lines:
            if line.bounding_box.y > page_height * self.HEADER_ZONE:
                continue
            confidence = self.header_confidence(line.text)
            if confidence > self.ACCEPT_THRESHOLD:
                features.append(LayoutFeature(
                    type=LayoutFeatureType.HEADER,
                    bounding_box=line.bounding_box,
                    confidence=confidence,
                    text=line.text,
                ))
        return features

    def _detect_footers(self, lines: Iterable[OCRLine], page_height: float) -> List[LayoutFeature]:
        features = []
        for line in lines:
            if line.bounding_box.y < page_height * self.FOOTER_ZONE:
                continue
            confidence = self.footer_confidence(line.text)
            if confidence > self.ACCEPT_THRESHOLD:
                features.append(LayoutFeature(
                    type=LayoutFeatureType.FOOTER,
                    bounding_box=line.bounding_box,
                    confidence=confidence,
                    text=line.text,
                ))
        return features

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def group_rows(self, lines: Iterable[OCRLine]) -> List[List[OCRLine]]:
        """Cluster lines into rows whose y differs from the row start by < ROW_TOLERANCE."""
        rows: List[List[OCRLine]] = []
        row_y: Optional[float] = None
        for line in sorted(lines, key=lambda l: l.bounding_box.y):
            if row_y is not None and abs(line.bounding_box.y - row_y) < self.ROW_TOLERANCE:
                rows[-1].append(line)
            else:
                rows.append([line])
                row_y = line.bounding_box.y
        return rows

    def _detect_tables(self, lines: Sequence[OCRLine]) -> List[LayoutFeature]:
        table_rows = [row for row in self.group_rows(lines) if len(row) > 1]
        if len(table_rows) < self.MIN_TABLE_ROWS:
            return []

        box = BoundingBox.union(line.bounding_box for row in table_rows for line in row)
        return [LayoutFeature(
            type=LayoutFeatureType.TABLE,
            bounding_box=box,
            confidence=self.TABLE_CONFIDENCE,
            metadata={
                "rows": len(table_rows),
                "columns": max(len(row) for row in table_rows),
            },
        )]

    # -------------------------------------------------------------------------
    # Keyword / regex scans
    # -------------------------------------------------------------------------

    def _detect_form_fields(self, lines: Iterable[OCRLine]) -> List[LayoutFeature]:
        return [
            LayoutFeature(
                type=LayoutFeatureType.FORM_FIELD,
                bounding_box=line.bounding_box,
                confidence=self.FORM_FIELD_CONFIDENCE,
                text=line.text,
            )
            for line in lines
            if any(p.search(line.text) for p in self.FORM_FIELD_PATTERNS)
        ]

    def _detect_signatures(self, lines: Iterable[OCRLine]) -> List[LayoutFeature]:
        features = []
        for line in lines:
            lowered = line.text.lower()
            if any(keyword in lowered for keyword in self.SIGNATURE_KEYWORDS):
                features.append(LayoutFeature(
                    type=LayoutFeatureType.SIGNATURE,
                    bounding_box=line.bounding_box,
                    confidence=self.SIGNATURE_CONFIDENCE,
                    text=line.text,
                ))
        return features

    def company_name_confidence(self, text: str) -> float:
        stripped = text.strip()
        return _clamp(sum(w for p, w in self.COMPANY_INDICATORS if p.search(stripped)))

    def _detect_logos(self, page: OCRResult) -> List[LayoutFeature]:
        features = []
        for region in page.regions:
            if region.bounding_box.y >= self.LOGO_MAX_Y:
                continue
            confidence = self.company_name_confidence(region.text)
            if confidence > self.LOGO_THRESHOLD:
                features.append(LayoutFeature(
                    type=LayoutFeatureType.LOGO,
                    bounding_box=region.bounding_box,
                    confidence=confidence,
                    text=region.text,
                ))
        return features

    def _detect_barcodes(self, lines: Iterable[OCRLine]) -> List[LayoutFeature]:
        features = []
        for line in lines:
            compact = re.sub(r"\s+", "", line.text)
            if self.BARCODE_PATTERN.match(compact):
                features.append(LayoutFeature(
                    type=LayoutFeatureType.BARCODE,
                    bounding_box=line.bounding_box,
                    confidence=self.BARCODE_CONFIDENCE,
                    text=compact,
                ))
        return features


_analyzer_instance: Optional[StructureAnalyzer] = None


def get_structure_analyzer() -> StructureAnalyzer:
    """Get singleton StructureAnalyzer instance."""
    global _analyzer_instance
    if _analyzer_instance is None:
        _analyzer_instance = StructureAnalyzer()
    return _analyzer_instance
