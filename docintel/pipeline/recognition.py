"""
Template recognition.

Scores every candidate template on three independent signals and combines them:

1. Layout: weighted presence/absence checks against the DocumentStructure.
2. Keyword: share of keyword evidence that supports each KEYWORD pattern.
3. ML: confidence a template classifier assigns to the template's document type.

total = 0.3 * layout + 0.4 * keyword + 0.3 * ml, boosted by 1.2 for the
expected document type and clamped to [0, 1].
"""
import re
import time
from typing import Dict, List, Optional, Sequence

import structlog

from docintel.pipeline.collaborators import Registry, TemplateClassifier
from docintel.pipeline.keywords import KeywordExtractor
from docintel.pipeline.models import (
    ClassificationScore,
    ClassifierOutput,
    DocumentStructure,
    DocumentTemplate,
    DocumentType,
    KeywordMatch,
    LayoutFeatureType,
    OCRResult,
    PatternType,
    TemplateMatchingScore,
    TemplatePattern,
    TemplateRecognitionResult,
)
from docintel.pipeline.structure import StructureAnalyzer

logger = structlog.get_logger(__name__)

DEFAULT_CLASSIFIER_KEY = "document_classifier"

LAYOUT_FEATURES: Dict[str, LayoutFeatureType] = {
    "HEADER": LayoutFeatureType.HEADER,
    "FOOTER": LayoutFeatureType.FOOTER,
    "TABLE": LayoutFeatureType.TABLE,
    "FORM": LayoutFeatureType.FORM_FIELD,
    "FORM_FIELD": LayoutFeatureType.FORM_FIELD,
    "SIGNATURE": LayoutFeatureType.SIGNATURE,
    "LOGO": LayoutFeatureType.LOGO,
    "BARCODE": LayoutFeatureType.BARCODE,
    "TEXT_BLOCK": LayoutFeatureType.TEXT_BLOCK,
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def extract_ml_features(ocr_results: Sequence[OCRResult], size: int = 100) -> List[float]:
    """
    Build the numeric feature vector given to template classifiers.

    Five values per page (text length, word count, line count, mean
    confidence, region count), zero-padded or truncated to `size`.
    """
    features: List[float] = []
    for page in ocr_results:
        features.extend([
            float(len(page.text)),
            float(len(page.text.split())),
            float(len(page.lines)),
            float(page.confidence),
            float(len(page.regions)),
        ])
    features = features[:size]
    features.extend([0.0] * (size - len(features)))
    return features


class TemplateMatcher:
    """
    Scores and ranks candidate templates for one document.

    Templates may name the classifier to use with an ML_MODEL pattern; the
    default classifier key is "document_classifier". With no classifiers
    registered the ML signal is 0.
    """

    LAYOUT_WEIGHT = 0.3
    KEYWORD_WEIGHT = 0.4
    ML_WEIGHT = 0.3
    EXPECTED_TYPE_BOOST = 1.2
    MATCH_PATTERN_THRESHOLD = 0.5
    MAX_ALTERNATIVES = 3

    def __init__(self, classifiers: Optional[Registry[TemplateClassifier]] = None):
        self.classifiers = classifiers if classifiers is not None else Registry("template classifier")

    # -------------------------------------------------------------------------
    # Sub-scores
    # -------------------------------------------------------------------------

    @staticmethod
    def layout_pattern_matches(pattern: str, structure: DocumentStructure) -> bool:
        """Evaluate HAS_<FEATURE> / NO_<FEATURE> against the structure."""
        name = pattern.strip().upper()
        if name.startswith("HAS_"):
            expect_present, key = True, name[4:]
        elif name.startswith("NO_"):
            expect_present, key = False, name[3:]
        else:
            logger.warning("unknown_layout_pattern", pattern=pattern)
            return False

        feature_type = LAYOUT_FEATURES.get(key)
        if feature_type is None:
            logger.warning("unknown_layout_pattern", pattern=pattern)
            return False
        present = bool(structure.bucket(feature_type))
        return present if expect_present else not present

    @staticmethod
    def keyword_pattern_count(pattern: str, keyword_matches: Sequence[KeywordMatch]) -> int:
        """
        Count keyword matches that support the pattern phrase.

        A match counts when its keyword contains the phrase or is one of the
        phrase's words. Other keywords on the same line do not count.
        """
        regex = re.compile(rf"\b{re.escape(pattern.strip())}\b", re.IGNORECASE)
        words = {w.lower() for w in re.findall(r"\w+", pattern)}
        return sum(1 for m in keyword_matches if m.keyword.lower() in words or regex.search(m.keyword))

    def _classifier_output(
        self,
        key: str,
        features: List[float],
        cache: Dict[str, Optional[ClassifierOutput]],
    ) -> Optional[ClassifierOutput]:
        if key in cache:
            return cache[key]
        output = None
        if len(self.classifiers):
            try:
                classifier = self.classifiers.resolve(key, DEFAULT_CLASSIFIER_KEY)
                output = classifier.classify(features)
            except Exception as e:
                logger.warning("template_classifier_failed", classifier=key, error=str(e))
        cache[key] = output
        return output

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def combine(self, layout: float, keyword: float, ml: float, boosted: bool = False) -> float:
        total = self.LAYOUT_WEIGHT * layout + self.KEYWORD_WEIGHT * keyword + self.ML_WEIGHT * ml
        if boosted:
            total *= self.EXPECTED_TYPE_BOOST
        return _clamp(total)

    def score_template(
        self,
        template: DocumentTemplate,
        structure: DocumentStructure,
        keyword_matches: Sequence[KeywordMatch],
        full_text: str,
        features: List[float],
        mean_confidence: float,
        expected_document_type: Optional[DocumentType] = None,
        classifier_cache: Optional[Dict[str, Optional[ClassifierOutput]]] = None,
    ) -> TemplateMatchingScore:
        cache = classifier_cache if classifier_cache is not None else {}
        matched_features: List[str] = []
        unmet_required: List[TemplatePattern] = []
        required_count = 0

        layout = 0.0
        keyword = 0.0
        ml = 0.0
        total_matches = len(keyword_matches)

        for pattern in template.template_patterns:
            matched = False
            if pattern.pattern_type == PatternType.LAYOUT:
                matched = self.layout_pattern_matches(pattern.pattern, structure)
                if matched:
                    layout += pattern.weight
                    matched_features.append(f"layout:{pattern.pattern}")
            elif pattern.pattern_type == PatternType.KEYWORD:
                count = self.keyword_pattern_count(pattern.pattern, keyword_matches)
                if count and total_matches:
                    keyword += (count / total_matches) * pattern.weight
                    matched_features.append(f"keyword:{pattern.pattern}")
                matched = count > 0
            elif pattern.pattern_type == PatternType.REGEX:
                try:
                    matched = re.search(pattern.pattern, full_text, re.IGNORECASE | re.MULTILINE) is not None
                except re.error as e:
                    logger.warning("invalid_template_regex", template=template.id, error=str(e))
                if matched:
                    matched_features.append(f"regex:{pattern.pattern}")

            if pattern.is_required:
                required_count += 1
                if not matched and pattern.pattern_type != PatternType.ML_MODEL:
                    unmet_required.append(pattern)

        ml_patterns = template.patterns_of(PatternType.ML_MODEL)
        classifier_key = ml_patterns[0].pattern if ml_patterns else DEFAULT_CLASSIFIER_KEY
        output = self._classifier_output(classifier_key, features, cache)
        if output is not None:
            ml = _clamp(output.confidence_for(template.document_type))
            if ml > self.MATCH_PATTERN_THRESHOLD:
                matched_features.append(f"ml:{classifier_key}")
        for pattern in ml_patterns:
            if pattern.is_required and ml <= self.MATCH_PATTERN_THRESHOLD:
                unmet_required.append(pattern)

        boosted = expected_document_type is not None and template.document_type == expected_document_type
        return TemplateMatchingScore(
            template_id=template.id,
            document_type=template.document_type,
            layout_score=layout,
            keyword_score=keyword,
            content_score=ml,
            confidence_score=mean_confidence,
            penalty_score=(len(unmet_required) / required_count) if required_count else 0.0,
            total_score=self.combine(layout, keyword, ml, boosted=boosted),
            boosted=boosted,
            matching_features=matched_features,
        )

    def score(
        self,
        structure: DocumentStructure,
        keyword_matches: Sequence[KeywordMatch],
        templates: Sequence[DocumentTemplate],
        ocr_results: Sequence[OCRResult] = (),
        expected_document_type: Optional[DocumentType] = None,
    ) -> List[TemplateMatchingScore]:
        """
        Score every template and rank them.

        Returns:
            Scores sorted by total_score descending. Ties keep template order.
        """
        ocr_results = list(ocr_results or [])
        full_text = "\n".join(page.text or "\n".join(l.text for l in page.lines) for page in ocr_results)
        features = extract_ml_features(ocr_results)
        mean_confidence = (
            sum(page.confidence for page in ocr_results) / len(ocr_results) if ocr_results else 0.0
        )
        cache: Dict[str, Optional[ClassifierOutput]] = {}

        scores = [
            self.score_template(
                template,
                structure,
                keyword_matches,
                full_text,
                features,
                mean_confidence,
                expected_document_type=expected_document_type,
                classifier_cache=cache,
            )
            for template in templates
        ]
        # sorted() is stable, so equal totals keep template order
        return sorted(scores, key=lambda s: s.total_score, reverse=True)

    def recognize(
        self,
        document_id: str,
        structure: DocumentStructure,
        keyword_matches: Sequence[KeywordMatch],
        templates: Sequence[DocumentTemplate],
        ocr_results: Sequence[OCRResult] = (),
        expected_document_type: Optional[DocumentType] = None,
    ) -> TemplateRecognitionResult:
        """
        Rank templates and summarize the outcome.

        The best template is index 0 whenever any template was scored, even
        with a score of 0; callers must check `confidence`.
        """
        scores = self.score(structure, keyword_matches, templates, ocr_results, expected_document_type)
        by_id = {t.id: t for t in templates}

        classification: Dict[DocumentType, ClassificationScore] = {}
        for s in scores:
            if s.document_type not in classification:
                classification[s.document_type] = ClassificationScore(
                    document_type=s.document_type,
                    score=s.total_score,
                    matching_features=[f"Template: {by_id[s.template_id].name}"],
                )

        best = scores[0] if scores else None
        patterns: List[str] = []
        if best is not None:
            if best.layout_score > self.MATCH_PATTERN_THRESHOLD:
                patterns.append("Layout Match")
            if best.keyword_score > self.MATCH_PATTERN_THRESHOLD:
                patterns.append("Keyword Match")
            if best.content_score > self.MATCH_PATTERN_THRESHOLD:
                patterns.append("ML Classification")

        return TemplateRecognitionResult(
            document_id=document_id,
            recognized_template=by_id[best.template_id] if best else None,
            confidence=best.total_score if best else 0.0,
            alternatives=scores[1:1 + self.MAX_ALTERNATIVES],
            classification_scores=list(classification.values()),
            matching_patterns=patterns,
            scores=scores,
            structure=structure,
        )


class TemplateRecognizer:
    """Structure analysis + keyword extraction + template matching for one document."""

    def __init__(
        self,
        analyzer: Optional[StructureAnalyzer] = None,
        keyword_extractor: Optional[KeywordExtractor] = None,
        matcher: Optional[TemplateMatcher] = None,
    ):
        self.analyzer = analyzer or StructureAnalyzer()
        self.keyword_extractor = keyword_extractor or KeywordExtractor()
        self.matcher = matcher or TemplateMatcher()

    def recognize(
        self,
        document_id: str,
        ocr_results: Optional[Sequence[OCRResult]],
        templates: Sequence[DocumentTemplate],
        language: Optional[str] = None,
        expected_document_type: Optional[DocumentType] = None,
    ) -> TemplateRecognitionResult:
        start_time = time.perf_counter()
        ocr_results = list(ocr_results or [])

        candidates = [
            t for t in templates
            if t.is_active and (language is None or t.language == language)
        ]
        structure = self.analyzer.analyze(ocr_results)
        keyword_matches = self.keyword_extractor.extract(ocr_results, language)

        result = self.matcher.recognize(
            document_id,
            structure,
            keyword_matches,
            candidates,
            ocr_results,
            expected_document_type,
        )
        result.processing_time = round((time.perf_counter() - start_time) * 1000, 2)

        logger.info(
            "template_recognition_completed",
            document_id=document_id,
            template=result.recognized_template.id if result.recognized_template else None,
            confidence=round(result.confidence, 4),
            candidates=len(candidates),
            duration_ms=result.processing_time,
        )
        return result
