"""
Field extraction.

Each extraction rule is run through one strategy (REGEX, OCR_REGION, NLP,
ML_MODEL). Strategies return a tagged outcome:

- CandidateFound: a value with confidence, plus optional runner-up values
- NoCandidate: the strategy ran and found nothing
- StrategyFailed: the strategy raised; logged and skipped

All candidates for one field name are pooled and merged: the highest
confidence wins and every other candidate is kept as an alternative.
"""
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from docintel.exceptions import UnknownStrategyError
from docintel.pipeline.collaborators import EntityExtractor, FieldModel, Registry
from docintel.pipeline.models import (
    AlternativeValue,
    BoundingBox,
    DataExtractionResult,
    DocumentTemplate,
    Entity,
    ExtractedField,
    ExtractionMethod,
    ExtractionMode,
    ExtractionRule,
    FieldType,
    OCRResult,
    ValidationRule,
    ValidationRuleType,
)
from docintel.pipeline.validation import FieldValidator
from docintel.pipeline.values import (
    NORMALIZERS,
    infer_field_type,
    normalizer_for,
    process_field_value,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Strategy outcomes
# =============================================================================

@dataclass(frozen=True)
class CandidateFound:
    field_name: str
    value: Any
    confidence: float
    source: str
    raw_value: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None
    runner_ups: Tuple[AlternativeValue, ...] = ()


@dataclass(frozen=True)
class NoCandidate:
    field_name: str
    source: str


@dataclass(frozen=True)
class StrategyFailed:
    field_name: str
    source: str
    error: str


StrategyOutcome = Union[CandidateFound, NoCandidate, StrategyFailed]


# =============================================================================
# Strategies
# =============================================================================

@dataclass
class ExtractionContext:
    """Per-document inputs shared by strategies. Entities are computed once."""

    ocr_results: Sequence[OCRResult]
    language: str = "en"
    entity_extractor: Optional[EntityExtractor] = None
    _entities: Optional[List[Entity]] = field(default=None, repr=False)

    @property
    def full_text(self) -> str:
        return " ".join(
            page.text or " ".join(line.text for line in page.lines)
            for page in self.ocr_results
        )

    def entities(self) -> List[Entity]:
        if self._entities is None:
            if self.entity_extractor is None:
                self._entities = []
            else:
                self._entities = list(self.entity_extractor.extract(self.full_text, self.language))
        return self._entities


class ExtractionStrategy(ABC):
    """Derives one candidate value for an extraction rule."""

    method: ExtractionMethod

    @abstractmethod
    def extract(self, rule: ExtractionRule, context: ExtractionContext) -> StrategyOutcome:
        pass

    def _none(self, rule: ExtractionRule) -> NoCandidate:
        return NoCandidate(field_name=rule.field_name, source=self.method.value)


class RegexStrategy(ExtractionStrategy):
    """First case-insensitive match on any OCR line; group 1 when present."""

    method = ExtractionMethod.REGEX
    CONFIDENCE = 0.9

    def extract(self, rule: ExtractionRule, context: ExtractionContext) -> StrategyOutcome:
        if not rule.pattern:
            return self._none(rule)
        regex = re.compile(rule.pattern, re.IGNORECASE)
        for page in context.ocr_results:
            for line in page.lines:
                match = regex.search(line.text)
                if match:
                    raw = match.group(1) if match.groups() and match.group(1) is not None else match.group(0)
                    return CandidateFound(
                        field_name=rule.field_name,
                        value=process_field_value(raw, rule.field_type),
                        confidence=self.CONFIDENCE,
                        source=self.method.value,
                        raw_value=raw,
                        bounding_box=line.bounding_box,
                    )
        return self._none(rule)


class OCRRegionStrategy(ExtractionStrategy):
    """First OCR region lying fully inside the rule's coordinates."""

    method = ExtractionMethod.OCR_REGION

    def extract(self, rule: ExtractionRule, context: ExtractionContext) -> StrategyOutcome:
        if rule.coordinates is None:
            return self._none(rule)
        for page in context.ocr_results:
            for region in page.regions:
                if rule.coordinates.contains(region.bounding_box):
                    raw = region.text.strip()
                    return CandidateFound(
                        field_name=rule.field_name,
                        value=process_field_value(raw, rule.field_type),
                        confidence=region.confidence,
                        source=self.method.value,
                        raw_value=raw,
                        bounding_box=region.bounding_box,
                    )
        return self._none(rule)


class NLPStrategy(ExtractionStrategy):
    """Best entity whose label names the field or whose text fits the pattern."""

    method = ExtractionMethod.NLP

    def extract(self, rule: ExtractionRule, context: ExtractionContext) -> StrategyOutcome:
        field_name = rule.field_name.lower()
        pattern = re.compile(rule.pattern, re.IGNORECASE) if rule.pattern else None
        relevant = [
            e for e in context.entities()
            if field_name in e.label.lower() or (pattern is not None and pattern.search(e.text))
        ]
        return entity_candidate(rule.field_name, rule.field_type, relevant, self.method.value)


class MLModelStrategy(ExtractionStrategy):
    """Field model "{field}_extractor", else "default"; accepted above a threshold."""

    method = ExtractionMethod.ML_MODEL
    DEFAULT_MODEL = "default"

    def __init__(self, models: Optional[Registry[FieldModel]] = None, threshold: float = 0.5):
        self.models = models if models is not None else Registry("field model")
        self.threshold = threshold

    def has_model(self, field_name: str) -> bool:
        return f"{field_name}_extractor" in self.models or self.DEFAULT_MODEL in self.models

    def extract(self, rule: ExtractionRule, context: ExtractionContext) -> StrategyOutcome:
        if not self.has_model(rule.field_name):
            return self._none(rule)
        model = self.models.resolve(f"{rule.field_name}_extractor", self.DEFAULT_MODEL)
        prediction = model.predict(rule.field_name, context.full_text)
        if prediction is None or prediction.confidence <= self.threshold:
            return self._none(rule)
        return CandidateFound(
            field_name=rule.field_name,
            value=process_field_value(prediction.value, rule.field_type),
            confidence=prediction.confidence,
            source=self.method.value,
            raw_value=str(prediction.value),
        )


def entity_candidate(
    field_name: str,
    field_type: FieldType,
    entities: Sequence[Entity],
    source: str,
    max_runner_ups: Optional[int] = None,
) -> StrategyOutcome:
    """Best entity becomes the value; the rest become runner-ups."""
    if not entities:
        return NoCandidate(field_name=field_name, source=source)
    ranked = sorted(entities, key=lambda e: e.confidence, reverse=True)
    best, rest = ranked[0], ranked[1:]
    if max_runner_ups is not None:
        rest = rest[:max_runner_ups]
    return CandidateFound(
        field_name=field_name,
        value=process_field_value(best.text, field_type),
        confidence=best.confidence,
        source=source,
        raw_value=best.text,
        runner_ups=tuple(
            AlternativeValue(
                value=process_field_value(e.text, field_type),
                confidence=e.confidence,
                source=source,
            )
            for e in rest
        ),
    )


def default_strategies(
    models: Optional[Registry[FieldModel]] = None,
) -> Registry[ExtractionStrategy]:
    return Registry("extraction strategy", {
        ExtractionMethod.REGEX.value: RegexStrategy(),
        ExtractionMethod.OCR_REGION.value: OCRRegionStrategy(),
        ExtractionMethod.NLP.value: NLPStrategy(),
        ExtractionMethod.ML_MODEL.value: MLModelStrategy(models),
    })


# =============================================================================
# Merge
# =============================================================================

# Fixed order used only to break exact confidence ties
SOURCE_RANK = {
    ExtractionMethod.REGEX.value: 4,
    ExtractionMethod.OCR_REGION.value: 3,
    ExtractionMethod.NLP.value: 2,
    ExtractionMethod.ML_MODEL.value: 1,
}


@dataclass(frozen=True)
class _Entry:
    value: Any
    confidence: float
    source: str
    raw_value: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None

    def sort_key(self) -> Tuple[float, int, str]:
        return (self.confidence, SOURCE_RANK.get(self.source, 0), repr(self.value))


def merge_candidates(
    field_name: str,
    candidates: Sequence[CandidateFound],
    field_type: FieldType = FieldType.STRING,
) -> Optional[ExtractedField]:
    """
    Merge every candidate for one field into a single ExtractedField.

    The winner is the highest-confidence value, ties broken by source rank and
    then by value, so the result does not depend on candidate order. Every
    other distinct (value, source) pair is kept in `alternatives`, highest
    confidence first.
    """
    pooled: Dict[Tuple[str, str], _Entry] = {}
    for candidate in candidates:
        entries = [_Entry(
            value=candidate.value,
            confidence=candidate.confidence,
            source=candidate.source,
            raw_value=candidate.raw_value,
            bounding_box=candidate.bounding_box,
        )]
        entries.extend(_Entry(a.value, a.confidence, a.source) for a in candidate.runner_ups)
        for entry in entries:
            key = (repr(entry.value), entry.source)
            current = pooled.get(key)
            if current is None or entry.sort_key() > current.sort_key():
                pooled[key] = entry

    if not pooled:
        return None

    ranked = sorted(pooled.values(), key=lambda e: e.sort_key(), reverse=True)
    winner = ranked[0]
    return ExtractedField(
        field_name=field_name,
        value=winner.value,
        confidence=winner.confidence,
        source=winner.source,
        field_type=field_type,
        raw_value=winner.raw_value,
        bounding_box=winner.bounding_box,
        alternatives=[AlternativeValue(e.value, e.confidence, e.source) for e in ranked[1:]],
    )


# =============================================================================
# Field extractor
# =============================================================================

class FieldExtractor:
    """
    Runs extraction rules, merges candidates, post-processes and validates.

    Order of work:
    1. Template extraction rules (when a template is given)
    2. Caller-supplied custom rules
    3. Default NLP fields
    4. Default ML fields (only when field models are registered)
    """

    NLP_DEFAULT_FIELDS: Dict[str, Tuple[str, ...]] = {
        "date": ("DATE", "TIME"),
        "amount": ("MONEY", "CARDINAL"),
        "person": ("PERSON",),
        "organization": ("ORG", "ORGANIZATION"),
        "location": ("GPE", "LOC", "LOCATION"),
        "email": ("EMAIL",),
        "phone": ("PHONE",),
    }
    NLP_MAX_ALTERNATIVES = 3

    ML_DEFAULT_FIELDS = ("amount", "date", "name", "account", "symbol")
    ML_DEFAULT_THRESHOLD = 0.6

    POST_PROCESS_DEMOTION = 0.9
    POST_PROCESS_BOOST = 1.1

    def __init__(
        self,
        entity_extractor: Optional[EntityExtractor] = None,
        field_models: Optional[Registry[FieldModel]] = None,
        strategies: Optional[Registry[ExtractionStrategy]] = None,
        validator: Optional[FieldValidator] = None,
        enable_post_processing: bool = True,
        enable_validation: bool = True,
    ):
        self.entity_extractor = entity_extractor
        self.field_models = field_models if field_models is not None else Registry("field model")
        self.strategies = strategies if strategies is not None else default_strategies(self.field_models)
        if validator is None and enable_validation:
            validator = FieldValidator()
        self.validator = validator
        self.enable_post_processing = enable_post_processing
        self.enable_validation = enable_validation

    def strategy_for(self, method: ExtractionMethod) -> ExtractionStrategy:
        if method.value not in self.strategies:
            raise UnknownStrategyError(method.value, available=self.strategies.keys())
        return self.strategies.get(method.value)

    def run_rule(self, rule: ExtractionRule, context: ExtractionContext) -> StrategyOutcome:
        """Run one rule; any exception becomes StrategyFailed."""
        strategy = self.strategy_for(rule.extraction_method)
        try:
            return strategy.extract(rule, context)
        except Exception as e:
            logger.warning(
                "extraction_strategy_failed",
                field=rule.field_name,
                method=rule.extraction_method.value,
                error=str(e),
            )
            return StrategyFailed(field_name=rule.field_name, source=rule.extraction_method.value, error=str(e))

    def _default_nlp_outcomes(self, context: ExtractionContext) -> List[StrategyOutcome]:
        if self.entity_extractor is None:
            return []
        try:
            entities = context.entities()
        except Exception as e:
            logger.warning("entity_extraction_failed", error=str(e))
            return [StrategyFailed(field_name="*", source=ExtractionMethod.NLP.value, error=str(e))]

        outcomes: List[StrategyOutcome] = []
        for field_name, labels in self.NLP_DEFAULT_FIELDS.items():
            matching = [e for e in entities if e.label.upper() in labels]
            outcomes.append(entity_candidate(
                field_name,
                infer_field_type(field_name),
                matching,
                ExtractionMethod.NLP.value,
                max_runner_ups=self.NLP_MAX_ALTERNATIVES,
            ))
        return outcomes

    def _default_ml_outcomes(self, context: ExtractionContext) -> List[StrategyOutcome]:
        if not len(self.field_models):
            return []
        strategy = MLModelStrategy(self.field_models, threshold=self.ML_DEFAULT_THRESHOLD)
        outcomes: List[StrategyOutcome] = []
        for field_name in self.ML_DEFAULT_FIELDS:
            rule = ExtractionRule(
                field_name=field_name,
                field_type=infer_field_type(field_name),
                extraction_method=ExtractionMethod.ML_MODEL,
            )
            try:
                outcomes.append(strategy.extract(rule, context))
            except Exception as e:
                logger.warning("ml_default_field_failed", field=field_name, error=str(e))
                outcomes.append(StrategyFailed(field_name=field_name, source=strategy.method.value, error=str(e)))
        return outcomes

    def post_process(self, extracted: ExtractedField, rule: Optional[ExtractionRule] = None) -> bool:
        """
        Normalize a merged field in place.

        The normalizer runs on the raw text and its output is coerced to the
        field type. Only when that typed value differs from the current value
        is the current value demoted to alternatives and confidence nudged up
        (capped at 1.0).

        Returns:
            True when the field changed.
        """
        if rule is not None and rule.post_processing:
            normalizers = [NORMALIZERS[name] for name in rule.post_processing if name in NORMALIZERS]
            normalizer = normalizers[0] if normalizers else None
        else:
            normalizer = normalizer_for(extracted.field_name)

        original = extracted.raw_value if extracted.raw_value is not None else extracted.value
        if normalizer is None or original is None or original == "":
            return False

        try:
            normalized = normalizer(original)
        except Exception as e:
            logger.warning("post_processing_failed", field=extracted.field_name, error=str(e))
            return False

        value = process_field_value(normalized, extracted.field_type)
        if value == extracted.value:
            return False

        extracted.alternatives.append(AlternativeValue(
            value=extracted.value,
            confidence=extracted.confidence * self.POST_PROCESS_DEMOTION,
            source=extracted.source,
        ))
        extracted.alternatives.sort(key=lambda a: a.confidence, reverse=True)
        extracted.value = value
        extracted.confidence = min(extracted.confidence * self.POST_PROCESS_BOOST, 1.0)
        return True

    def extract(
        self,
        document_id: str,
        ocr_results: Sequence[OCRResult],
        template: Optional[DocumentTemplate] = None,
        custom_rules: Optional[Sequence[ExtractionRule]] = None,
        language: str = "en",
    ) -> DataExtractionResult:
        """
        Extract, merge, post-process and validate all fields of a document.

        Args:
            document_id: Document being processed.
            ocr_results: OCR pages.
            template: Recognized template whose rules guide extraction.
            custom_rules: Additional caller-supplied rules.
            language: Document language for NLP collaborators.

        Returns:
            DataExtractionResult with at most one field per name.
        """
        start_time = time.perf_counter()
        context = ExtractionContext(
            ocr_results=list(ocr_results or []),
            language=language,
            entity_extractor=self.entity_extractor,
        )

        rules: List[ExtractionRule] = list(template.extraction_rules) if template else []
        rules.extend(custom_rules or [])

        outcomes: List[Tuple[StrategyOutcome, Optional[ExtractionRule]]] = [
            (self.run_rule(rule, context), rule) for rule in rules
        ]
        outcomes.extend((o, None) for o in self._default_nlp_outcomes(context))
        outcomes.extend((o, None) for o in self._default_ml_outcomes(context))

        # Pool candidates per field, first-seen order
        pools: Dict[str, List[CandidateFound]] = {}
        field_types: Dict[str, FieldType] = {}
        field_rules: Dict[str, ExtractionRule] = {}
        errors: List[str] = []

        for outcome, rule in outcomes:
            if isinstance(outcome, StrategyFailed):
                errors.append(f"{outcome.field_name}: {outcome.source} extraction failed: {outcome.error}")
                continue
            if rule is not None:
                field_types.setdefault(rule.field_name, rule.field_type)
                field_rules.setdefault(rule.field_name, rule)
            if isinstance(outcome, CandidateFound):
                pools.setdefault(outcome.field_name, []).append(outcome)

        fields: List[ExtractedField] = []
        for field_name, candidates in pools.items():
            merged = merge_candidates(
                field_name,
                candidates,
                field_types.get(field_name, infer_field_type(field_name)),
            )
            if merged is not None:
                fields.append(merged)

        post_processed = False
        if self.enable_post_processing:
            for extracted in fields:
                post_processed |= self.post_process(extracted, field_rules.get(extracted.field_name))

        validation_results = []
        if self.enable_validation and self.validator is not None:
            validation_results = self._validate(fields, template, rules)

        confidence = sum(f.confidence for f in fields) / len(fields) if fields else 0.0
        result = DataExtractionResult(
            document_id=document_id,
            extracted_fields=fields,
            confidence=confidence,
            extraction_method=ExtractionMode.TEMPLATE_BASED if template else ExtractionMode.HYBRID,
            template_id=template.id if template else None,
            validation_results=validation_results,
            processing_time=round((time.perf_counter() - start_time) * 1000, 2),
            errors=errors,
            metadata={
                "field_count": len(fields),
                "validated_fields": sum(1 for f in fields if f.validation_passed),
                "post_processed": post_processed,
                "language": language,
            },
        )

        logger.info(
            "data_extraction_completed",
            document_id=document_id,
            template=result.template_id,
            fields=len(fields),
            confidence=round(confidence, 4),
            errors=len(errors),
            duration_ms=result.processing_time,
        )
        return result

    def _validate(
        self,
        fields: List[ExtractedField],
        template: Optional[DocumentTemplate],
        rules: Sequence[ExtractionRule],
    ):
        pool: List[ValidationRule] = list(template.validation_rules) if template else []
        if not pool:
            pool = list(self.validator.default_rules)

        rule_ids_by_field: Dict[str, List[str]] = {}
        for rule in rules:
            rule_ids_by_field.setdefault(rule.field_name, []).extend(rule.validation_rule_ids)

        required = []
        for field_name in [r.field_name for r in rules]:
            targeting = self.validator.rules_for(field_name, pool, rule_ids_by_field.get(field_name, ()))
            if any(r.rule_type == ValidationRuleType.REQUIRED for r in targeting) and field_name not in required:
                required.append(field_name)

        return self.validator.validate(fields, pool, rule_ids_by_field, required_fields=required)
