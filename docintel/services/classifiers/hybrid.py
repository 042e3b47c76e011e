"""
Hybrid document-type classifier combining a model with the rule-based fallback.

Implements a cascade approach:
1. Model (optional) -> if confidence >= 0.7, return
2. Rule-based keyword vote -> otherwise, or when the model fails
"""
import threading
from dataclasses import dataclass, replace
from typing import Optional

import structlog

from docintel.pipeline.collaborators import DocumentTypeClassifier
from docintel.pipeline.models import ClassifierOutput, DocumentType
from docintel.services.classifiers.rule_based import (
    RuleBasedDocumentClassifier,
    get_rule_based_classifier,
)

logger = structlog.get_logger(__name__)


@dataclass
class ClassificationStats:
    """Statistics for hybrid classification."""

    total: int = 0
    model: int = 0
    rule_based: int = 0
    model_failures: int = 0
    unclassified: int = 0

    @property
    def model_pct(self) -> float:
        return (self.model / self.total * 100) if self.total else 0

    @property
    def rule_based_pct(self) -> float:
        return (self.rule_based / self.total * 100) if self.total else 0


class HybridDocumentClassifier(DocumentTypeClassifier):
    """
    Model-first classifier with a rule-based fallback.

    A failing model never fails classification: the error is logged and the
    rule-based result is returned instead. Statistics are shared by every
    caller of the instance and updated under a lock.
    """

    MODEL_THRESHOLD = 0.7

    def __init__(
        self,
        model: Optional[DocumentTypeClassifier] = None,
        rule_classifier: Optional[RuleBasedDocumentClassifier] = None,
    ):
        """
        Initialize hybrid classifier.

        Args:
            model: Learned classifier; skipped when None.
            rule_classifier: Rule-based classifier instance.
        """
        self._model = model
        self._rule_classifier = rule_classifier or get_rule_based_classifier()
        self._stats = ClassificationStats()
        self._lock = threading.RLock()

    def classify(self, text: str) -> ClassifierOutput:
        if self._model is not None:
            try:
                result = self._model.classify(text)
                if result.confidence >= self.MODEL_THRESHOLD:
                    self._record(model=1)
                    return result
            except Exception as e:
                self._record(model_failures=1, count=False)
                logger.warning("model_classification_failed", error=str(e))

        rule_result = self._rule_classifier.classify(text)
        if rule_result.confidence > 0:
            self._record(rule_based=1)
        else:
            self._record(unclassified=1)
        return rule_result

    def _record(self, count: bool = True, **increments: int) -> None:
        with self._lock:
            if count:
                self._stats.total += 1
            for name, value in increments.items():
                setattr(self._stats, name, getattr(self._stats, name) + value)

    def get_stats(self) -> ClassificationStats:
        """Get a snapshot of classification statistics."""
        with self._lock:
            return replace(self._stats)

    def reset_stats(self) -> None:
        """Reset classification statistics."""
        with self._lock:
            self._stats = ClassificationStats()


_classifier_instance: Optional[HybridDocumentClassifier] = None


def get_hybrid_classifier() -> HybridDocumentClassifier:
    """Get singleton HybridDocumentClassifier instance."""
    global _classifier_instance
    if _classifier_instance is None:
        _classifier_instance = HybridDocumentClassifier()
    return _classifier_instance
