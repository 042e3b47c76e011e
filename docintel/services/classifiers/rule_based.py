"""
Rule-based document-type classifier.

Scores each document type by the share of its keyword set found in the text.
"""
from typing import List, Optional, Sequence

import structlog

from docintel.pipeline.collaborators import DocumentTypeClassifier
from docintel.pipeline.models import ClassifierOutput, DocumentType
from docintel.services.reference_data import ClassificationRule, get_reference_data

logger = structlog.get_logger(__name__)


class RuleBasedDocumentClassifier(DocumentTypeClassifier):
    """
    Keyword-vote classifier.

    confidence(type) = matched keywords / keywords for the type * type weight.
    Substring matching on lowercased text, so multi-word keywords such as
    "period ending" work as phrases.
    """

    MAX_ALTERNATIVES = 3

    def __init__(self, rules: Optional[Sequence[ClassificationRule]] = None):
        """
        Initialize rule-based classifier.

        Args:
            rules: Keyword sets per type. Loaded from reference data when omitted.
        """
        self._rules = list(rules) if rules is not None else get_reference_data().classification_rules

    def score(self, text: str) -> List[tuple]:
        """Return [(document_type, confidence), ...] highest first."""
        lowered = (text or "").lower()
        scores = []
        for rule in self._rules:
            if not rule.keywords:
                continue
            matched = sum(1 for keyword in rule.keywords if keyword in lowered)
            scores.append((rule.document_type, matched / len(rule.keywords) * rule.weight))
        return sorted(scores, key=lambda s: s[1], reverse=True)

    def classify(self, text: str) -> ClassifierOutput:
        """
        Classify a document's text.

        Args:
            text: Title, description and extracted values, joined.

        Returns:
            ClassifierOutput; OTHER with confidence 0 when nothing matches.
        """
        scores = self.score(text)
        if not scores or scores[0][1] <= 0:
            return ClassifierOutput(document_type=DocumentType.OTHER, confidence=0.0)

        best_type, best_confidence = scores[0]
        return ClassifierOutput(
            document_type=best_type,
            confidence=best_confidence,
            alternatives=scores[1:1 + self.MAX_ALTERNATIVES],
        )


_classifier_instance: Optional[RuleBasedDocumentClassifier] = None


def get_rule_based_classifier() -> RuleBasedDocumentClassifier:
    """Get singleton RuleBasedDocumentClassifier instance."""
    global _classifier_instance
    if _classifier_instance is None:
        _classifier_instance = RuleBasedDocumentClassifier()
    return _classifier_instance
