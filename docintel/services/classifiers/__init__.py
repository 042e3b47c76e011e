"""Classifiers package."""
from docintel.services.classifiers.rule_based import RuleBasedDocumentClassifier
from docintel.services.classifiers.hybrid import HybridDocumentClassifier

__all__ = ["RuleBasedDocumentClassifier", "HybridDocumentClassifier"]
