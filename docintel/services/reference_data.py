"""
Reference data service for templates, keyword dictionaries and filing rules.

Loads the YAML files under the reference data directory once and exposes
them as pipeline value objects.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml

from docintel.config import get_settings
from docintel.exceptions import TemplateError
from docintel.pipeline.models import (
    DocumentTemplate,
    DocumentType,
    FilingRule,
    ValidationRule,
)

logger = structlog.get_logger(__name__)

TEMPLATES_FILE = "templates.yaml"
KEYWORDS_FILE = "keywords.yaml"
FILING_RULES_FILE = "filing_rules.yaml"


@dataclass(frozen=True)
class ClassificationRule:
    """Keyword set that votes for one document type."""

    document_type: DocumentType
    keywords: Tuple[str, ...]
    weight: float


class ReferenceDataService:
    """
    Read-only reference data shared by every pipeline run.

    Templates, rules and dictionaries are immutable value objects, so one
    instance can serve any number of concurrent documents.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize reference data service.

        Args:
            data_dir: Directory holding the YAML files. Defaults to the
                configured reference_data_dir.
        """
        self.data_dir = Path(data_dir) if data_dir else get_settings().reference_data_dir

        templates_data = self._load(TEMPLATES_FILE)
        keywords_data = self._load(KEYWORDS_FILE)
        rules_data = self._load(FILING_RULES_FILE)

        try:
            self.templates: List[DocumentTemplate] = [
                DocumentTemplate.from_dict(t) for t in templates_data.get("templates", [])
            ]
            self.validation_rules: List[ValidationRule] = [
                ValidationRule.from_dict(r) for r in templates_data.get("default_validation_rules", [])
            ]
            self.filing_rules: List[FilingRule] = [
                FilingRule.from_dict(r) for r in rules_data.get("filing_rules", [])
            ]
            self.keyword_dictionaries: Dict[str, Dict[DocumentType, Dict[str, float]]] = {
                str(language).lower(): {
                    DocumentType(doc_type): {str(k): float(w) for k, w in keywords.items()}
                    for doc_type, keywords in by_type.items()
                }
                for language, by_type in keywords_data.get("keyword_dictionaries", {}).items()
            }
            self.classification_rules: List[ClassificationRule] = [
                ClassificationRule(
                    document_type=DocumentType(r["document_type"]),
                    keywords=tuple(str(k).lower() for k in r.get("keywords", [])),
                    weight=float(r.get("weight", 1.0)),
                )
                for r in keywords_data.get("classification_rules", [])
            ]
            self.financial_keywords: List[str] = [
                str(k).lower() for k in keywords_data.get("financial_keywords", [])
            ]
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Invalid reference data", data_dir=str(self.data_dir), error=str(e))
            raise TemplateError(
                f"Invalid reference data: {e}",
                details={"data_dir": str(self.data_dir)},
            ) from e

        logger.info(
            "Reference data loaded",
            templates=len(self.templates),
            filing_rules=len(self.filing_rules),
            validation_rules=len(self.validation_rules),
            languages=sorted(self.keyword_dictionaries),
        )

    def _load(self, filename: str) -> Dict[str, Any]:
        path = self.data_dir / filename
        try:
            with open(path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Reference data file missing", path=str(path))
            return {}
        except yaml.YAMLError as e:
            logger.error("Failed to parse reference data", path=str(path), error=str(e))
            raise TemplateError(f"Cannot parse {filename}", details={"path": str(path)}) from e

    def get_template(self, template_id: str) -> Optional[DocumentTemplate]:
        for template in self.templates:
            if template.id == template_id:
                return template
        return None

    def templates_for(self, language: Optional[str] = None) -> List[DocumentTemplate]:
        return [t for t in self.templates if language is None or t.language == language]


_reference_data_instance: Optional[ReferenceDataService] = None


def get_reference_data() -> ReferenceDataService:
    """Get singleton ReferenceDataService instance."""
    global _reference_data_instance
    if _reference_data_instance is None:
        _reference_data_instance = ReferenceDataService()
    return _reference_data_instance
