"""Models package."""
from docintel.models.document import Document, DocumentStatus
from docintel.models.reference import FilingRuleModel, Template

__all__ = ["Document", "DocumentStatus", "Template", "FilingRuleModel"]
