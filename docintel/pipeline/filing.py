"""
Filing rule engine.

Decides where a processed document is stored and how it is tagged and
classified:

1. Auto-classify the document type (classifier collaborator, rule fallback)
2. Generate tags
3. Evaluate prioritized condition/action rules; a rule fires only when all
   of its conditions hold
4. Build the filing path and its directory structure
"""
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from docintel.exceptions import InvalidConditionError, UnsupportedActionError
from docintel.pipeline.collaborators import DocumentTypeClassifier, NotificationSender, WorkflowTrigger
from docintel.pipeline.models import (
    ActionType,
    AppliedRule,
    ClassifierOutput,
    ConditionOperator,
    DirectoryNode,
    DocumentClassification,
    DocumentRecord,
    DocumentType,
    ExtractedField,
    FilingAction,
    FilingCondition,
    FilingMethod,
    FilingResult,
    FilingRule,
    FilingStatus,
    NodeType,
)
from docintel.pipeline.tagging import TagGenerator
from docintel.pipeline.values import parse_number

logger = structlog.get_logger(__name__)

CURRENT_YEAR_PLACEHOLDER = "{current_year}"

CLASSIFICATION_BY_TYPE: Dict[DocumentType, DocumentClassification] = {
    DocumentType.TRADE_CONFIRMATION: DocumentClassification.CONFIDENTIAL,
    DocumentType.STATEMENT: DocumentClassification.CONFIDENTIAL,
    DocumentType.PROSPECTUS: DocumentClassification.PUBLIC,
    DocumentType.OFFERING_MEMORANDUM: DocumentClassification.CONFIDENTIAL,
    DocumentType.TERM_SHEET: DocumentClassification.CONFIDENTIAL,
    DocumentType.ANNUAL_REPORT: DocumentClassification.PUBLIC,
    DocumentType.QUARTERLY_REPORT: DocumentClassification.PUBLIC,
    DocumentType.TAX_DOCUMENT: DocumentClassification.HIGHLY_CONFIDENTIAL,
    DocumentType.COMPLIANCE_CERTIFICATE: DocumentClassification.INTERNAL,
    DocumentType.CONTRACT: DocumentClassification.CONFIDENTIAL,
    DocumentType.AMENDMENT: DocumentClassification.CONFIDENTIAL,
    DocumentType.LEGAL_OPINION: DocumentClassification.CONFIDENTIAL,
    DocumentType.AUDIT_REPORT: DocumentClassification.CONFIDENTIAL,
    DocumentType.REGULATORY_FILING: DocumentClassification.PUBLIC,
    DocumentType.CLIENT_COMMUNICATION: DocumentClassification.CONFIDENTIAL,
    DocumentType.INVESTMENT_COMMITTEE_MINUTES: DocumentClassification.HIGHLY_CONFIDENTIAL,
    DocumentType.DUE_DILIGENCE_REPORT: DocumentClassification.CONFIDENTIAL,
    DocumentType.PERFORMANCE_REPORT: DocumentClassification.CONFIDENTIAL,
    DocumentType.RISK_REPORT: DocumentClassification.CONFIDENTIAL,
    DocumentType.SUBSCRIPTION_AGREEMENT: DocumentClassification.CONFIDENTIAL,
    DocumentType.REDEMPTION_NOTICE: DocumentClassification.CONFIDENTIAL,
    DocumentType.TRANSFER_AGREEMENT: DocumentClassification.CONFIDENTIAL,
    DocumentType.KYC_DOCUMENT: DocumentClassification.HIGHLY_CONFIDENTIAL,
    DocumentType.AML_DOCUMENT: DocumentClassification.HIGHLY_CONFIDENTIAL,
    DocumentType.OTHER: DocumentClassification.INTERNAL,
}


def classification_for(document_type: DocumentType) -> DocumentClassification:
    return CLASSIFICATION_BY_TYPE.get(document_type, DocumentClassification.INTERNAL)


# =============================================================================
# Directory templates
# =============================================================================

class DirectoryTemplate(ABC):
    """Per-type folder layout. Returns the folder; the file name is appended by the engine."""

    document_type: DocumentType

    @abstractmethod
    def folder(self, document: DocumentRecord, base_path: str) -> str:
        pass


class TradeConfirmationDirectoryTemplate(DirectoryTemplate):
    document_type = DocumentType.TRADE_CONFIRMATION

    def folder(self, document: DocumentRecord, base_path: str) -> str:
        uploaded = document.uploaded_at
        path = f"{base_path}/trades/{uploaded.year}/{uploaded.month:02d}"
        if document.portfolio_id:
            path += f"/portfolio_{document.portfolio_id}"
        return path


class StatementDirectoryTemplate(DirectoryTemplate):
    document_type = DocumentType.STATEMENT

    def folder(self, document: DocumentRecord, base_path: str) -> str:
        uploaded = document.uploaded_at
        quarter = (uploaded.month - 1) // 3 + 1
        path = f"{base_path}/statements/{uploaded.year}/Q{quarter}"
        if document.client_id:
            path += f"/client_{document.client_id}"
        return path


class ProspectusDirectoryTemplate(DirectoryTemplate):
    document_type = DocumentType.PROSPECTUS

    def folder(self, document: DocumentRecord, base_path: str) -> str:
        return f"{base_path}/prospectuses/{document.uploaded_at.year}"


def default_directory_templates() -> Dict[DocumentType, DirectoryTemplate]:
    templates = [
        TradeConfirmationDirectoryTemplate(),
        StatementDirectoryTemplate(),
        ProspectusDirectoryTemplate(),
    ]
    return {t.document_type: t for t in templates}


# =============================================================================
# Actions
# =============================================================================

@dataclass
class ActionContext:
    """Mutable working state for one filing run. Never shared between documents."""

    document: DocumentRecord
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    classification: Optional[DocumentClassification] = None
    target_folder: Optional[str] = None


ActionHandler = Callable[["FilingRuleEngine", FilingAction, ActionContext], None]


def _add_tag(engine: "FilingRuleEngine", action: FilingAction, ctx: ActionContext) -> None:
    params = action.parameters
    names = params.get("tags") or [params["tag"]]
    for name in names:
        if name not in ctx.tags:
            ctx.tags.append(str(name))


def _set_classification(engine: "FilingRuleEngine", action: FilingAction, ctx: ActionContext) -> None:
    classification = DocumentClassification(str(action.parameters["classification"]).upper())
    # Rules run highest priority first; the first classification set wins
    if ctx.classification is None:
        ctx.classification = classification


def _update_metadata(engine: "FilingRuleEngine", action: FilingAction, ctx: ActionContext) -> None:
    updates = action.parameters.get("metadata", {})
    if not isinstance(updates, dict):
        raise TypeError("UPDATE_METADATA expects a 'metadata' mapping")
    ctx.metadata.update(updates)


def _move_to_folder(engine: "FilingRuleEngine", action: FilingAction, ctx: ActionContext) -> None:
    folder = str(action.parameters["folder"]).rstrip("/")
    if not folder:
        raise ValueError("MOVE_TO_FOLDER requires a non-empty folder")
    if ctx.target_folder is None:
        ctx.target_folder = folder


def _send_notification(engine: "FilingRuleEngine", action: FilingAction, ctx: ActionContext) -> None:
    if engine.notifier is None:
        logger.info("notification_requested", document_id=ctx.document.id, parameters=action.parameters)
        return
    engine.notifier.send(ctx.document, action.parameters)


def _trigger_workflow(engine: "FilingRuleEngine", action: FilingAction, ctx: ActionContext) -> None:
    if engine.workflow is None:
        logger.info("workflow_requested", document_id=ctx.document.id, parameters=action.parameters)
        return
    engine.workflow.trigger(ctx.document, action.parameters)


DEFAULT_ACTION_HANDLERS: Dict[ActionType, ActionHandler] = {
    ActionType.ADD_TAG: _add_tag,
    ActionType.SET_CLASSIFICATION: _set_classification,
    ActionType.UPDATE_METADATA: _update_metadata,
    ActionType.MOVE_TO_FOLDER: _move_to_folder,
    ActionType.SEND_NOTIFICATION: _send_notification,
    ActionType.TRIGGER_WORKFLOW: _trigger_workflow,
}


# =============================================================================
# Conditions
# =============================================================================

_MISSING = object()


def _snake_case(segment: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", segment).lower()


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _lookup(container: Any, segment: str) -> Any:
    if isinstance(container, dict):
        for key in (segment, _snake_case(segment)):
            if key in container:
                return container[key]
        return _MISSING
    for key in (_snake_case(segment), segment):
        if hasattr(container, key):
            return getattr(container, key)
    return _MISSING


def resolve_field(path: str, document: DocumentRecord, fields: Sequence[ExtractedField]) -> Any:
    """
    Resolve a dotted condition path.

    Supported roots: document.*, metadata.*, extracted.<field name>.
    Returns None when the path does not exist.

    Raises:
        InvalidConditionError: for an unknown root.
    """
    root, _, rest = path.partition(".")
    segments = [s for s in rest.split(".") if s]
    if not segments:
        raise InvalidConditionError(f"Condition path '{path}' has no field", details={"field": path})

    if root == "document":
        current: Any = document
    elif root == "metadata":
        current = document.metadata
    elif root == "extracted":
        name = segments[0]
        match = next(
            (f for f in fields if f.field_name in (name, _snake_case(name))),
            None,
        )
        if match is None:
            return None
        current = match.value
        segments = segments[1:]
    else:
        raise InvalidConditionError(f"Unknown condition root '{root}'", details={"field": path})

    for segment in segments:
        current = _lookup(current, segment)
        if current is _MISSING:
            return None
    return current


def evaluate_condition(
    condition: FilingCondition,
    document: DocumentRecord,
    fields: Sequence[ExtractedField],
    now: Optional[datetime] = None,
) -> bool:
    """Evaluate one condition. Missing values: EXISTS false, EQUALS true only against null."""
    actual = _plain(resolve_field(condition.field, document, fields))
    expected = _plain(condition.value)
    if isinstance(expected, str) and CURRENT_YEAR_PLACEHOLDER in expected:
        expected = expected.replace(CURRENT_YEAR_PLACEHOLDER, str((now or datetime.utcnow()).year))

    op = condition.operator
    if actual is None:
        if op == ConditionOperator.EQUALS:
            return expected is None
        return False

    if op == ConditionOperator.EXISTS:
        return True

    if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = parse_number(actual), parse_number(expected)
        if left is None or right is None:
            return False
        return left > right if op == ConditionOperator.GREATER_THAN else left < right

    if op == ConditionOperator.EQUALS:
        if expected is None:
            return False
        if isinstance(actual, (int, float)) and not isinstance(actual, bool):
            number = parse_number(expected)
            return number is not None and float(actual) == number

    text = str(actual)
    target = "" if expected is None else str(expected)

    if op == ConditionOperator.REGEX:
        flags = 0 if condition.case_sensitive else re.IGNORECASE
        try:
            return re.search(target, text, flags) is not None
        except re.error as e:
            raise InvalidConditionError(
                f"Invalid regex in condition on {condition.field}: {e}",
                details={"field": condition.field, "pattern": target},
            ) from e

    if not condition.case_sensitive:
        text, target = text.lower(), target.lower()

    if op == ConditionOperator.EQUALS:
        return text == target
    if op == ConditionOperator.CONTAINS:
        return target in text
    if op == ConditionOperator.STARTS_WITH:
        return text.startswith(target)
    if op == ConditionOperator.ENDS_WITH:
        return text.endswith(target)

    raise InvalidConditionError(f"Unsupported operator {op}", details={"field": condition.field})


# =============================================================================
# Engine
# =============================================================================

class FilingRuleEngine:
    """
    Evaluates filing rules and produces a FilingResult.

    The input document is never modified; tags, metadata and classification
    changes are reported in the result for the caller to persist.
    """

    RULE_CONFIDENCE = 0.8
    DEFAULT_CONFIDENCE = 0.5

    def __init__(
        self,
        rules: Optional[Sequence[FilingRule]] = None,
        classifier: Optional[DocumentTypeClassifier] = None,
        tag_generator: Optional[TagGenerator] = None,
        notifier: Optional[NotificationSender] = None,
        workflow: Optional[WorkflowTrigger] = None,
        directory_templates: Optional[Dict[DocumentType, DirectoryTemplate]] = None,
        action_handlers: Optional[Dict[ActionType, ActionHandler]] = None,
        base_path: str = "/documents",
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize filing rule engine.

        Args:
            rules: Default rules. Loaded from reference data when omitted.
            classifier: Document-type classifier. Defaults to the hybrid
                classifier, which falls back to keyword rules.
            tag_generator: Tag generator.
            notifier: SEND_NOTIFICATION collaborator; logged when absent.
            workflow: TRIGGER_WORKFLOW collaborator; logged when absent.
            directory_templates: Per-type folder layouts.
            action_handlers: Handler table keyed by action type.
            base_path: Root of generated paths.
            clock: Source of "now" for placeholders and tags.
        """
        if rules is None:
            from docintel.services.reference_data import get_reference_data

            rules = get_reference_data().filing_rules
        if classifier is None:
            from docintel.services.classifiers.hybrid import get_hybrid_classifier

            classifier = get_hybrid_classifier()

        self.rules: Tuple[FilingRule, ...] = tuple(rules)
        self.classifier = classifier
        self.tag_generator = tag_generator or TagGenerator()
        self.notifier = notifier
        self.workflow = workflow
        self.directory_templates = (
            directory_templates if directory_templates is not None else default_directory_templates()
        )
        self.action_handlers = dict(action_handlers if action_handlers is not None else DEFAULT_ACTION_HANDLERS)
        self.base_path = base_path.rstrip("/") or ""
        self.clock = clock

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def auto_classify(
        self,
        document: DocumentRecord,
        fields: Sequence[ExtractedField],
    ) -> ClassifierOutput:
        values = " ".join(str(f.value) for f in fields if f.value is not None)
        text = f"{document.title or ''} {document.description or ''} {values}"
        return self.classifier.classify(text)

    def applicable_rules(
        self,
        document_type: Optional[DocumentType],
        extra_rules: Optional[Sequence[FilingRule]] = None,
    ) -> List[FilingRule]:
        """Active rules for the type, highest priority first (stable)."""
        by_id: Dict[str, FilingRule] = {}
        for rule in list(self.rules) + list(extra_rules or []):
            by_id[rule.id] = rule
        candidates = [
            r for r in by_id.values()
            if r.is_active
            and (not r.applicable_document_types or document_type in r.applicable_document_types)
        ]
        return sorted(candidates, key=lambda r: r.priority, reverse=True)

    def matched_conditions(
        self,
        rule: FilingRule,
        document: DocumentRecord,
        fields: Sequence[ExtractedField],
        now: datetime,
    ) -> Optional[List[FilingCondition]]:
        """All conditions when every one holds, else None. Rules without conditions never fire."""
        if not rule.conditions:
            return None
        for condition in rule.conditions:
            if not evaluate_condition(condition, document, fields, now):
                return None
        return list(rule.conditions)

    def execute_actions(
        self,
        rule: FilingRule,
        ctx: ActionContext,
    ) -> Tuple[List[FilingAction], List[FilingAction], List[str]]:
        """
        Run a fired rule's actions in order.

        A failing action is logged and recorded; the rest still run.

        Raises:
            UnsupportedActionError: when no handler is registered for an action type.
        """
        executed: List[FilingAction] = []
        failed: List[FilingAction] = []
        errors: List[str] = []
        for action in rule.actions:
            handler = self.action_handlers.get(action.action_type)
            if handler is None:
                raise UnsupportedActionError(action.action_type.value, rule_id=rule.id)
            try:
                handler(self, action, ctx)
                executed.append(action)
            except Exception as e:
                logger.warning(
                    "filing_action_failed",
                    rule_id=rule.id,
                    action=action.action_type.value,
                    error=str(e),
                )
                failed.append(action)
                errors.append(f"Action {action.action_type.value} failed for rule {rule.name}: {e}")
        return executed, failed, errors

    def folder_for(
        self,
        document: DocumentRecord,
        document_type: DocumentType,
        base_path: Optional[str] = None,
    ) -> str:
        base = (base_path.rstrip("/") if base_path else self.base_path)
        template = self.directory_templates.get(document_type)
        if template is not None:
            return template.folder(document, base)

        uploaded = document.uploaded_at
        path = f"{base}/{document_type.value.lower()}/{uploaded.year}/{uploaded.month:02d}"
        if document.client_id:
            path += f"/client_{document.client_id}"
        if document.portfolio_id:
            path += f"/portfolio_{document.portfolio_id}"
        return path

    def generate_filing_path(
        self,
        document: DocumentRecord,
        document_type: DocumentType,
        target_folder: Optional[str] = None,
        base_path: Optional[str] = None,
    ) -> str:
        folder = target_folder or self.folder_for(document, document_type, base_path)
        return f"{folder}/{document.file_name}"

    @staticmethod
    def directory_structure(filing_path: str) -> List[DirectoryNode]:
        """One FOLDER node per path segment, then the FILE node."""
        parts = [p for p in filing_path.split("/") if p]
        nodes = []
        current = ""
        for part in parts[:-1]:
            current += f"/{part}"
            nodes.append(DirectoryNode(name=part, node_type=NodeType.FOLDER, path=current))
        if parts:
            nodes.append(DirectoryNode(name=parts[-1], node_type=NodeType.FILE, path=filing_path))
        return nodes

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def file(
        self,
        document: DocumentRecord,
        fields: Sequence[ExtractedField] = (),
        rules: Optional[Sequence[FilingRule]] = None,
        base_path: Optional[str] = None,
        enable_auto_classification: bool = True,
        enable_auto_tagging: bool = True,
    ) -> FilingResult:
        """
        File a document.

        Args:
            document: Document to file. Not modified.
            fields: Extracted fields available to extracted.* conditions.
            rules: Caller rules added to the defaults (same id overrides).
            base_path: Root for generated paths.
            enable_auto_classification: Run the document-type classifier.
            enable_auto_tagging: Generate tags.

        Returns:
            FilingResult with applied rules, tags, classification and path.

        Raises:
            UnsupportedActionError: a fired rule uses an action with no handler.
        """
        start_time = time.perf_counter()
        now = self.clock()
        errors: List[str] = []

        classification_output: Optional[ClassifierOutput] = None
        if enable_auto_classification:
            try:
                classification_output = self.auto_classify(document, fields)
            except Exception as e:
                logger.warning("auto_classification_failed", document_id=document.id, error=str(e))
                errors.append(f"Auto-classification failed: {e}")

        classified = classification_output is not None and classification_output.confidence > 0
        document_type = document.document_type
        if document_type is None:
            document_type = classification_output.document_type if classified else DocumentType.OTHER
        working = replace(document, document_type=document_type, tags=list(document.tags))

        generated_tags = []
        tag_confidence: Optional[float] = None
        if enable_auto_tagging:
            try:
                generated_tags, tag_confidence = self.tag_generator.generate(working, fields, document_type, now)
            except Exception as e:
                logger.warning("tag_generation_failed", document_id=document.id, error=str(e))
                errors.append(f"Tag generation failed: {e}")

        ctx = ActionContext(document=working, tags=list(document.tags), metadata=dict(document.metadata))
        applied: List[AppliedRule] = []
        candidates = self.applicable_rules(document_type, rules)

        for rule in candidates:
            rule_start = time.perf_counter()
            try:
                matched = self.matched_conditions(rule, working, fields, now)
            except Exception as e:
                logger.warning("filing_rule_failed", rule_id=rule.id, error=str(e))
                errors.append(f"Rule evaluation failed for {rule.name}: {e}")
                continue
            if matched is None:
                continue

            executed, failed, action_errors = self.execute_actions(rule, ctx)
            errors.extend(action_errors)
            applied.append(AppliedRule(
                rule_id=rule.id,
                rule_name=rule.name,
                matched_conditions=matched,
                executed_actions=executed,
                failed_actions=failed,
                execution_time=round((time.perf_counter() - rule_start) * 1000, 2),
            ))

        status = FilingStatus.PARTIAL if errors else FilingStatus.SUCCESS
        try:
            filing_path = self.generate_filing_path(working, document_type, ctx.target_folder, base_path)
        except Exception as e:
            logger.error("filing_path_failed", document_id=document.id, error=str(e))
            errors.append(f"Filing path generation failed: {e}")
            filing_path = ""
            status = FilingStatus.FAILED

        if ctx.classification is not None:
            updated_classification = ctx.classification
        elif classified:
            updated_classification = classification_for(classification_output.document_type)
        else:
            updated_classification = None

        all_tags: List[str] = []
        for name in [t.name for t in generated_tags] + ctx.tags:
            if name not in all_tags:
                all_tags.append(name)

        components = []
        if applied:
            components.append(self.RULE_CONFIDENCE)
        if classified:
            components.append(classification_output.confidence)
        if tag_confidence is not None and generated_tags:
            components.append(tag_confidence)
        confidence = sum(components) / len(components) if components else self.DEFAULT_CONFIDENCE

        if applied and classified:
            method = FilingMethod.HYBRID
        elif applied:
            method = FilingMethod.RULE_BASED
        elif classified:
            method = FilingMethod.ML_BASED
        else:
            method = FilingMethod.TEMPLATE_BASED

        result = FilingResult(
            document_id=document.id,
            filing_path=filing_path,
            status=status,
            filing_method=method,
            confidence=confidence,
            applied_rules=applied,
            generated_tags=generated_tags,
            tags=all_tags,
            updated_classification=updated_classification,
            updated_document_type=document_type,
            updated_metadata=ctx.metadata,
            directory_structure=self.directory_structure(filing_path) if filing_path else [],
            processing_time=round((time.perf_counter() - start_time) * 1000, 2),
            errors=errors,
        )

        logger.info(
            "document_filed",
            document_id=document.id,
            filing_path=filing_path,
            rules_evaluated=len(candidates),
            rules_applied=len(applied),
            status=status.value,
            duration_ms=result.processing_time,
        )
        return result
