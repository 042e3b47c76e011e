"""
Tests for the filing rule engine.
"""
from dataclasses import replace
from datetime import datetime
from typing import Dict, List

import pytest

from docintel.exceptions import InvalidConditionError, UnsupportedActionError
from docintel.pipeline.collaborators import DocumentTypeClassifier, NotificationSender
from docintel.pipeline.filing import (
    DEFAULT_ACTION_HANDLERS,
    FilingRuleEngine,
    evaluate_condition,
    resolve_field,
)
from docintel.pipeline.models import (
    ActionType,
    ClassifierOutput,
    ConditionOperator,
    DocumentClassification,
    DocumentRecord,
    DocumentType,
    ExtractedField,
    FieldType,
    FilingAction,
    FilingCondition,
    FilingMethod,
    FilingRule,
    FilingStatus,
    NodeType,
)
from docintel.pipeline.tagging import TagGenerator
from docintel.services.classifiers.rule_based import RuleBasedDocumentClassifier

NOW = datetime(2026, 6, 1, 12, 0)


class FixedTypeClassifier(DocumentTypeClassifier):
    def __init__(self, document_type=DocumentType.OTHER, confidence=0.0):
        self.output = ClassifierOutput(document_type, confidence)

    def classify(self, text: str) -> ClassifierOutput:
        return self.output


class RecordingNotifier(NotificationSender):
    def __init__(self):
        self.sent: List[Dict] = []

    def send(self, document: DocumentRecord, parameters: Dict) -> None:
        self.sent.append(parameters)


def amount(value):
    return ExtractedField(field_name="amount", value=value, confidence=0.9, source="REGEX",
                          field_type=FieldType.CURRENCY)


def condition(field, operator, value=None, case_sensitive=False):
    return FilingCondition(field=field, operator=operator, value=value, case_sensitive=case_sensitive)


def action(action_type, **parameters):
    return FilingAction(action_type=action_type, parameters=parameters)


def always(rule_id, *actions, priority=0):
    """A rule that fires for any document with a file name."""
    return FilingRule(
        id=rule_id,
        name=rule_id,
        priority=priority,
        conditions=(condition("document.fileName", ConditionOperator.EXISTS),),
        actions=tuple(actions),
    )


def engine(**kwargs) -> FilingRuleEngine:
    kwargs.setdefault("classifier", FixedTypeClassifier())
    kwargs.setdefault("tag_generator", TagGenerator(financial_keywords=[]))
    kwargs.setdefault("clock", lambda: NOW)
    return FilingRuleEngine(**kwargs)


class TestHighValueTrade:
    """Tests for the bundled high-value trade rule."""

    def test_high_value_trade_filed(self, trade_document):
        """Test a large trade is tagged, reclassified and filed by month and portfolio."""
        result = engine(classifier=RuleBasedDocumentClassifier()).file(trade_document, [amount(150000.0)])

        assert [r.rule_id for r in result.applied_rules] == ["high_value_trades"]
        assert "high-value" in result.tags
        assert result.updated_classification == DocumentClassification.HIGHLY_CONFIDENTIAL
        assert result.filing_path == "/documents/trades/2026/03/portfolio_P1/confirm.pdf"
        assert result.status == FilingStatus.SUCCESS
        assert result.filing_method == FilingMethod.HYBRID

    def test_small_trade_not_applied(self, trade_document):
        """Test amounts at or below the threshold do not fire the rule."""
        result = engine().file(trade_document, [amount(100000.0)])

        assert result.applied_rules == []
        assert result.updated_classification is None
        assert result.filing_method == FilingMethod.TEMPLATE_BASED

    def test_missing_amount_not_applied(self, trade_document):
        """Test a missing extracted field makes the condition false."""
        result = engine().file(trade_document, [])

        assert result.applied_rules == []

    def test_document_not_modified(self, trade_document):
        """Test filing reports changes without touching the input document."""
        engine().file(trade_document, [amount(150000.0)])

        assert trade_document.tags == []
        assert trade_document.classification == DocumentClassification.INTERNAL
        assert trade_document.filing_path is None


class TestConditionConjunction:
    """Tests for AND semantics across every condition of a rule."""

    def flag_large_trades(self):
        return FilingRule(
            id="flag_large_trades",
            name="Flag large trades",
            priority=10,
            conditions=(
                condition("document.documentType", ConditionOperator.EQUALS, "TRADE_CONFIRMATION"),
                condition("extracted.amount", ConditionOperator.GREATER_THAN, 100000),
            ),
            actions=(action(ActionType.ADD_TAG, tag="flagged"),),
        )

    @pytest.mark.parametrize("document_type,value,fires", [
        (DocumentType.TRADE_CONFIRMATION, 150000.0, True),
        (DocumentType.STATEMENT, 150000.0, False),
        (DocumentType.TRADE_CONFIRMATION, 50000.0, False),
        (DocumentType.STATEMENT, 50000.0, False),
    ])
    def test_every_condition_must_hold(self, trade_document, document_type, value, fires):
        """Test the rule fires only when both the type and the amount conditions hold."""
        document = replace(trade_document, document_type=document_type)

        result = engine(rules=[]).file(document, [amount(value)], rules=[self.flag_large_trades()])

        assert ([r.rule_id for r in result.applied_rules] == ["flag_large_trades"]) is fires
        assert ("flagged" in result.tags) is fires

    def test_matched_conditions_reported(self, trade_document):
        """Test a fired rule lists both of its conditions."""
        result = engine(rules=[]).file(trade_document, [amount(150000.0)], rules=[self.flag_large_trades()])

        assert len(result.applied_rules[0].matched_conditions) == 2


class TestCurrentYearStatements:
    """Tests for the bundled current-year statement rule."""

    def statement(self, trade_document):
        return replace(
            trade_document,
            document_type=DocumentType.STATEMENT,
            uploaded_at=datetime(2026, 2, 10),
            client_id="C9",
            portfolio_id=None,
        )

    def test_fires_in_upload_year(self, trade_document):
        """Test the rule fires when the clock is in the upload year."""
        result = engine().file(self.statement(trade_document))

        assert [r.rule_id for r in result.applied_rules] == ["current_year_statements"]
        assert "current-year" in result.tags
        assert result.filing_path == "/documents/statements/2026/Q1/client_C9/confirm.pdf"

    def test_not_in_later_year(self, trade_document):
        """Test the placeholder follows the clock."""
        result = engine(clock=lambda: datetime(2027, 1, 5)).file(self.statement(trade_document))

        assert result.applied_rules == []


class TestDocumentType:
    """Tests for document type resolution and folder layouts."""

    def test_classifier_used_when_type_unknown(self, trade_document):
        """Test the classifier decides the type of an untyped document."""
        untyped = replace(trade_document, document_type=None)

        result = engine(rules=[], classifier=FixedTypeClassifier(DocumentType.PROSPECTUS, 0.8)).file(untyped)

        assert result.updated_document_type == DocumentType.PROSPECTUS
        assert result.updated_classification == DocumentClassification.PUBLIC
        assert result.filing_path == "/documents/prospectuses/2026/confirm.pdf"
        assert result.filing_method == FilingMethod.ML_BASED

    def test_other_when_unclassified(self, trade_document):
        """Test an untyped, unclassified document is filed as OTHER."""
        untyped = replace(trade_document, document_type=None)

        result = engine(rules=[]).file(untyped)

        assert result.updated_document_type == DocumentType.OTHER
        assert result.updated_classification is None
        assert result.filing_path == "/documents/other/2026/03/portfolio_P1/confirm.pdf"

    def test_stored_type_wins_over_classifier(self, trade_document):
        """Test a document's own type is not replaced by the classifier."""
        result = engine(rules=[], classifier=FixedTypeClassifier(DocumentType.STATEMENT, 0.9)).file(trade_document)

        assert result.updated_document_type == DocumentType.TRADE_CONFIRMATION

    def test_generic_folder(self, trade_document):
        """Test types without a layout use type, year, month, client and portfolio."""
        tax = replace(trade_document, document_type=DocumentType.TAX_DOCUMENT, client_id="C1")

        result = engine(rules=[]).file(tax, base_path="/archive/")

        assert result.filing_path == "/archive/tax_document/2026/03/client_C1/portfolio_P1/confirm.pdf"

    def test_directory_structure(self, trade_document):
        """Test one folder node per path segment and a final file node."""
        result = engine(rules=[]).file(trade_document)

        nodes = result.directory_structure
        assert [n.name for n in nodes] == ["documents", "trades", "2026", "03", "portfolio_P1", "confirm.pdf"]
        assert nodes[-1].node_type == NodeType.FILE
        assert nodes[-1].path == result.filing_path
        assert nodes[1].path == "/documents/trades"


class TestRuleExecution:
    """Tests for rule ordering and action handling."""

    def test_rules_without_conditions_never_fire(self, trade_document):
        """Test a rule with no conditions is skipped."""
        rule = FilingRule(id="empty", name="empty", actions=(action(ActionType.ADD_TAG, tag="x"),))

        result = engine(rules=[rule]).file(trade_document)

        assert result.applied_rules == []

    def test_caller_rules_override_by_id(self, trade_document):
        """Test a caller rule with a bundled id replaces the bundled rule."""
        disabled = FilingRule(id="high_value_trades", name="disabled", is_active=False)

        result = engine().file(trade_document, [amount(150000.0)], rules=[disabled])

        assert result.applied_rules == []

    def test_first_classification_by_priority_wins(self, trade_document):
        """Test the highest-priority SET_CLASSIFICATION is kept."""
        rules = [
            always("low", action(ActionType.SET_CLASSIFICATION, classification="public"), priority=1),
            always("high", action(ActionType.SET_CLASSIFICATION, classification="CONFIDENTIAL"), priority=9),
        ]

        result = engine(rules=rules).file(trade_document)

        assert [r.rule_id for r in result.applied_rules] == ["high", "low"]
        assert result.updated_classification == DocumentClassification.CONFIDENTIAL

    def test_move_to_folder(self, trade_document):
        """Test MOVE_TO_FOLDER replaces the layout folder."""
        rules = [always("move", action(ActionType.MOVE_TO_FOLDER, folder="/archive/special/"))]

        result = engine(rules=rules).file(trade_document)

        assert result.filing_path == "/archive/special/confirm.pdf"

    def test_metadata_and_tags(self, trade_document):
        """Test UPDATE_METADATA and ADD_TAG with a tag list."""
        rules = [always(
            "meta",
            action(ActionType.UPDATE_METADATA, metadata={"desk": "equities"}),
            action(ActionType.ADD_TAG, tags=["reviewed", "desk-eq"]),
        )]

        result = engine(rules=rules).file(trade_document)

        assert result.updated_metadata == {"desk": "equities"}
        assert {"reviewed", "desk-eq"} <= set(result.tags)

    def test_failing_action_is_partial(self, trade_document):
        """Test a failing action is recorded and later actions still run."""
        rules = [always(
            "mixed",
            action(ActionType.UPDATE_METADATA, metadata="not a mapping"),
            action(ActionType.ADD_TAG, tag="still-runs"),
        )]

        result = engine(rules=rules).file(trade_document)
        applied = result.applied_rules[0]

        assert result.status == FilingStatus.PARTIAL
        assert [a.action_type for a in applied.failed_actions] == [ActionType.UPDATE_METADATA]
        assert [a.action_type for a in applied.executed_actions] == [ActionType.ADD_TAG]
        assert "still-runs" in result.tags
        assert len(result.errors) == 1

    def test_missing_handler_raises(self, trade_document):
        """Test an action type without a handler aborts filing."""
        handlers = {k: v for k, v in DEFAULT_ACTION_HANDLERS.items() if k != ActionType.SEND_NOTIFICATION}
        rules = [always("notify", action(ActionType.SEND_NOTIFICATION, channel="ops"))]

        with pytest.raises(UnsupportedActionError):
            engine(rules=rules, action_handlers=handlers).file(trade_document)

    def test_invalid_condition_is_partial(self, trade_document):
        """Test a condition that cannot be evaluated skips the rule."""
        rule = FilingRule(
            id="bad",
            name="bad",
            conditions=(condition("document.title", ConditionOperator.REGEX, "("),),
            actions=(action(ActionType.ADD_TAG, tag="never"),),
        )

        result = engine(rules=[rule]).file(trade_document)

        assert result.applied_rules == []
        assert result.status == FilingStatus.PARTIAL
        assert "never" not in result.tags

    def test_notification_sent(self, trade_document):
        """Test SEND_NOTIFICATION calls the notification collaborator."""
        notifier = RecordingNotifier()
        rules = [always("notify", action(ActionType.SEND_NOTIFICATION, channel="ops"))]

        engine(rules=rules, notifier=notifier).file(trade_document)

        assert notifier.sent == [{"channel": "ops"}]


class TestConditions:
    """Tests for condition evaluation."""

    def test_resolve_paths(self, trade_document):
        """Test camelCase and snake_case paths on documents, metadata and fields."""
        trade_document.metadata["desk"] = "rates"

        assert resolve_field("document.fileName", trade_document, []) == "confirm.pdf"
        assert resolve_field("document.portfolio_id", trade_document, []) == "P1"
        assert resolve_field("metadata.desk", trade_document, []) == "rates"
        assert resolve_field("extracted.amount", trade_document, [amount(5.0)]) == 5.0
        assert resolve_field("document.nothing", trade_document, []) is None

    def test_unknown_root(self, trade_document):
        """Test an unknown path root is rejected."""
        with pytest.raises(InvalidConditionError):
            resolve_field("user.name", trade_document, [])

    def test_missing_values(self, trade_document):
        """Test missing values fail every operator except EQUALS null."""
        assert not evaluate_condition(condition("document.clientId", ConditionOperator.EXISTS), trade_document, [])
        assert evaluate_condition(condition("document.clientId", ConditionOperator.EQUALS), trade_document, [])
        assert not evaluate_condition(
            condition("document.clientId", ConditionOperator.CONTAINS, "x"), trade_document, [],
        )

    def test_numeric_comparison(self, trade_document):
        """Test numeric operators parse both sides."""
        fields = [amount(150000.0)]

        assert evaluate_condition(condition("extracted.amount", ConditionOperator.GREATER_THAN, "$100,000"),
                                  trade_document, fields)
        assert evaluate_condition(condition("extracted.amount", ConditionOperator.EQUALS, "150000"),
                                  trade_document, fields)
        assert not evaluate_condition(condition("document.title", ConditionOperator.LESS_THAN, 5),
                                      trade_document, fields)

    def test_case_sensitivity(self, trade_document):
        """Test string operators ignore case unless asked not to."""
        assert evaluate_condition(condition("document.title", ConditionOperator.STARTS_WITH, "trade"),
                                  trade_document, [])
        assert not evaluate_condition(
            condition("document.title", ConditionOperator.STARTS_WITH, "trade", case_sensitive=True),
            trade_document, [],
        )
        assert evaluate_condition(condition("document.fileName", ConditionOperator.ENDS_WITH, ".PDF"),
                                  trade_document, [])

    def test_current_year_placeholder(self, trade_document):
        """Test the current year placeholder uses the supplied time."""
        year_condition = condition("document.uploadedAt", ConditionOperator.CONTAINS, "{current_year}")

        assert evaluate_condition(year_condition, trade_document, [], now=NOW)
        assert not evaluate_condition(year_condition, trade_document, [], now=datetime(2030, 1, 1))
