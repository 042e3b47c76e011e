"""
Validation of extracted fields.

Rule types:
- REQUIRED: value present and non-empty
- FORMAT: regex search against the value's text
- RANGE: numeric value within inclusive bounds
- CUSTOM: named predicate from a PredicateRegistry

Every field with a value also gets two generic checks: low confidence and
declared-vs-inferred type consistency.
"""
import re
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from docintel.exceptions import UnknownPredicateError
from docintel.pipeline.collaborators import Registry
from docintel.pipeline.models import (
    ExtractedField,
    FieldType,
    Severity,
    ValidationResult,
    ValidationRule,
    ValidationRuleType,
)
from docintel.pipeline.values import infer_field_type, parse_date, parse_number, value_matches_type

logger = structlog.get_logger(__name__)

Predicate = Callable[[Any, Mapping[str, Any]], bool]

NUMERIC_TYPES = {FieldType.NUMBER, FieldType.CURRENCY, FieldType.PERCENTAGE}


def _valid_date(value: Any, parameters: Mapping[str, Any]) -> bool:
    if isinstance(value, date):
        return True
    return value is not None and parse_date(value) is not None


def _positive_number(value: Any, parameters: Mapping[str, Any]) -> bool:
    number = parse_number(value)
    return number is not None and number > 0


def _non_empty_string(value: Any, parameters: Mapping[str, Any]) -> bool:
    return isinstance(value, str) and bool(value.strip())


BUILTIN_PREDICATES: Dict[str, Predicate] = {
    "valid_date": _valid_date,
    "positive_number": _positive_number,
    "non_empty_string": _non_empty_string,
}


class PredicateRegistry(Registry[Predicate]):
    """Named pure functions referenced by CUSTOM validation rules."""

    def __init__(self, entries: Optional[Dict[str, Predicate]] = None):
        super().__init__("validation predicate", {**BUILTIN_PREDICATES, **(entries or {})})

    def get(self, key: str) -> Predicate:
        if key not in self:
            raise UnknownPredicateError(key)
        return super().get(key)


class FieldValidator:
    """Applies validation rules and generic checks to extracted fields."""

    LOW_CONFIDENCE_THRESHOLD = 0.3

    def __init__(
        self,
        predicates: Optional[PredicateRegistry] = None,
        default_rules: Optional[Sequence[ValidationRule]] = None,
    ):
        """
        Initialize field validator.

        Args:
            predicates: Registry for CUSTOM rules. Built-ins are always present.
            default_rules: Rules used when a template declares none. Loaded
                from reference data when omitted.
        """
        self.predicates = predicates or PredicateRegistry()
        if default_rules is None:
            from docintel.services.reference_data import get_reference_data

            default_rules = get_reference_data().validation_rules
        self.default_rules: Tuple[ValidationRule, ...] = tuple(default_rules)

    # -------------------------------------------------------------------------
    # Single rule
    # -------------------------------------------------------------------------

    @staticmethod
    def _is_present(value: Any) -> bool:
        return value is not None and str(value).strip() != ""

    @staticmethod
    def _range_bounds(parameters: Mapping[str, Any]) -> Tuple[Optional[float], Optional[float]]:
        if "range" in parameters:
            low, _, high = str(parameters["range"]).partition(",")
            return parse_number(low), parse_number(high)
        return parse_number(parameters.get("min")), parse_number(parameters.get("max"))

    def _passes(self, value: Any, rule: ValidationRule) -> bool:
        params = rule.parameters
        if rule.rule_type == ValidationRuleType.REQUIRED:
            return self._is_present(value)

        if rule.rule_type == ValidationRuleType.FORMAT:
            if value is None:
                return False
            return re.search(str(params["pattern"]), str(value)) is not None

        if rule.rule_type == ValidationRuleType.RANGE:
            number = parse_number(value)
            if number is None:
                return False
            low, high = self._range_bounds(params)
            if low is not None and number < low:
                return False
            if high is not None and number > high:
                return False
            return True

        if rule.rule_type == ValidationRuleType.CUSTOM:
            predicate = self.predicates.get(str(params.get("predicate", "")))
            return bool(predicate(value, params))

        return True

    def check_rule(self, field_name: str, value: Any, rule: ValidationRule) -> ValidationResult:
        """
        Evaluate one rule against one value.

        A rule that raises (bad regex, unknown predicate, failing predicate)
        counts as failed; it never aborts validation of the field.
        """
        try:
            is_valid = self._passes(value, rule)
            message = None if is_valid else (
                rule.error_message or f"{field_name} failed {rule.rule_type.value.lower()} validation"
            )
        except UnknownPredicateError as e:
            is_valid, message = False, e.message
        except Exception as e:
            logger.warning(
                "validation_rule_error",
                field=field_name,
                rule_id=rule.id,
                error=str(e),
            )
            is_valid, message = False, rule.error_message or f"Validation rule {rule.id} failed: {e}"

        return ValidationResult(
            field_name=field_name,
            rule_id=rule.id,
            is_valid=is_valid,
            severity=rule.severity,
            error_message=message,
        )

    # -------------------------------------------------------------------------
    # Generic checks
    # -------------------------------------------------------------------------

    @staticmethod
    def type_consistent(extracted: ExtractedField) -> bool:
        if not value_matches_type(extracted.value, extracted.field_type):
            return False
        inferred = infer_field_type(extracted.field_name)
        if inferred == FieldType.STRING or inferred == extracted.field_type:
            return True
        return inferred in NUMERIC_TYPES and extracted.field_type in NUMERIC_TYPES

    def generic_checks(self, extracted: ExtractedField) -> List[ValidationResult]:
        results = []
        if extracted.confidence < self.LOW_CONFIDENCE_THRESHOLD:
            results.append(ValidationResult(
                field_name=extracted.field_name,
                rule_id="low_confidence",
                is_valid=False,
                severity=Severity.WARNING,
                error_message="Low confidence extraction",
            ))
        if self.type_consistent(extracted):
            results.append(ValidationResult(
                field_name=extracted.field_name,
                rule_id="type_consistency",
                is_valid=True,
                severity=Severity.INFO,
            ))
        else:
            results.append(ValidationResult(
                field_name=extracted.field_name,
                rule_id="type_consistency",
                is_valid=False,
                severity=Severity.WARNING,
                error_message="Field type inconsistency detected",
            ))
        return results

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    def rules_for(
        self,
        field_name: str,
        rules: Iterable[ValidationRule],
        rule_ids: Iterable[str] = (),
    ) -> List[ValidationRule]:
        wanted = set(rule_ids)
        return [r for r in rules if r.field_name == field_name or r.id in wanted]

    def validate(
        self,
        fields: Sequence[ExtractedField],
        rules: Optional[Sequence[ValidationRule]] = None,
        rule_ids_by_field: Optional[Mapping[str, Iterable[str]]] = None,
        required_fields: Iterable[str] = (),
    ) -> List[ValidationResult]:
        """
        Validate every field and record the outcome on it.

        Args:
            fields: Merged extracted fields. Their validation_passed and
                validation_errors are set in place.
            rules: Rules in force; the default rules when None or empty.
            rule_ids_by_field: Extra rule ids a field opts into by id.
            required_fields: Field names whose absence is itself a failure.

        Returns:
            Every ValidationResult produced, in field order.
        """
        pool = list(rules) if rules else list(self.default_rules)
        rule_ids_by_field = rule_ids_by_field or {}
        results: List[ValidationResult] = []

        for extracted in fields:
            field_results = [
                self.check_rule(extracted.field_name, extracted.value, rule)
                for rule in self.rules_for(
                    extracted.field_name, pool, rule_ids_by_field.get(extracted.field_name, ())
                )
            ]
            if extracted.value is not None:
                field_results.extend(self.generic_checks(extracted))

            extracted.validation_passed = all(r.is_valid for r in field_results)
            extracted.validation_errors = [r.error_message for r in field_results if not r.is_valid and r.error_message]
            results.extend(field_results)

        present = {f.field_name for f in fields}
        for field_name in required_fields:
            if field_name not in present:
                results.append(ValidationResult(
                    field_name=field_name,
                    rule_id="required",
                    is_valid=False,
                    severity=Severity.ERROR,
                    error_message=f"Required field {field_name} was not extracted",
                ))

        logger.debug(
            "fields_validated",
            fields=len(fields),
            failed=sum(1 for r in results if not r.is_valid),
        )
        return results
