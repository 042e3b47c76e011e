"""
Value objects shared by the document-intelligence pipeline.

Every stage consumes and returns these dataclasses. OCR input, templates and
filing rules are frozen reference data; stage results are built fresh on each
call and never shared between documents.
"""
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


# =============================================================================
# Enumerations
# =============================================================================

class DocumentType(str, Enum):
    """Known financial document types."""

    TRADE_CONFIRMATION = "TRADE_CONFIRMATION"
    STATEMENT = "STATEMENT"
    PROSPECTUS = "PROSPECTUS"
    OFFERING_MEMORANDUM = "OFFERING_MEMORANDUM"
    TERM_SHEET = "TERM_SHEET"
    ANNUAL_REPORT = "ANNUAL_REPORT"
    QUARTERLY_REPORT = "QUARTERLY_REPORT"
    TAX_DOCUMENT = "TAX_DOCUMENT"
    COMPLIANCE_CERTIFICATE = "COMPLIANCE_CERTIFICATE"
    CONTRACT = "CONTRACT"
    AMENDMENT = "AMENDMENT"
    LEGAL_OPINION = "LEGAL_OPINION"
    AUDIT_REPORT = "AUDIT_REPORT"
    REGULATORY_FILING = "REGULATORY_FILING"
    CLIENT_COMMUNICATION = "CLIENT_COMMUNICATION"
    INVESTMENT_COMMITTEE_MINUTES = "INVESTMENT_COMMITTEE_MINUTES"
    DUE_DILIGENCE_REPORT = "DUE_DILIGENCE_REPORT"
    PERFORMANCE_REPORT = "PERFORMANCE_REPORT"
    RISK_REPORT = "RISK_REPORT"
    SUBSCRIPTION_AGREEMENT = "SUBSCRIPTION_AGREEMENT"
    REDEMPTION_NOTICE = "REDEMPTION_NOTICE"
    TRANSFER_AGREEMENT = "TRANSFER_AGREEMENT"
    KYC_DOCUMENT = "KYC_DOCUMENT"
    AML_DOCUMENT = "AML_DOCUMENT"
    OTHER = "OTHER"


class DocumentClassification(str, Enum):
    """Access classification assigned during filing."""

    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"
    CONFIDENTIAL = "CONFIDENTIAL"
    HIGHLY_CONFIDENTIAL = "HIGHLY_CONFIDENTIAL"


class LayoutFeatureType(str, Enum):
    HEADER = "HEADER"
    FOOTER = "FOOTER"
    TABLE = "TABLE"
    FORM_FIELD = "FORM_FIELD"
    SIGNATURE = "SIGNATURE"
    LOGO = "LOGO"
    BARCODE = "BARCODE"
    TEXT_BLOCK = "TEXT_BLOCK"


class PatternType(str, Enum):
    LAYOUT = "LAYOUT"
    KEYWORD = "KEYWORD"
    REGEX = "REGEX"
    ML_MODEL = "ML_MODEL"


class FieldType(str, Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    CURRENCY = "CURRENCY"
    PERCENTAGE = "PERCENTAGE"
    DATE = "DATE"
    BOOLEAN = "BOOLEAN"


class ExtractionMethod(str, Enum):
    REGEX = "REGEX"
    OCR_REGION = "OCR_REGION"
    NLP = "NLP"
    ML_MODEL = "ML_MODEL"


class ExtractionMode(str, Enum):
    """How a DataExtractionResult was produced."""

    TEMPLATE_BASED = "TEMPLATE_BASED"
    ML_BASED = "ML_BASED"
    HYBRID = "HYBRID"


class ValidationRuleType(str, Enum):
    REQUIRED = "REQUIRED"
    FORMAT = "FORMAT"
    RANGE = "RANGE"
    CUSTOM = "CUSTOM"


class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class ConditionOperator(str, Enum):
    EQUALS = "EQUALS"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    REGEX = "REGEX"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    EXISTS = "EXISTS"


class ActionType(str, Enum):
    ADD_TAG = "ADD_TAG"
    SET_CLASSIFICATION = "SET_CLASSIFICATION"
    UPDATE_METADATA = "UPDATE_METADATA"
    MOVE_TO_FOLDER = "MOVE_TO_FOLDER"
    SEND_NOTIFICATION = "SEND_NOTIFICATION"
    TRIGGER_WORKFLOW = "TRIGGER_WORKFLOW"


class FilingStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class FilingMethod(str, Enum):
    RULE_BASED = "RULE_BASED"
    ML_BASED = "ML_BASED"
    TEMPLATE_BASED = "TEMPLATE_BASED"
    HYBRID = "HYBRID"


class NodeType(str, Enum):
    FOLDER = "FOLDER"
    FILE = "FILE"


def _enum(enum_cls, value, default=None):
    """Coerce a raw value (any case) into an enum member."""
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    return enum_cls(str(value).strip().upper())


# =============================================================================
# Geometry and OCR input
# =============================================================================

@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in page pixel coordinates (origin top-left)."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, other: "BoundingBox") -> bool:
        """True when `other` lies fully inside this box (edges inclusive)."""
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    @classmethod
    def union(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        boxes = list(boxes)
        if not boxes:
            return cls()
        left = min(b.x for b in boxes)
        top = min(b.y for b in boxes)
        right = max(b.right for b in boxes)
        bottom = max(b.bottom for b in boxes)
        return cls(x=left, y=top, width=right - left, height=bottom - top)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BoundingBox":
        if not data:
            return cls()
        return cls(
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            width=float(data.get("width", 0)),
            height=float(data.get("height", 0)),
        )


@dataclass(frozen=True)
class OCRWord:
    text: str
    confidence: float
    bounding_box: BoundingBox = BoundingBox()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRWord":
        return cls(
            text=str(data.get("text", "")),
            confidence=float(data.get("confidence", 0.0)),
            bounding_box=BoundingBox.from_dict(data.get("bounding_box") or data.get("boundingBox")),
        )


@dataclass(frozen=True)
class OCRLine:
    text: str
    confidence: float
    bounding_box: BoundingBox = BoundingBox()
    words: Tuple[OCRWord, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRLine":
        return cls(
            text=str(data.get("text", "")),
            confidence=float(data.get("confidence", 0.0)),
            bounding_box=BoundingBox.from_dict(data.get("bounding_box") or data.get("boundingBox")),
            words=tuple(OCRWord.from_dict(w) for w in data.get("words", [])),
        )


@dataclass(frozen=True)
class OCRParagraph:
    text: str
    confidence: float
    bounding_box: BoundingBox = BoundingBox()
    lines: Tuple[OCRLine, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRParagraph":
        return cls(
            text=str(data.get("text", "")),
            confidence=float(data.get("confidence", 0.0)),
            bounding_box=BoundingBox.from_dict(data.get("bounding_box") or data.get("boundingBox")),
            lines=tuple(OCRLine.from_dict(line) for line in data.get("lines", [])),
        )


@dataclass(frozen=True)
class OCRRegion:
    text: str
    confidence: float
    bounding_box: BoundingBox = BoundingBox()
    region_type: str = "text"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRRegion":
        return cls(
            text=str(data.get("text", "")),
            confidence=float(data.get("confidence", 0.0)),
            bounding_box=BoundingBox.from_dict(data.get("bounding_box") or data.get("boundingBox")),
            region_type=str(data.get("region_type") or data.get("type") or "text").lower(),
        )


@dataclass(frozen=True)
class OCRResult:
    """
    OCR output for a single page.

    Produced by the OCR provider and never modified afterwards.
    """

    page_number: int
    text: str = ""
    confidence: float = 0.0
    words: Tuple[OCRWord, ...] = ()
    lines: Tuple[OCRLine, ...] = ()
    paragraphs: Tuple[OCRParagraph, ...] = ()
    regions: Tuple[OCRRegion, ...] = ()
    id: str = ""
    document_id: str = ""
    language: str = "en"
    processing_time: float = 0.0
    ocr_engine: str = "unknown"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRResult":
        """Build a page from its JSON form (snake_case or camelCase keys)."""
        return cls(
            page_number=int(data.get("page_number", data.get("pageNumber", 1))),
            text=str(data.get("text", "")),
            confidence=float(data.get("confidence", 0.0)),
            words=tuple(OCRWord.from_dict(w) for w in data.get("words", [])),
            lines=tuple(OCRLine.from_dict(line) for line in data.get("lines", [])),
            paragraphs=tuple(OCRParagraph.from_dict(p) for p in data.get("paragraphs", [])),
            regions=tuple(OCRRegion.from_dict(r) for r in data.get("regions", [])),
            id=str(data.get("id", "")),
            document_id=str(data.get("document_id", data.get("documentId", ""))),
            language=str(data.get("language", "en")),
            processing_time=float(data.get("processing_time", data.get("processingTime", 0.0))),
            ocr_engine=str(data.get("ocr_engine", data.get("ocrEngine", "unknown"))),
        )


# =============================================================================
# Structure analysis
# =============================================================================

@dataclass
class LayoutFeature:
    type: LayoutFeatureType
    bounding_box: BoundingBox
    confidence: float
    text: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DocumentStructure:
    """Layout features detected across all pages, bucketed by kind."""

    headers: List[LayoutFeature] = field(default_factory=list)
    footers: List[LayoutFeature] = field(default_factory=list)
    tables: List[LayoutFeature] = field(default_factory=list)
    form_fields: List[LayoutFeature] = field(default_factory=list)
    signatures: List[LayoutFeature] = field(default_factory=list)
    logos: List[LayoutFeature] = field(default_factory=list)
    barcodes: List[LayoutFeature] = field(default_factory=list)
    text_blocks: List[LayoutFeature] = field(default_factory=list)

    def bucket(self, feature_type: LayoutFeatureType) -> List[LayoutFeature]:
        return getattr(self, _BUCKETS[feature_type])

    def all_features(self) -> List[LayoutFeature]:
        features: List[LayoutFeature] = []
        for name in _BUCKETS.values():
            features.extend(getattr(self, name))
        return features

    def is_empty(self) -> bool:
        return not self.all_features()


_BUCKETS = {
    LayoutFeatureType.HEADER: "headers",
    LayoutFeatureType.FOOTER: "footers",
    LayoutFeatureType.TABLE: "tables",
    LayoutFeatureType.FORM_FIELD: "form_fields",
    LayoutFeatureType.SIGNATURE: "signatures",
    LayoutFeatureType.LOGO: "logos",
    LayoutFeatureType.BARCODE: "barcodes",
    LayoutFeatureType.TEXT_BLOCK: "text_blocks",
}


# =============================================================================
# Templates
# =============================================================================

@dataclass(frozen=True)
class TemplatePattern:
    pattern_type: PatternType
    pattern: str
    weight: float = 1.0
    is_required: bool = False
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplatePattern":
        return cls(
            pattern_type=_enum(PatternType, data.get("type") or data.get("pattern_type")),
            pattern=str(data["pattern"]),
            weight=float(data.get("weight", 1.0)),
            is_required=bool(data.get("required", data.get("is_required", False))),
            id=str(data.get("id", "")),
        )


@dataclass(frozen=True)
class ExtractionRule:
    field_name: str
    field_type: FieldType
    extraction_method: ExtractionMethod
    pattern: Optional[str] = None
    coordinates: Optional[BoundingBox] = None
    validation_rule_ids: Tuple[str, ...] = ()
    post_processing: Tuple[str, ...] = ()
    id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionRule":
        coordinates = data.get("coordinates")
        return cls(
            field_name=str(data["field_name"]),
            field_type=_enum(FieldType, data.get("field_type"), FieldType.STRING),
            extraction_method=_enum(ExtractionMethod, data.get("method") or data.get("extraction_method")),
            pattern=data.get("pattern"),
            coordinates=BoundingBox.from_dict(coordinates) if coordinates else None,
            validation_rule_ids=tuple(data.get("validation_rules", data.get("validation_rule_ids", []))),
            post_processing=tuple(data.get("post_processing", [])),
            id=str(data.get("id", data["field_name"])),
        )


@dataclass(frozen=True)
class ValidationRule:
    id: str
    rule_type: ValidationRuleType
    field_name: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    error_message: str = ""
    severity: Severity = Severity.ERROR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationRule":
        return cls(
            id=str(data["id"]),
            rule_type=_enum(ValidationRuleType, data.get("type") or data.get("rule_type")),
            field_name=data.get("field_name"),
            parameters=dict(data.get("parameters") or {}),
            error_message=str(data.get("error_message", "")),
            severity=_enum(Severity, data.get("severity"), Severity.ERROR),
        )


@dataclass(frozen=True)
class DocumentTemplate:
    """Reference description of a known document layout and its fields."""

    id: str
    name: str
    document_type: DocumentType
    language: str = "en"
    template_patterns: Tuple[TemplatePattern, ...] = ()
    extraction_rules: Tuple[ExtractionRule, ...] = ()
    validation_rules: Tuple[ValidationRule, ...] = ()
    is_active: bool = True
    version: int = 1

    def patterns_of(self, pattern_type: PatternType) -> List[TemplatePattern]:
        return [p for p in self.template_patterns if p.pattern_type == pattern_type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentTemplate":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            document_type=_enum(DocumentType, data.get("document_type"), DocumentType.OTHER),
            language=str(data.get("language", "en")),
            template_patterns=tuple(TemplatePattern.from_dict(p) for p in data.get("patterns", [])),
            extraction_rules=tuple(ExtractionRule.from_dict(r) for r in data.get("extraction_rules", [])),
            validation_rules=tuple(ValidationRule.from_dict(r) for r in data.get("validation_rules", [])),
            is_active=bool(data.get("is_active", True)),
            version=int(data.get("version", 1)),
        )


# =============================================================================
# Recognition
# =============================================================================

@dataclass
class KeywordMatch:
    keyword: str
    document_type: DocumentType
    confidence: float
    bounding_box: BoundingBox
    page_number: int
    context: str = ""


@dataclass
class TemplateMatchingScore:
    template_id: str
    document_type: DocumentType
    layout_score: float = 0.0
    keyword_score: float = 0.0
    content_score: float = 0.0
    confidence_score: float = 0.0
    penalty_score: float = 0.0
    total_score: float = 0.0
    boosted: bool = False
    matching_features: List[str] = field(default_factory=list)


@dataclass
class ClassificationScore:
    document_type: DocumentType
    score: float
    matching_features: List[str] = field(default_factory=list)


@dataclass
class TemplateRecognitionResult:
    document_id: str
    recognized_template: Optional[DocumentTemplate]
    confidence: float
    alternatives: List[TemplateMatchingScore] = field(default_factory=list)
    classification_scores: List[ClassificationScore] = field(default_factory=list)
    matching_patterns: List[str] = field(default_factory=list)
    scores: List[TemplateMatchingScore] = field(default_factory=list)
    processing_time: float = 0.0
    structure: DocumentStructure = field(default_factory=DocumentStructure)

    @property
    def best_score(self) -> Optional[TemplateMatchingScore]:
        return self.scores[0] if self.scores else None


# =============================================================================
# Extraction and validation
# =============================================================================

@dataclass(frozen=True)
class AlternativeValue:
    value: Any
    confidence: float
    source: str


@dataclass
class ExtractedField:
    field_name: str
    value: Any
    confidence: float
    source: str
    field_type: FieldType = FieldType.STRING
    raw_value: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None
    alternatives: List[AlternativeValue] = field(default_factory=list)
    validation_passed: bool = True
    validation_errors: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    field_name: str
    rule_id: str
    is_valid: bool
    severity: Severity = Severity.ERROR
    error_message: Optional[str] = None


@dataclass
class DataExtractionResult:
    document_id: str
    extracted_fields: List[ExtractedField]
    confidence: float
    extraction_method: ExtractionMode
    template_id: Optional[str] = None
    validation_results: List[ValidationResult] = field(default_factory=list)
    processing_time: float = 0.0
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_field(self, field_name: str) -> Optional[ExtractedField]:
        for extracted in self.extracted_fields:
            if extracted.field_name == field_name:
                return extracted
        return None


# =============================================================================
# Filing
# =============================================================================

@dataclass(frozen=True)
class FilingCondition:
    field: str
    operator: ConditionOperator
    value: Any = None
    case_sensitive: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilingCondition":
        return cls(
            field=str(data["field"]),
            operator=_enum(ConditionOperator, data.get("operator")),
            value=data.get("value"),
            case_sensitive=bool(data.get("case_sensitive", False)),
        )


@dataclass(frozen=True)
class FilingAction:
    action_type: ActionType
    parameters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilingAction":
        return cls(
            action_type=_enum(ActionType, data.get("type") or data.get("action_type")),
            parameters=dict(data.get("parameters") or {}),
        )


@dataclass(frozen=True)
class FilingRule:
    """Prioritized condition/action rule. Higher priority is evaluated first."""

    id: str
    name: str
    priority: int = 0
    conditions: Tuple[FilingCondition, ...] = ()
    actions: Tuple[FilingAction, ...] = ()
    applicable_document_types: Tuple[DocumentType, ...] = ()
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilingRule":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            priority=int(data.get("priority", 0)),
            conditions=tuple(FilingCondition.from_dict(c) for c in data.get("conditions", [])),
            actions=tuple(FilingAction.from_dict(a) for a in data.get("actions", [])),
            applicable_document_types=tuple(
                _enum(DocumentType, t) for t in data.get("document_types", data.get("applicable_document_types", []))
            ),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class AppliedRule:
    rule_id: str
    rule_name: str
    matched_conditions: List[FilingCondition] = field(default_factory=list)
    executed_actions: List[FilingAction] = field(default_factory=list)
    failed_actions: List[FilingAction] = field(default_factory=list)
    execution_time: float = 0.0


@dataclass
class DocumentTag:
    name: str
    category: str
    confidence: float
    relevance: float = 1.0
    source: str = "AUTO"


@dataclass
class DocumentRecord:
    """A stored document as the pipeline sees it."""

    id: str
    tenant_id: str
    file_name: str
    title: str = ""
    description: str = ""
    document_type: Optional[DocumentType] = None
    classification: DocumentClassification = DocumentClassification.INTERNAL
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    uploaded_at: datetime = field(default_factory=datetime.utcnow)
    client_id: Optional[str] = None
    portfolio_id: Optional[str] = None
    language: str = "en"
    file_path: Optional[str] = None
    filing_path: Optional[str] = None


@dataclass
class DirectoryNode:
    name: str
    node_type: NodeType
    path: str


@dataclass
class FilingResult:
    document_id: str
    filing_path: str
    status: FilingStatus
    filing_method: FilingMethod
    confidence: float
    applied_rules: List[AppliedRule] = field(default_factory=list)
    generated_tags: List[DocumentTag] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    updated_classification: Optional[DocumentClassification] = None
    updated_document_type: Optional[DocumentType] = None
    updated_metadata: Dict[str, Any] = field(default_factory=dict)
    directory_structure: List[DirectoryNode] = field(default_factory=list)
    processing_time: float = 0.0
    errors: List[str] = field(default_factory=list)


# =============================================================================
# Collaborator payloads
# =============================================================================

@dataclass
class ClassifierOutput:
    """Result of a document-type classifier call."""

    document_type: DocumentType
    confidence: float
    alternatives: List[Tuple[DocumentType, float]] = field(default_factory=list)

    def confidence_for(self, document_type: DocumentType) -> float:
        if self.document_type == document_type:
            return self.confidence
        for candidate, confidence in self.alternatives:
            if candidate == document_type:
                return confidence
        return 0.0


@dataclass(frozen=True)
class Entity:
    text: str
    label: str
    confidence: float
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class ModelPrediction:
    value: Any
    confidence: float


@dataclass
class StageEvent:
    event_type: str
    document_id: str
    tenant_id: str
    summary: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


def to_primitive(obj: Any) -> Any:
    """Recursively convert dataclasses, enums and dates into JSON-friendly values."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_primitive(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): to_primitive(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_primitive(v) for v in obj]
    return obj
