"""
Pydantic schemas for the processing API.

OCR pages are accepted in their JSON form (snake_case or camelCase keys)
and converted with OCRResult.from_dict.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from docintel.pipeline.models import (
    DataExtractionResult,
    DocumentType,
    FilingResult,
    OCRResult,
    TemplateRecognitionResult,
    to_primitive,
)


class OCRPayload(BaseModel):
    """Request fragment carrying OCR pages."""

    ocr_results: List[Dict[str, Any]] = Field(default_factory=list, description="OCR pages")

    def pages(self) -> List[OCRResult]:
        return [OCRResult.from_dict(page) for page in self.ocr_results]


class ProcessRequest(OCRPayload):
    """Request model for end-to-end processing of a stored document."""

    expected_document_type: Optional[DocumentType] = Field(None, description="Known document type")


class RecognizeRequest(OCRPayload):
    """Request model for template recognition."""

    document_id: str = Field(..., min_length=1)
    language: Optional[str] = Field(None, description="Template language filter")
    expected_document_type: Optional[DocumentType] = None


class ExtractRequest(OCRPayload):
    """Request model for field extraction."""

    document_id: str = Field(..., min_length=1)
    template_id: Optional[str] = Field(None, description="Template guiding extraction")
    language: str = "en"


class FileRequest(BaseModel):
    """Request model for filing a stored document."""

    extracted_fields: Dict[str, Any] = Field(
        default_factory=dict,
        description="Field name to value, available to extracted.* conditions",
    )
    base_path: Optional[str] = None


class ScoreResponse(BaseModel):
    template_id: str
    document_type: str
    layout_score: float
    keyword_score: float
    content_score: float
    total_score: float
    boosted: bool = False


class RecognitionResponse(BaseModel):
    """Response model for template recognition."""

    document_id: str
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    document_type: Optional[str] = None
    confidence: float
    matching_patterns: List[str] = Field(default_factory=list)
    scores: List[ScoreResponse] = Field(default_factory=list)
    processing_time_ms: float

    @classmethod
    def from_result(cls, result: TemplateRecognitionResult) -> "RecognitionResponse":
        template = result.recognized_template
        return cls(
            document_id=result.document_id,
            template_id=template.id if template else None,
            template_name=template.name if template else None,
            document_type=template.document_type.value if template else None,
            confidence=result.confidence,
            matching_patterns=result.matching_patterns,
            scores=[
                ScoreResponse(
                    template_id=s.template_id,
                    document_type=s.document_type.value,
                    layout_score=s.layout_score,
                    keyword_score=s.keyword_score,
                    content_score=s.content_score,
                    total_score=s.total_score,
                    boosted=s.boosted,
                )
                for s in result.scores
            ],
            processing_time_ms=result.processing_time,
        )


class ExtractedFieldResponse(BaseModel):
    field_name: str
    value: Any = None
    confidence: float
    source: str
    field_type: str
    raw_value: Optional[str] = None
    alternatives: List[Dict[str, Any]] = Field(default_factory=list)
    validation_passed: bool = True
    validation_errors: List[str] = Field(default_factory=list)


class ExtractionResponse(BaseModel):
    """Response model for field extraction."""

    document_id: str
    template_id: Optional[str] = None
    extraction_method: str
    confidence: float
    fields: List[ExtractedFieldResponse] = Field(default_factory=list)
    validation_results: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: float

    @classmethod
    def from_result(cls, result: DataExtractionResult) -> "ExtractionResponse":
        return cls(
            document_id=result.document_id,
            template_id=result.template_id,
            extraction_method=result.extraction_method.value,
            confidence=result.confidence,
            fields=[
                ExtractedFieldResponse(
                    field_name=f.field_name,
                    value=to_primitive(f.value),
                    confidence=f.confidence,
                    source=f.source,
                    field_type=f.field_type.value,
                    raw_value=f.raw_value,
                    alternatives=to_primitive(f.alternatives),
                    validation_passed=f.validation_passed,
                    validation_errors=f.validation_errors,
                )
                for f in result.extracted_fields
            ],
            validation_results=to_primitive(result.validation_results),
            errors=result.errors,
            processing_time_ms=result.processing_time,
        )


class FilingResponse(BaseModel):
    """Response model for filing."""

    document_id: str
    filing_path: str
    status: str
    filing_method: str
    confidence: float
    applied_rules: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    classification: Optional[str] = None
    document_type: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    directory_structure: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: float

    @classmethod
    def from_result(cls, result: FilingResult) -> "FilingResponse":
        return cls(
            document_id=result.document_id,
            filing_path=result.filing_path,
            status=result.status.value,
            filing_method=result.filing_method.value,
            confidence=result.confidence,
            applied_rules=[r.rule_id for r in result.applied_rules],
            tags=result.tags,
            classification=to_primitive(result.updated_classification),
            document_type=to_primitive(result.updated_document_type),
            metadata=to_primitive(result.updated_metadata),
            directory_structure=to_primitive(result.directory_structure),
            errors=result.errors,
            processing_time_ms=result.processing_time,
        )


class ProcessResponse(BaseModel):
    """Response model for end-to-end processing."""

    document_id: str
    recognition: RecognitionResponse
    extraction: ExtractionResponse
    filing: FilingResponse
    events: List[str] = Field(default_factory=list)
    processing_time_ms: float


class TaskResponse(BaseModel):
    """Response model for queued processing."""

    task_id: str
    document_id: str
    status: str = "queued"
