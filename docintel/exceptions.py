"""
Custom exceptions for DocIntel.

Provides a hierarchy of exceptions with error codes for consistent error handling.
"""
from typing import Any, Dict, List, Optional


class DocIntelError(Exception):
    """
    Base exception for all DocIntel errors.

    Attributes:
        error_code: Unique error code (e.g., DCI-101)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "DCI-000"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Document Errors (DCI-1XX)
class DocumentError(DocIntelError):
    """Error while loading or saving a document."""
    error_code = "DCI-100"
    http_status = 400

    def __init__(self, message: str = "Document error", **kwargs):
        super().__init__(message, **kwargs)


class DocumentNotFoundError(DocumentError):
    """Document not found in the repository."""
    error_code = "DCI-101"
    http_status = 404

    def __init__(self, document_id: str, tenant_id: Optional[str] = None, **kwargs):
        message = f"Document {document_id} not found"
        super().__init__(
            message,
            details={"document_id": document_id, "tenant_id": tenant_id},
            **kwargs,
        )


# OCR Errors (DCI-2XX)
class OCRError(DocIntelError):
    """Error during OCR processing."""
    error_code = "DCI-200"
    http_status = 500

    def __init__(self, message: str = "OCR processing failed", **kwargs):
        super().__init__(message, **kwargs)


class OCRInputError(OCRError):
    """OCR input missing or unreadable."""
    error_code = "DCI-201"
    http_status = 422

    def __init__(self, document_id: str, reason: str = "no OCR pages available", **kwargs):
        message = f"OCR input for document {document_id} is unusable: {reason}"
        super().__init__(
            message,
            details={"document_id": document_id, "reason": reason},
            **kwargs,
        )


# Template Errors (DCI-4XX)
class TemplateError(DocIntelError):
    """Error in template definitions or recognition."""
    error_code = "DCI-400"
    http_status = 400

    def __init__(self, message: str = "Template error", **kwargs):
        super().__init__(message, **kwargs)


class TemplateNotFoundError(TemplateError):
    """Template not found."""
    error_code = "DCI-401"
    http_status = 404

    def __init__(self, template_id: str, **kwargs):
        message = f"Template {template_id} not found"
        super().__init__(message, details={"template_id": template_id}, **kwargs)


# Extraction Errors (DCI-5XX)
class ExtractionError(DocIntelError):
    """Error during field extraction."""
    error_code = "DCI-500"
    http_status = 500

    def __init__(self, message: str = "Field extraction failed", **kwargs):
        super().__init__(message, **kwargs)


class UnknownStrategyError(ExtractionError):
    """No extraction strategy registered for a method."""
    error_code = "DCI-501"
    http_status = 500

    def __init__(self, method: str, available: Optional[List[str]] = None, **kwargs):
        message = f"No extraction strategy registered for '{method}'"
        super().__init__(
            message,
            details={"method": method, "available": available or []},
            **kwargs,
        )


# Validation Errors (DCI-7XX)
class ValidationError(DocIntelError):
    """Input validation failed."""
    error_code = "DCI-700"
    http_status = 422

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, details=details, **kwargs)


class UnknownPredicateError(ValidationError):
    """CUSTOM validation rule references an unregistered predicate."""
    error_code = "DCI-701"
    http_status = 422

    def __init__(self, predicate_id: str, **kwargs):
        message = f"Unknown validation predicate '{predicate_id}'"
        super().__init__(message, details={"predicate_id": predicate_id}, **kwargs)


# Filing Errors (DCI-8XX)
class FilingError(DocIntelError):
    """Error while filing a document."""
    error_code = "DCI-800"
    http_status = 500

    def __init__(self, message: str = "Document filing failed", **kwargs):
        super().__init__(message, **kwargs)


class UnsupportedActionError(FilingError):
    """Filing action type has no registered handler."""
    error_code = "DCI-801"
    http_status = 500

    def __init__(self, action_type: str, rule_id: Optional[str] = None, **kwargs):
        message = f"Unsupported filing action '{action_type}'"
        super().__init__(
            message,
            details={"action_type": action_type, "rule_id": rule_id},
            **kwargs,
        )


class InvalidConditionError(FilingError):
    """Filing condition cannot be evaluated."""
    error_code = "DCI-802"
    http_status = 400

    def __init__(self, message: str = "Invalid filing condition", **kwargs):
        super().__init__(message, **kwargs)


# Pipeline Errors (DCI-9XX)
class PipelineError(DocIntelError):
    """Error in pipeline orchestration."""
    error_code = "DCI-900"
    http_status = 500

    def __init__(self, message: str = "Pipeline failed", **kwargs):
        super().__init__(message, **kwargs)


class PipelineCancelledError(PipelineError):
    """Pipeline aborted between stages by the caller."""
    error_code = "DCI-901"
    http_status = 409

    def __init__(self, document_id: str, stage: str, **kwargs):
        message = f"Processing of document {document_id} cancelled before {stage}"
        super().__init__(
            message,
            details={"document_id": document_id, "stage": stage},
            **kwargs,
        )


class UnknownCollaboratorError(DocIntelError):
    """Registry lookup for an unregistered key."""
    error_code = "DCI-902"
    http_status = 500

    def __init__(self, kind: str, key: str, available: Optional[List[str]] = None, **kwargs):
        message = f"No {kind} registered under '{key}'"
        super().__init__(
            message,
            details={"kind": kind, "key": key, "available": available or []},
            **kwargs,
        )


class ExternalServiceError(DocIntelError):
    """External service (OCR engine, model server, webhook) unavailable."""
    error_code = "DCI-950"
    http_status = 503

    def __init__(self, service: str, message: str = "External service unavailable", **kwargs):
        super().__init__(f"{service}: {message}", details={"service": service}, **kwargs)
