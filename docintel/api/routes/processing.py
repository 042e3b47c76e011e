"""
Document processing API routes.

Endpoints for end-to-end processing of stored documents and for running
the recognition, extraction and filing stages on their own.
"""
import structlog
from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from docintel.database import get_db
from docintel.exceptions import DocumentNotFoundError, TemplateNotFoundError
from docintel.pipeline.models import ExtractedField
from docintel.pipeline.orchestrator import DocumentPipeline
from docintel.pipeline.recognition import TemplateRecognizer
from docintel.pipeline.values import infer_field_type
from docintel.schemas.processing import (
    ExtractionResponse,
    ExtractRequest,
    FileRequest,
    FilingResponse,
    ProcessRequest,
    ProcessResponse,
    RecognitionResponse,
    RecognizeRequest,
    TaskResponse,
)
from docintel.services.pipeline_factory import build_field_extractor, build_filing_engine, build_pipeline
from docintel.services.repository import SQLDocumentRepository

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_pipeline(db: Session = Depends(get_db)) -> DocumentPipeline:
    return build_pipeline(db)


@router.post(
    "/documents/{document_id}/process",
    response_model=ProcessResponse,
    summary="Process a stored document",
    description="Recognize the template, extract and validate fields, then file the document.",
)
def process_document(
    document_id: str,
    request: ProcessRequest,
    tenant_id: str = Header(..., alias="X-Tenant-ID"),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> ProcessResponse:
    result = pipeline.process(
        document_id,
        tenant_id,
        ocr_results=request.pages() or None,
        expected_document_type=request.expected_document_type,
    )
    return ProcessResponse(
        document_id=document_id,
        recognition=RecognitionResponse.from_result(result.recognition),
        extraction=ExtractionResponse.from_result(result.extraction),
        filing=FilingResponse.from_result(result.filing),
        events=result.events,
        processing_time_ms=result.processing_time,
    )


@router.post("/recognize", response_model=RecognitionResponse, summary="Recognize the document template")
def recognize(request: RecognizeRequest, db: Session = Depends(get_db)) -> RecognitionResponse:
    templates = SQLDocumentRepository(db).get_templates(request.language)
    result = TemplateRecognizer().recognize(
        request.document_id,
        request.pages(),
        templates,
        language=request.language,
        expected_document_type=request.expected_document_type,
    )
    return RecognitionResponse.from_result(result)


@router.post("/extract", response_model=ExtractionResponse, summary="Extract fields from OCR pages")
def extract(request: ExtractRequest, db: Session = Depends(get_db)) -> ExtractionResponse:
    template = None
    if request.template_id:
        template = SQLDocumentRepository(db).get_template(request.template_id)
        if template is None:
            raise TemplateNotFoundError(request.template_id)

    result = build_field_extractor().extract(
        request.document_id,
        request.pages(),
        template=template,
        language=request.language,
    )
    return ExtractionResponse.from_result(result)


@router.post("/documents/{document_id}/file", response_model=FilingResponse, summary="File a stored document")
def file_document(
    document_id: str,
    request: FileRequest,
    tenant_id: str = Header(..., alias="X-Tenant-ID"),
    db: Session = Depends(get_db),
) -> FilingResponse:
    repository = SQLDocumentRepository(db)
    document = repository.get_document(document_id, tenant_id)
    if document is None:
        raise DocumentNotFoundError(document_id, tenant_id=tenant_id)

    fields = [
        ExtractedField(
            field_name=name,
            value=value,
            confidence=1.0,
            source="INPUT",
            field_type=infer_field_type(name),
        )
        for name, value in request.extracted_fields.items()
    ]
    result = build_filing_engine().file(
        document,
        fields,
        rules=repository.get_rules(),
        base_path=request.base_path,
    )
    return FilingResponse.from_result(result)


@router.post(
    "/documents/{document_id}/process-async",
    response_model=TaskResponse,
    status_code=202,
    summary="Queue a stored document for background processing",
)
def process_document_async(
    document_id: str,
    tenant_id: str = Header(..., alias="X-Tenant-ID"),
    db: Session = Depends(get_db),
) -> TaskResponse:
    if SQLDocumentRepository(db).get_document(document_id, tenant_id) is None:
        raise DocumentNotFoundError(document_id, tenant_id=tenant_id)

    from docintel.tasks.pipeline_tasks import process_document_task

    task = process_document_task.delay(document_id, tenant_id)
    logger.info("document_processing_queued", document_id=document_id, task_id=task.id)
    return TaskResponse(task_id=task.id, document_id=document_id)
