"""
Health endpoint.
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from docintel.database import get_db
from docintel.services.reference_data import get_reference_data

router = APIRouter()

VERSION = "1.0.0"


class HealthResponse(BaseModel):
    """Health check response with component status."""
    status: str
    database: str
    templates: int
    timestamp: str
    version: str = VERSION


@router.get("/health", response_model=HealthResponse, tags=["Monitoring"])
def health_check(db: Session = Depends(get_db)) -> HealthResponse:
    """
    Health check.

    Reports "degraded" when the database is unreachable.
    """
    db_status = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        templates=len(get_reference_data().templates),
        timestamp=datetime.utcnow().isoformat(),
    )
