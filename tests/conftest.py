"""
Pytest configuration and fixtures.
"""
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Generator

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "docintel-test-uploads"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import docintel.models  # noqa: F401
from docintel.database import Base, get_db
from docintel.main import app
from docintel.pipeline import structure
from docintel.pipeline.models import DocumentRecord, DocumentType, OCRResult
from docintel.services import nlp_service, ocr_service, reference_data
from docintel.services.classifiers import hybrid, rule_based
from ocr_builders import trade_confirmation_page


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def tc_page() -> OCRResult:
    return trade_confirmation_page()


@pytest.fixture
def trade_document() -> DocumentRecord:
    return DocumentRecord(
        id="doc-1",
        tenant_id="tenant-a",
        file_name="confirm.pdf",
        title="Trade confirmation",
        document_type=DocumentType.TRADE_CONFIRMATION,
        uploaded_at=datetime(2026, 3, 15, 9, 30),
        portfolio_id="P1",
    )


# =============================================================================
# Singletons and database
# =============================================================================

@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Drop cached service instances so tests never share state."""
    yield
    reference_data._reference_data_instance = None
    rule_based._classifier_instance = None
    hybrid._classifier_instance = None
    structure._analyzer_instance = None
    nlp_service._extractor_instance = None
    ocr_service._ocr_provider_instance = None


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
