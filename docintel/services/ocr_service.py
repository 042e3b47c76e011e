"""
OCR provider for stored document files.

Uses pdfplumber for native PDFs and falls back to Tesseract for scanned
pages and image files. Produces the pipeline's per-page OCRResult.
"""
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pdfplumber
import structlog
from PIL import Image

from docintel.config import get_settings
from docintel.exceptions import OCRError
from docintel.pipeline.collaborators import OCRProvider
from docintel.pipeline.models import BoundingBox, OCRLine, OCRResult, OCRWord

logger = structlog.get_logger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp"}


def _word_box(x0: float, top: float, x1: float, bottom: float) -> BoundingBox:
    return BoundingBox(x=x0, y=top, width=x1 - x0, height=bottom - top)


def group_lines(words: Sequence[OCRWord], tolerance: float = 3.0) -> List[OCRLine]:
    """Group words into lines by vertical position, left to right within a line."""
    rows: List[List[OCRWord]] = []
    for word in sorted(words, key=lambda w: (w.bounding_box.y, w.bounding_box.x)):
        if rows and abs(rows[-1][0].bounding_box.y - word.bounding_box.y) <= tolerance:
            rows[-1].append(word)
        else:
            rows.append([word])

    lines = []
    for row in rows:
        row.sort(key=lambda w: w.bounding_box.x)
        lines.append(OCRLine(
            text=" ".join(w.text for w in row),
            confidence=sum(w.confidence for w in row) / len(row),
            bounding_box=BoundingBox.union(w.bounding_box for w in row),
            words=tuple(row),
        ))
    return lines


class PDFOCRProvider(OCRProvider):
    """
    pdfplumber + Tesseract OCR provider.

    Native text is reported with confidence 1.0; Tesseract confidences are
    divided by 100.
    """

    SCANNED_TEXT_THRESHOLD = 50
    OCR_RESOLUTION = 300

    def __init__(self, language: Optional[str] = None):
        """Initialize OCR provider."""
        settings = get_settings()
        self.language = language or settings.default_language
        self._tesseract_available = self._check_tesseract(settings.tesseract_cmd)

    def _check_tesseract(self, tesseract_cmd: Optional[str]) -> bool:
        """Check if Tesseract OCR is available."""
        try:
            import pytesseract

            if tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

            pytesseract.get_tesseract_version()
            return True
        except Exception as e:
            logger.warning("Tesseract OCR not available", error=str(e))
            return False

    def recognize(self, file_path: str, document_id: str = "") -> List[OCRResult]:
        """
        Run OCR over a PDF or image file.

        Raises:
            OCRError: when the file is missing or cannot be read.
        """
        path = Path(file_path)
        if not path.exists():
            raise OCRError(f"File not found: {file_path}", details={"path": file_path})

        logger.info("Extracting text", path=str(path), document_id=document_id)
        try:
            if path.suffix.lower() in IMAGE_SUFFIXES:
                with Image.open(path) as image:
                    return [self._ocr_image(image, 1, document_id)]
            return self._recognize_pdf(path, document_id)
        except OCRError:
            raise
        except Exception as e:
            logger.error("Failed to extract text", path=str(path), error=str(e))
            raise OCRError(f"Cannot read {path.name}: {e}", details={"path": file_path}) from e

    def _recognize_pdf(self, path: Path, document_id: str) -> List[OCRResult]:
        pages: List[OCRResult] = []
        with pdfplumber.open(path) as pdf:
            for page_num, page in enumerate(pdf.pages, start=1):
                result = self._extract_page(page, page_num, document_id)

                # Very little native text: treat as scanned
                if len(result.text.strip()) < self.SCANNED_TEXT_THRESHOLD and self._tesseract_available:
                    logger.info("Page appears scanned, using OCR", page=page_num)
                    image = page.to_image(resolution=self.OCR_RESOLUTION).original
                    result = self._ocr_image(image, page_num, document_id)

                pages.append(result)
        return pages

    def _extract_page(self, page: Any, page_num: int, document_id: str) -> OCRResult:
        start_time = time.perf_counter()
        words = [
            OCRWord(
                text=w["text"],
                confidence=1.0,
                bounding_box=_word_box(float(w["x0"]), float(w["top"]), float(w["x1"]), float(w["bottom"])),
            )
            for w in page.extract_words(keep_blank_chars=False, x_tolerance=3, y_tolerance=3)
        ]
        lines = group_lines(words)
        text = page.extract_text() or "\n".join(line.text for line in lines)
        return OCRResult(
            page_number=page_num,
            text=text,
            confidence=1.0 if words else 0.0,
            words=tuple(words),
            lines=tuple(lines),
            id=f"{document_id}-p{page_num}" if document_id else "",
            document_id=document_id,
            language=self.language,
            processing_time=round((time.perf_counter() - start_time) * 1000, 2),
            ocr_engine="pdfplumber",
        )

    def _ocr_image(self, image: Image.Image, page_num: int, document_id: str) -> OCRResult:
        import pytesseract

        start_time = time.perf_counter()
        data: Dict[str, List[Any]] = pytesseract.image_to_data(image, output_type=pytesseract.Output.DICT)

        words = []
        for i, text in enumerate(data["text"]):
            if not text.strip():
                continue
            confidence = float(data["conf"][i]) / 100.0
            if confidence <= 0:
                continue
            left, top = float(data["left"][i]), float(data["top"][i])
            words.append(OCRWord(
                text=text,
                confidence=confidence,
                bounding_box=BoundingBox(x=left, y=top, width=float(data["width"][i]), height=float(data["height"][i])),
            ))

        lines = group_lines(words, tolerance=10.0)
        return OCRResult(
            page_number=page_num,
            text="\n".join(line.text for line in lines),
            confidence=sum(w.confidence for w in words) / len(words) if words else 0.0,
            words=tuple(words),
            lines=tuple(lines),
            id=f"{document_id}-p{page_num}" if document_id else "",
            document_id=document_id,
            language=self.language,
            processing_time=round((time.perf_counter() - start_time) * 1000, 2),
            ocr_engine="tesseract",
        )


_ocr_provider_instance: Optional[PDFOCRProvider] = None


def get_ocr_provider() -> PDFOCRProvider:
    """Get singleton PDFOCRProvider instance."""
    global _ocr_provider_instance
    if _ocr_provider_instance is None:
        _ocr_provider_instance = PDFOCRProvider()
    return _ocr_provider_instance
