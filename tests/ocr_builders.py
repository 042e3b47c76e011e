"""
Builders for synthetic OCR pages used across the test suite.
"""
from typing import List, Optional, Sequence

from docintel.pipeline.models import BoundingBox, OCRLine, OCRRegion, OCRResult


def make_line(text: str, x: float, y: float, width: float = 100.0, height: float = 12.0,
              confidence: float = 0.95) -> OCRLine:
    return OCRLine(
        text=text,
        confidence=confidence,
        bounding_box=BoundingBox(x=x, y=y, width=width, height=height),
    )


def make_region(text: str, x: float, y: float, width: float = 200.0, height: float = 20.0,
                confidence: float = 0.9) -> OCRRegion:
    return OCRRegion(
        text=text,
        confidence=confidence,
        bounding_box=BoundingBox(x=x, y=y, width=width, height=height),
    )


def make_page(lines: Sequence[OCRLine], page_number: int = 1, regions: Sequence[OCRRegion] = (),
              text: Optional[str] = None, confidence: float = 0.95) -> OCRResult:
    return OCRResult(
        page_number=page_number,
        text=text if text is not None else "\n".join(line.text for line in lines),
        confidence=confidence,
        lines=tuple(lines),
        regions=tuple(regions),
        ocr_engine="test",
    )


def text_page(*texts: str, start_y: float = 300.0, step: float = 40.0) -> OCRResult:
    """One line per text, stacked in the page body (no table, no header zone)."""
    return make_page([make_line(t, 50, start_y + i * step, width=400) for i, t in enumerate(texts)])


def trade_confirmation_page() -> OCRResult:
    """Header, a 4x3 table and a page footer on a 792px page."""
    lines: List[OCRLine] = [make_line("TRADE CONFIRMATION", 50, 10, width=300, height=20)]
    rows = [
        ("Symbol", "Quantity", "Price"),
        ("AAPL", "100", "$150.00"),
        ("MSFT", "50", "$300.00"),
        ("GOOG", "25", "$120.00"),
    ]
    for r, row in enumerate(rows):
        for c, cell in enumerate(row):
            lines.append(make_line(cell, 50 + c * 150, 200 + r * 30))
    lines.append(make_line("Page 1", 300, 780))
    return make_page(lines)
