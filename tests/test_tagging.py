"""
Tests for automatic tag generation.
"""
from datetime import date, datetime

import pytest

from docintel.pipeline.models import DocumentRecord, DocumentType, ExtractedField, FieldType
from docintel.pipeline.tagging import TagGenerator, tag_name

NOW = datetime(2026, 6, 1, 12, 0)


@pytest.fixture
def generator() -> TagGenerator:
    return TagGenerator(financial_keywords=["trade", "bond"])


def field(name, value, confidence=0.9, field_type=FieldType.STRING):
    return ExtractedField(field_name=name, value=value, confidence=confidence, source="REGEX", field_type=field_type)


def names(tags):
    return [t.name for t in tags]


class TestTagName:
    def test_slug(self):
        """Test names are lowercased and hyphenated."""
        assert tag_name("TRADE_CONFIRMATION") == "trade-confirmation"
        assert tag_name("  Net Amount ") == "net-amount"


class TestTagGenerator:
    """Tests for TagGenerator."""

    def test_keyword_relevance_is_occurrence_count(self, generator):
        """Test keyword tags count occurrences in title and description."""
        document = DocumentRecord(
            id="d", tenant_id="t", file_name="f.pdf",
            title="Trade ticket", description="Second trade, no bond",
            uploaded_at=NOW,
        )

        tags = {t.name: t for t in generator.keyword_tags(document)}

        assert tags["trade"].relevance == 2.0
        assert tags["bond"].relevance == 1.0
        assert tags["trade"].category == "CONTENT"

    def test_type_tag(self, generator, trade_document):
        """Test the document type becomes a tag."""
        tags, _ = generator.generate(trade_document, now=NOW)

        assert "trade-confirmation" in names(tags)

    def test_explicit_type_overrides_document_type(self, generator, trade_document):
        """Test an explicitly resolved type is tagged instead of the stored one."""
        tags, _ = generator.generate(trade_document, document_type=DocumentType.STATEMENT, now=NOW)

        assert "statement" in names(tags)
        assert "trade-confirmation" not in names(tags)

    def test_data_tags(self, generator, trade_document):
        """Test high-value amounts and current-year dates add tags."""
        fields = [
            field("amount", 150000.0, field_type=FieldType.CURRENCY),
            field("trade_date", date(2026, 3, 15), field_type=FieldType.DATE),
        ]

        tags, _ = generator.generate(trade_document, fields, now=NOW)

        assert {"amount", "trade-date", "high-value", "current-year"} <= set(names(tags))

    def test_small_amount_not_high_value(self, generator, trade_document):
        """Test amounts at or below the threshold are not high-value."""
        tags, _ = generator.generate(trade_document, [field("amount", 100000.0)], now=NOW)

        assert "high-value" not in names(tags)

    def test_metadata_tags(self, generator, trade_document):
        """Test portfolio, language and upload month tags."""
        tags, _ = generator.generate(trade_document, now=NOW)

        assert {"portfolio-P1", "lang-en", "uploaded-2026-03"} <= set(names(tags))
        assert not any(n.startswith("client-") for n in names(tags))

    def test_deduplicated_by_confidence(self, trade_document):
        """Test a tag produced twice keeps its most confident version."""
        generator = TagGenerator(financial_keywords=["amount"])
        trade_document.title = "Amount due"

        tags, _ = generator.generate(trade_document, [field("amount", 5.0, confidence=0.95)], now=NOW)

        amount_tags = [t for t in tags if t.name == "amount"]
        assert len(amount_tags) == 1
        assert amount_tags[0].confidence == 0.95

    def test_sorted_and_capped(self, trade_document):
        """Test tags are ordered by relevance and capped."""
        generator = TagGenerator(financial_keywords=[])
        fields = [field(f"field_{i}", "x", confidence=i / 40) for i in range(1, 31)]

        tags, confidence = generator.generate(trade_document, fields, now=NOW)

        assert len(tags) == TagGenerator.MAX_TAGS
        relevances = [t.relevance for t in tags]
        assert relevances == sorted(relevances, reverse=True)
        assert confidence == pytest.approx(sum(t.confidence for t in tags) / len(tags))
