"""
Tests for template scoring and recognition.
"""
from typing import Sequence

import pytest

from docintel.pipeline.collaborators import Registry, TemplateClassifier
from docintel.pipeline.keywords import KeywordExtractor
from docintel.pipeline.models import (
    ClassifierOutput,
    DocumentStructure,
    DocumentTemplate,
    DocumentType,
    LayoutFeature,
    LayoutFeatureType,
    BoundingBox,
    PatternType,
    TemplatePattern,
)
from docintel.pipeline.recognition import TemplateMatcher, TemplateRecognizer, extract_ml_features
from docintel.services.reference_data import get_reference_data
from ocr_builders import text_page


class FixedClassifier(TemplateClassifier):
    def __init__(self, output: ClassifierOutput):
        self.output = output
        self.calls = 0

    def classify(self, features: Sequence[float]) -> ClassifierOutput:
        self.calls += 1
        return self.output


class BrokenClassifier(TemplateClassifier):
    def classify(self, features: Sequence[float]) -> ClassifierOutput:
        raise RuntimeError("model server down")


def layout_template(template_id: str, document_type: DocumentType = DocumentType.TRADE_CONFIRMATION):
    return DocumentTemplate(
        id=template_id,
        name=template_id,
        document_type=document_type,
        template_patterns=(TemplatePattern(PatternType.LAYOUT, "HAS_TABLE", weight=0.5),),
    )


@pytest.fixture
def templates():
    return get_reference_data().templates


class TestRecognizeTradeConfirmation:
    """Tests for recognizing a trade confirmation page."""

    def test_trade_confirmation_wins(self, tc_page, templates):
        """Test the trade confirmation template scores highest."""
        result = TemplateRecognizer().recognize("doc-1", [tc_page], templates)

        assert result.recognized_template.id == "trade_confirmation_v1"
        assert result.structure.tables
        assert "layout:HAS_TABLE" in result.best_score.matching_features
        assert result.scores[0].total_score > result.scores[1].total_score

    def test_scores(self, tc_page, templates):
        """Test layout, keyword and combined scores for the trade confirmation."""
        result = TemplateRecognizer().recognize("doc-1", [tc_page], templates)
        best = result.best_score

        assert best.layout_score == pytest.approx(1.0)
        assert best.keyword_score == pytest.approx(0.6)
        assert best.content_score == 0.0
        assert result.confidence == pytest.approx(0.54)
        assert result.matching_patterns == ["Layout Match", "Keyword Match"]

    def test_alternatives_and_classification_scores(self, tc_page, templates):
        """Test runner-up templates and per-type scores are reported."""
        result = TemplateRecognizer().recognize("doc-1", [tc_page], templates)

        assert [a.template_id for a in result.alternatives] == ["account_statement_v1"]
        assert {c.document_type for c in result.classification_scores} == {
            DocumentType.TRADE_CONFIRMATION,
            DocumentType.STATEMENT,
        }

    def test_unmet_required_pattern_penalized(self, tc_page, templates):
        """Test the statement template reports its missing required keyword."""
        result = TemplateRecognizer().recognize("doc-1", [tc_page], templates)
        statement = next(s for s in result.scores if s.template_id == "account_statement_v1")

        assert statement.penalty_score == 1.0
        assert statement.total_score == 0.0


class TestEmptyInput:
    """Tests for recognition without OCR content."""

    def test_empty_ocr(self, templates):
        """Test empty OCR gives an empty structure and zero confidence."""
        result = TemplateRecognizer().recognize("doc-2", [], templates)

        assert result.structure.is_empty()
        assert result.confidence == 0.0
        assert result.recognized_template is templates[0]

    def test_no_templates(self, tc_page):
        """Test no candidate templates gives no recognized template."""
        result = TemplateRecognizer().recognize("doc-3", [tc_page], [])

        assert result.recognized_template is None
        assert result.confidence == 0.0
        assert result.scores == []


class TestCandidateFiltering:
    """Tests for template filtering before scoring."""

    def test_inactive_templates_skipped(self, tc_page):
        """Test inactive templates are never scored."""
        active = layout_template("active")
        inactive = DocumentTemplate(id="inactive", name="x", document_type=DocumentType.OTHER, is_active=False)

        result = TemplateRecognizer().recognize("d", [tc_page], [inactive, active])

        assert [s.template_id for s in result.scores] == ["active"]

    def test_language_filter(self, tc_page):
        """Test only templates in the requested language are scored."""
        english = layout_template("en_template")
        german = DocumentTemplate(id="de_template", name="x", document_type=DocumentType.OTHER, language="de")

        result = TemplateRecognizer().recognize("d", [tc_page], [english, german], language="de")

        assert [s.template_id for s in result.scores] == ["de_template"]


class TestCombine:
    """Tests for combining sub-scores."""

    def test_weights(self):
        """Test the weighted sum of layout, keyword and ML signals."""
        assert TemplateMatcher().combine(1.0, 0.5, 0.0) == pytest.approx(0.5)

    def test_clamped_after_boost(self):
        """Test the boosted total never exceeds 1."""
        assert TemplateMatcher().combine(1.0, 1.0, 1.0, boosted=True) == 1.0

    def test_never_negative(self):
        """Test the total never drops below 0."""
        assert TemplateMatcher().combine(-1.0, 0.0, 0.0) == 0.0

    def test_expected_type_boost(self, tc_page, templates):
        """Test the expected document type raises that template's score."""
        plain = TemplateRecognizer().recognize("d", [tc_page], templates)
        boosted = TemplateRecognizer().recognize(
            "d", [tc_page], templates, expected_document_type=DocumentType.TRADE_CONFIRMATION,
        )

        assert boosted.best_score.boosted is True
        assert boosted.confidence == pytest.approx(plain.confidence * 1.2)

    def test_score_monotonic_in_layout_evidence(self):
        """Test adding a matching layout feature never lowers the score."""
        matcher = TemplateMatcher()
        template = DocumentTemplate(
            id="t",
            name="t",
            document_type=DocumentType.TRADE_CONFIRMATION,
            template_patterns=(
                TemplatePattern(PatternType.LAYOUT, "HAS_TABLE", weight=0.5),
                TemplatePattern(PatternType.LAYOUT, "HAS_SIGNATURE", weight=0.5),
            ),
        )
        structure = DocumentStructure(tables=[
            LayoutFeature(LayoutFeatureType.TABLE, BoundingBox(), 0.8),
        ])
        richer = DocumentStructure(
            tables=list(structure.tables),
            signatures=[LayoutFeature(LayoutFeatureType.SIGNATURE, BoundingBox(), 0.7)],
        )

        before = matcher.score(structure, [], [template])[0].total_score
        after = matcher.score(richer, [], [template])[0].total_score

        assert after >= before
        assert after == pytest.approx(0.3)


class TestRanking:
    """Tests for ranking ties."""

    def test_ties_keep_template_order(self, tc_page):
        """Test equal totals keep the order templates were supplied in."""
        templates = [layout_template("zeta"), layout_template("alpha"), layout_template("mid")]

        result = TemplateRecognizer().recognize("d", [tc_page], templates)

        assert [s.template_id for s in result.scores] == ["zeta", "alpha", "mid"]
        assert result.recognized_template.id == "zeta"


class TestLayoutPatterns:
    """Tests for HAS_/NO_ layout patterns."""

    def test_has_and_no(self):
        """Test presence and absence checks."""
        structure = DocumentStructure(tables=[LayoutFeature(LayoutFeatureType.TABLE, BoundingBox(), 0.8)])

        assert TemplateMatcher.layout_pattern_matches("HAS_TABLE", structure)
        assert not TemplateMatcher.layout_pattern_matches("NO_TABLE", structure)
        assert TemplateMatcher.layout_pattern_matches("NO_SIGNATURE", structure)
        assert TemplateMatcher.layout_pattern_matches("has_form", DocumentStructure()) is False

    def test_unknown_pattern(self):
        """Test unknown layout patterns never match."""
        assert TemplateMatcher.layout_pattern_matches("HAS_WATERMARK", DocumentStructure()) is False
        assert TemplateMatcher.layout_pattern_matches("TABLE", DocumentStructure()) is False


class TestKeywordPatterns:
    """Tests for KEYWORD pattern counting."""

    def test_other_keywords_on_the_line_do_not_count(self):
        """Test only matches of the phrase's own words are credited to it."""
        page = text_page("Trade confirmation account balance portfolio price")
        matches = KeywordExtractor().extract([page])
        template = DocumentTemplate(
            id="t",
            name="t",
            document_type=DocumentType.TRADE_CONFIRMATION,
            template_patterns=(TemplatePattern(PatternType.KEYWORD, "trade confirmation", weight=1.0),),
        )

        score = TemplateMatcher().score(DocumentStructure(), matches, [template])[0]

        assert sorted(m.keyword for m in matches) == [
            "account", "balance", "confirmation", "portfolio", "price", "trade",
        ]
        assert TemplateMatcher.keyword_pattern_count("trade confirmation", matches) == 2
        assert score.keyword_score == pytest.approx(2 / 6)

    def test_unrelated_phrase_gets_no_credit(self):
        """Test a phrase whose words never matched scores nothing on a mixed line."""
        matches = KeywordExtractor().extract([text_page("Trade confirmation for your portfolio")])

        assert TemplateMatcher.keyword_pattern_count("account statement", matches) == 0


class TestMLSignal:
    """Tests for the template classifier signal."""

    def test_no_classifier_means_zero(self, tc_page, templates):
        """Test the ML signal is 0 when no classifier is registered."""
        result = TemplateRecognizer().recognize("d", [tc_page], templates)

        assert all(s.content_score == 0.0 for s in result.scores)

    def test_registered_classifier(self, tc_page, templates):
        """Test a registered classifier contributes its type confidence."""
        classifier = FixedClassifier(ClassifierOutput(DocumentType.TRADE_CONFIRMATION, 0.9))
        matcher = TemplateMatcher(Registry("template classifier", {"document_classifier": classifier}))

        result = TemplateRecognizer(matcher=matcher).recognize("d", [tc_page], templates)

        assert result.best_score.content_score == pytest.approx(0.9)
        assert result.confidence == pytest.approx(0.81)
        assert "ML Classification" in result.matching_patterns
        assert classifier.calls == 1

    def test_failing_classifier_ignored(self, tc_page, templates):
        """Test a failing classifier leaves the ML signal at 0."""
        matcher = TemplateMatcher(Registry("template classifier", {"document_classifier": BrokenClassifier()}))

        result = TemplateRecognizer(matcher=matcher).recognize("d", [tc_page], templates)

        assert result.recognized_template.id == "trade_confirmation_v1"
        assert result.best_score.content_score == 0.0

    def test_feature_vector_size(self, tc_page):
        """Test the feature vector is padded to a fixed size."""
        features = extract_ml_features([tc_page])

        assert len(features) == 100
        assert features[2] == float(len(tc_page.lines))
        assert features[5:] == [0.0] * 95
