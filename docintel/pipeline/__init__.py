"""Document intelligence pipeline: recognition, extraction, validation and filing."""
from docintel.pipeline.extraction import FieldExtractor
from docintel.pipeline.filing import FilingRuleEngine
from docintel.pipeline.keywords import KeywordExtractor
from docintel.pipeline.orchestrator import DocumentPipeline, PipelineResult
from docintel.pipeline.recognition import TemplateMatcher, TemplateRecognizer
from docintel.pipeline.structure import StructureAnalyzer
from docintel.pipeline.validation import FieldValidator

__all__ = [
    "StructureAnalyzer",
    "KeywordExtractor",
    "TemplateMatcher",
    "TemplateRecognizer",
    "FieldExtractor",
    "FieldValidator",
    "FilingRuleEngine",
    "DocumentPipeline",
    "PipelineResult",
]
