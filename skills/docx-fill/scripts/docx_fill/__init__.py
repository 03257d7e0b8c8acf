"""Fill placeholders in docx templates without disturbing the surrounding XML."""

from .common import (
    DOCUMENT_XML,
    NO_VALUE,
    SYNTAX_EXPRESSION,
    SYNTAX_SIMPLE,
    Span,
    TagPair,
)
from .document import (
    DocxDocument,
    complete_replace_all,
    complete_replace_all_from_bytes,
    complete_replace_all_to_bytes,
    complete_template,
    complete_template_from_bytes,
    complete_template_to_bytes,
    generate_output_path,
)
from .errors import (
    ArchiveError,
    DocumentIOError,
    DocxFillError,
    PartParseError,
    UnregisteredPartError,
)
from .evaluator import Evaluator, JinjaEvaluator, MapEvaluator, Resolution
from .observer import NullObserver, Observer, PrintObserver
from .placeholders import (
    Fragment,
    Placeholder,
    parse_placeholders,
    parse_simple_placeholders,
    parse_template_placeholders,
)
from .replacer import ReplacementEngine, ReplacementResult
from .run_parser import Run, RunParser

__all__ = [
    'DOCUMENT_XML',
    'NO_VALUE',
    'SYNTAX_EXPRESSION',
    'SYNTAX_SIMPLE',
    'Span',
    'TagPair',
    'DocxDocument',
    'complete_replace_all',
    'complete_replace_all_from_bytes',
    'complete_replace_all_to_bytes',
    'complete_template',
    'complete_template_from_bytes',
    'complete_template_to_bytes',
    'generate_output_path',
    'ArchiveError',
    'DocumentIOError',
    'DocxFillError',
    'PartParseError',
    'UnregisteredPartError',
    'Evaluator',
    'JinjaEvaluator',
    'MapEvaluator',
    'Resolution',
    'NullObserver',
    'Observer',
    'PrintObserver',
    'Fragment',
    'Placeholder',
    'parse_placeholders',
    'parse_simple_placeholders',
    'parse_template_placeholders',
    'ReplacementEngine',
    'ReplacementResult',
    'Run',
    'RunParser',
]

__version__ = '0.1.0'
