"""pii-masker — incremental PII mask detection for streamed LLM responses."""

from .config import create_extractor, create_masker, create_reconciler, load_config, load_from_yaml
from .errors import ExtractionUnavailable, MaskerError, StreamAborted, StreamClosed
from .extractor import Extractor, OpenAIExtractor
from .masker import Masker, MaskerConfig
from .merge import merge
from .patterns import detect, detect_with_names
from .presidio_layer import PresidioExtractor
from .reconciler import Reconciler, State, reconcile_stream, replace_final, union_final
from .resolver import resolve
from .types import Category, Detection, Range, Snapshot

__all__ = [
    "Masker", "MaskerConfig",
    "Reconciler", "State", "reconcile_stream", "replace_final", "union_final",
    "Extractor", "OpenAIExtractor", "PresidioExtractor",
    "detect", "detect_with_names", "resolve", "merge",
    "create_extractor", "create_masker", "create_reconciler", "load_config", "load_from_yaml",
    "Category", "Detection", "Range", "Snapshot",
    "MaskerError", "ExtractionUnavailable", "StreamAborted", "StreamClosed",
]
__version__ = "0.1.0"
