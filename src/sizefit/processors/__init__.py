"""Media processors."""

from .effects import EffectsProcessor
from .encoder import DurationTrimmer, EncodeExecutor
from .ladder import LadderState, QualityLadderController
from .normalizer import VolumeNormalizer
from .pipeline import MediaNormalizer
from .publisher import CatalogWriter, ManifestCatalog, ResultPublisher
from .validator import OutputValidator, Verdict

__all__ = [
    "CatalogWriter",
    "DurationTrimmer",
    "EffectsProcessor",
    "EncodeExecutor",
    "LadderState",
    "ManifestCatalog",
    "MediaNormalizer",
    "OutputValidator",
    "QualityLadderController",
    "ResultPublisher",
    "Verdict",
    "VolumeNormalizer",
]
