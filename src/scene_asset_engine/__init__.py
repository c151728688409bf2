from .core.catalog import AssetCatalogCache
from .core.config import AssetPipelineConfig
from .core.dispatch import GenerationDispatcher
from .core.errors import FatalGenerationError
from .core.extraction import SceneExtractor
from .core.pipeline import CoordinatedPipeline
from .core.resolver import AssetResolver
from .core.audio import NarrationSynthesizer
from .core.types import CoordinatedResponse, PipelineContext, ResolvedScene, ScenePayload

__all__ = [
    "AssetCatalogCache",
    "AssetResolver",
    "SceneExtractor",
    "GenerationDispatcher",
    "NarrationSynthesizer",
    "CoordinatedPipeline",
    "AssetPipelineConfig",
    "FatalGenerationError",
    "PipelineContext",
    "CoordinatedResponse",
    "ResolvedScene",
    "ScenePayload",
]
