from .audio import NarrationSynthesizer, pcm16_to_wav, select_narration_passage
from .catalog import AssetCatalogCache
from .config import AssetPipelineConfig
from .dispatch import GenerationDispatcher
from .errors import (
    AssetEngineError,
    AssetResolutionError,
    AudioSynthesisError,
    ExtractionError,
    FatalGenerationError,
)
from .extraction import SceneExtractor, clean_narrative_text, parse_extraction_response
from .normalize import fuzzy_match, levenshtein_distance, normalize_match_key
from .pipeline import CoordinatedPipeline
from .ports import GenerationTriggerPort, NarrativeStreamPort, SpeechSynthesisPort, TextCompletionPort
from .resolver import AssetResolver
from .types import (
    AssetCatalog,
    BackgroundAsset,
    BackgroundDirective,
    CoordinatedResponse,
    PendingGenerations,
    PipelineContext,
    PortraitAsset,
    PreviousSceneContext,
    ResolvedScene,
    SceneCharacter,
    ScenePayload,
)

__all__ = [
    "AssetCatalogCache",
    "AssetResolver",
    "SceneExtractor",
    "GenerationDispatcher",
    "NarrationSynthesizer",
    "CoordinatedPipeline",
    "AssetPipelineConfig",
    "AssetEngineError",
    "FatalGenerationError",
    "ExtractionError",
    "AssetResolutionError",
    "AudioSynthesisError",
    "NarrativeStreamPort",
    "TextCompletionPort",
    "SpeechSynthesisPort",
    "GenerationTriggerPort",
    "normalize_match_key",
    "levenshtein_distance",
    "fuzzy_match",
    "clean_narrative_text",
    "parse_extraction_response",
    "pcm16_to_wav",
    "select_narration_passage",
    "AssetCatalog",
    "BackgroundAsset",
    "PortraitAsset",
    "BackgroundDirective",
    "SceneCharacter",
    "ScenePayload",
    "ResolvedScene",
    "PendingGenerations",
    "PreviousSceneContext",
    "PipelineContext",
    "CoordinatedResponse",
]
