from __future__ import annotations


class AssetEngineError(Exception):
    pass


class FatalGenerationError(AssetEngineError):
    """No narrative text could be produced; the turn cannot continue."""


class ExtractionError(AssetEngineError):
    pass


class AssetResolutionError(AssetEngineError):
    pass


class AudioSynthesisError(AssetEngineError):
    pass
