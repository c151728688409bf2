from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AssetPipelineConfig:
    catalog_ttl_seconds: float = 60.0
    poll_interval_seconds: float = 2.0
    asset_wait_timeout_seconds: float = 30.0
    pipeline_asset_wait_seconds: float = 15.0

    background_match_threshold: float = 0.7
    portrait_match_threshold: float = 0.8
    reuse_confidence_threshold: float = 0.7
    expression_bonus: float = 0.1
    ready_bonus: float = 0.05

    min_narrative_chars: int = 20
    extraction_temperature: float = 0.1
    extraction_max_tokens: int = 2048
    default_location: str = "The Undercroft"

    narration_max_chars: int = 500
    narration_min_paragraph_chars: int = 20
    narration_sample_rate: int = 24_000

    max_parallel_generations: int = 4
    inflight_marker_ttl_seconds: float = 120.0
