from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

AssetStatus = Literal["pending", "generating", "ready", "failed"]
AssetAction = Literal["use", "generate", "pending"]

ASSET_STATUSES: tuple[str, ...] = ("pending", "generating", "ready", "failed")


@dataclass(frozen=True)
class BackgroundAsset:
    id: int
    location_name: str
    image_url: Optional[str]
    status: AssetStatus = "pending"

    @property
    def is_ready(self) -> bool:
        return self.status == "ready" and bool(self.image_url)


@dataclass(frozen=True)
class PortraitAsset:
    id: int
    character_name: str
    expression: str
    image_url: Optional[str]
    status: AssetStatus = "pending"
    appearance_signature: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == "ready" and bool(self.image_url)


@dataclass(frozen=True)
class AssetCatalog:
    backgrounds: tuple[BackgroundAsset, ...]
    portraits: tuple[PortraitAsset, ...]
    npc_descriptions: Mapping[str, str]
    captured_at: float

    def with_descriptions(self, extra: Mapping[str, str] | None) -> "AssetCatalog":
        merged = dict(self.npc_descriptions)
        merged.update(extra or {})
        return replace(self, npc_descriptions=MappingProxyType(merged))


@dataclass
class Ambiance:
    lighting: str = "dim"
    weather: str = "clear"
    mood: str = "tense"
    sounds: list[str] = field(default_factory=list)


@dataclass
class Choice:
    text: str
    spell_involved: Optional[str] = None
    direction: Optional[str] = None
    consequence: Optional[str] = None


@dataclass
class StateChanges:
    health_change: int = 0
    items_added: list[str] = field(default_factory=list)
    items_removed: list[str] = field(default_factory=list)
    spells_learned: list[str] = field(default_factory=list)
    new_location: Optional[str] = None
    time_advance: Optional[str] = None


@dataclass
class TrialProgress:
    current_trial: Optional[int] = None
    trial_name: Optional[str] = None
    phase: Optional[str] = None


@dataclass
class SceneCharacter:
    name: str
    position: str = "center"
    expression: str = "neutral"
    speaking: bool = False
    description: Optional[str] = None
    action: AssetAction = "pending"
    matched_asset_id: Optional[int] = None
    confidence: float = 0.0


@dataclass
class BackgroundDirective:
    action: AssetAction = "pending"
    asset_id: Optional[int] = None
    location_name: Optional[str] = None
    reason: Optional[str] = None
    confidence: float = 0.0


@dataclass
class ScenePayload:
    location: str
    narrative_text: str
    cleaned_text: str
    time: Optional[str] = None
    ambiance: Ambiance = field(default_factory=Ambiance)
    characters: list[SceneCharacter] = field(default_factory=list)
    choices: list[Choice] = field(default_factory=list)
    background: BackgroundDirective = field(default_factory=BackgroundDirective)
    state_changes: StateChanges = field(default_factory=StateChanges)
    narrator_mood: str = "ominous"
    trial_progress: TrialProgress = field(default_factory=TrialProgress)
    confidence: float = 0.5
    extraction_warnings: list[str] = field(default_factory=list)


@dataclass
class PendingGenerations:
    background: bool = False
    portraits: list[str] = field(default_factory=list)


@dataclass
class ResolvedScene:
    scene: ScenePayload
    assets_ready: bool
    pending_generations: PendingGenerations = field(default_factory=PendingGenerations)
    warnings: list[str] = field(default_factory=list)


@dataclass
class PreviousSceneContext:
    location: Optional[str] = None
    time: Optional[str] = None
    characters: list[dict[str, Any]] = field(default_factory=list)
    npc_descriptions: dict[str, str] = field(default_factory=dict)
    trial_progress: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineContext:
    conversation_id: int
    game_state: Optional[dict[str, Any]]
    story_arc: Optional[dict[str, Any]]
    chat_messages: list[dict[str, str]]
    npc_descriptions: dict[str, str] = field(default_factory=dict)


@dataclass
class CoordinatedResponse:
    scene: ResolvedScene
    tts_audio_url: Optional[str]
    generation_time_ms: int
    errors: list[str] = field(default_factory=list)
