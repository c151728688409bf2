"""
Pydantic models for the structured scene-extraction response.

The extraction model answers in camelCase JSON; every field is optional
so partial answers can be backfilled from the previous scene.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Position = Literal["left", "center", "right", "far-left", "far-right"]
Expression = Literal[
    "neutral",
    "happy",
    "sad",
    "angry",
    "surprised",
    "worried",
    "determined",
    "mysterious",
    "scared",
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AmbianceSchema(_CamelModel):
    lighting: str = "dim"
    weather: str = "clear"
    mood: str = "tense"
    sounds: list[str] = Field(default_factory=list)


class CharacterSchema(_CamelModel):
    name: str = Field(..., min_length=1, description="Character name as written in the narrative")
    position: Position = "center"
    expression: Expression = "neutral"
    speaking: bool = False
    description: Optional[str] = Field(None, description="Visual description, if any")


class ChoiceSchema(_CamelModel):
    text: str
    spell_involved: Optional[str] = Field(None, alias="spellInvolved")
    direction: Optional[str] = None
    consequence: Optional[str] = None


class StateChangesSchema(_CamelModel):
    health_change: int = Field(0, alias="healthChange")
    items_added: list[str] = Field(default_factory=list, alias="itemsAdded")
    items_removed: list[str] = Field(default_factory=list, alias="itemsRemoved")
    spells_learned: list[str] = Field(default_factory=list, alias="spellsLearned")
    new_location: Optional[str] = Field(None, alias="newLocation")
    time_advance: Optional[str] = Field(None, alias="timeAdvance")


class TrialProgressSchema(_CamelModel):
    current_trial: Optional[int] = Field(None, alias="currentTrial", ge=1, le=5)
    trial_name: Optional[str] = Field(None, alias="trialName")
    phase: Optional[str] = None


class ExtractedSceneSchema(_CamelModel):
    """Everything the extraction model may report about one scene."""

    location: Optional[str] = None
    time: Optional[str] = None
    ambiance: Optional[AmbianceSchema] = None
    characters: list[CharacterSchema] = Field(default_factory=list)
    choices: list[ChoiceSchema] = Field(default_factory=list)
    state_changes: Optional[StateChangesSchema] = Field(None, alias="stateChanges")
    narrator_mood: Optional[str] = Field(None, alias="narratorMood")
    trial_progress: Optional[TrialProgressSchema] = Field(None, alias="trialProgress")
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
