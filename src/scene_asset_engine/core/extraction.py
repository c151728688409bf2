from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from .config import AssetPipelineConfig
from .errors import ExtractionError
from .normalize import dump_json
from .ports import TextCompletionPort
from .schema import ExtractedSceneSchema
from .types import (
    Ambiance,
    Choice,
    PreviousSceneContext,
    SceneCharacter,
    ScenePayload,
    StateChanges,
    TrialProgress,
)

LOCATION_INFERRED_WARNING = "location inferred from previous scene"
LOCATION_DEFAULTED_WARNING = "location defaulted"
CHARACTERS_INFERRED_WARNING = "characters inferred from previous scene"
FALLBACK_WARNING = "used fallback regex extraction"

_EXPRESSIONS = {
    "neutral",
    "happy",
    "sad",
    "angry",
    "surprised",
    "worried",
    "determined",
    "mysterious",
    "scared",
}

EXTRACTION_SYSTEM_PROMPT = (
    "You are a scene data extractor. Return ONLY valid JSON, "
    "no markdown, no explanation, no code blocks."
)

EXTRACTION_PROMPT = """Analyze the following narrative text and extract structured scene data.

Extract:
1. location - The current scene location
2. time - In-game time if mentioned
3. ambiance - lighting, weather, mood, sounds
4. characters - All characters present with their position (left/center/right/far-left/far-right), expression (neutral/happy/sad/angry/surprised/worried/determined/mysterious/scared), and if speaking
5. choices - The player choices with any spells involved
6. stateChanges - health changes, items added/removed, spells learned, location changes
7. narratorMood - overall tone (ominous, tense, hopeful, dark, mysterious)
8. trialProgress - if trial progress is mentioned (trial number 1-5, phase)

For characters not explicitly positioned, infer based on narrative cues.
For missing data, use reasonable defaults based on context.

PREVIOUS SCENE STATE:
<<PREVIOUS_STATE>>

NARRATIVE TEXT TO ANALYZE:
<<NARRATIVE>>

Return JSON matching this structure:
{
  "location": "string",
  "time": "string or null",
  "ambiance": { "lighting": "string", "weather": "string", "mood": "string", "sounds": ["string"] },
  "characters": [{ "name": "string", "position": "string", "expression": "string", "speaking": boolean, "description": "string or null" }],
  "choices": [{ "text": "string", "spellInvolved": "string or null" }],
  "stateChanges": { "healthChange": number, "itemsAdded": [], "itemsRemoved": [], "spellsLearned": [], "newLocation": "string or null" },
  "narratorMood": "string",
  "trialProgress": { "currentTrial": number or null, "trialName": "string or null", "phase": "string or null" },
  "confidence": 0.0-1.0
}"""

_THINK_END = "</think>"
_FENCE_RE = re.compile(r"```\w*")

_LOCATION_TAG_RE = re.compile(r"\[LOCATION:\s*([^\]]+)\]", re.IGNORECASE)
_CHOICE_LINE_RE = re.compile(r"^\s*\d+\.\s*(.+)$", re.MULTILINE)
_HEALTH_TAG_RE = re.compile(r"\[HEALTH:\s*([+-]?\d+)\]", re.IGNORECASE)
_ITEM_ADD_TAG_RE = re.compile(r"\[ITEM_ADD:\s*([^\]]+)\]", re.IGNORECASE)
_ITEM_REMOVE_TAG_RE = re.compile(r"\[ITEM_REMOVE:\s*([^\]]+)\]", re.IGNORECASE)
_SPELL_LEARN_TAG_RE = re.compile(r"\[SPELL_LEARN:\s*([^\]]+)\]", re.IGNORECASE)
_CHARACTER_TAG_RE = re.compile(r"\[CHARACTER:\s*([^|\]]+)\|([^\]]+)\]", re.IGNORECASE)

_DIRECTIVE_RES = (
    re.compile(r"\[HEALTH:\s*[+-]?\d+\]", re.IGNORECASE),
    re.compile(r"\[ITEM_ADD:\s*[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[ITEM_REMOVE:\s*[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[SPELL_LEARN:\s*[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[LOCATION:\s*[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[CHARACTER:\s*[^|\]]+\|[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[NPC_POSITION:\s*[^|\]]+\|[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[MOOD:\s*[^|\]]+\|[^\]]+\]", re.IGNORECASE),
)
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def clean_narrative_text(text: str) -> str:
    """Remove bracketed machine directives so the text can be shown or spoken."""
    for pattern in _DIRECTIVE_RES:
        text = pattern.sub("", text)
    return _EXCESS_NEWLINES_RE.sub("\n\n", text).strip()


def strip_response_wrappers(content: str) -> str:
    text = (content or "").strip()
    if _THINK_END in text:
        text = text[text.rfind(_THINK_END) + len(_THINK_END):].strip()
    if "```" in text:
        text = _FENCE_RE.sub("", text).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return text
    return text[start : end + 1]


def parse_extraction_response(content: str) -> ExtractedSceneSchema:
    text = strip_response_wrappers(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"extraction response is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("extraction response is not a JSON object")
    try:
        return ExtractedSceneSchema.model_validate(data)
    except ValidationError as exc:
        raise ExtractionError(f"extraction response failed validation ({exc.error_count()} errors)") from exc


def previous_context_json(previous: PreviousSceneContext) -> str:
    payload: dict[str, Any] = {}
    if previous.location:
        payload["location"] = previous.location
    if previous.time:
        payload["time"] = previous.time
    if previous.characters:
        payload["characters"] = previous.characters
    if previous.npc_descriptions:
        payload["npcDescriptions"] = previous.npc_descriptions
    if previous.trial_progress:
        payload["trialProgress"] = previous.trial_progress
    return dump_json(payload)


class SceneExtractor:
    """Turns generated narrative into a ScenePayload.

    ``extract_structured`` asks the completion model for JSON and raises
    ``ExtractionError`` when the answer is unusable. ``fallback_extraction``
    is the deterministic tag-based path and never calls out.
    """

    def __init__(
        self,
        completion: TextCompletionPort,
        *,
        config: AssetPipelineConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self._completion = completion
        self._config = config or AssetPipelineConfig()
        self._logger = logger or logging.getLogger(__name__)

    async def extract_structured(
        self,
        narrative_text: str,
        previous: PreviousSceneContext | None = None,
    ) -> ScenePayload:
        previous = previous or PreviousSceneContext()
        prompt = (
            EXTRACTION_PROMPT
            .replace("<<PREVIOUS_STATE>>", previous_context_json(previous))
            .replace("<<NARRATIVE>>", narrative_text)
        )
        self._logger.info("EXTRACT starting narrative_chars=%s", len(narrative_text))
        try:
            content = await self._completion.complete(
                EXTRACTION_SYSTEM_PROMPT,
                prompt,
                temperature=self._config.extraction_temperature,
                max_tokens=self._config.extraction_max_tokens,
            )
        except Exception as exc:
            raise ExtractionError(f"extraction request failed: {exc}") from exc
        if not content or not content.strip():
            raise ExtractionError("extraction response was empty")

        extracted = parse_extraction_response(content)
        scene = self._merge_with_defaults(extracted, previous, narrative_text)
        self._logger.info(
            "EXTRACT done location=%r characters=%s confidence=%.2f",
            scene.location,
            len(scene.characters),
            scene.confidence,
        )
        return scene

    def fallback_extraction(
        self,
        narrative_text: str,
        previous: PreviousSceneContext | None = None,
    ) -> ScenePayload:
        previous = previous or PreviousSceneContext()
        warnings = [FALLBACK_WARNING]

        location_match = _LOCATION_TAG_RE.search(narrative_text)
        location = location_match.group(1).strip() if location_match else ""
        if not location:
            location = (previous.location or "").strip()
        if not location:
            location = self._config.default_location
            warnings.append(LOCATION_DEFAULTED_WARNING)

        health_match = _HEALTH_TAG_RE.search(narrative_text)
        characters: list[SceneCharacter] = []
        seen: set[str] = set()
        for match in _CHARACTER_TAG_RE.finditer(narrative_text):
            name = match.group(1).strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            expression = match.group(2).strip().lower()
            characters.append(
                SceneCharacter(
                    name=name,
                    expression=expression if expression in _EXPRESSIONS else "neutral",
                    confidence=0.3,
                )
            )

        self._logger.info("EXTRACT fallback location=%r characters=%s", location, len(characters))
        return ScenePayload(
            location=location,
            narrative_text=narrative_text,
            cleaned_text=clean_narrative_text(narrative_text),
            time=previous.time,
            characters=characters,
            choices=[Choice(text=m.group(1).strip()) for m in _CHOICE_LINE_RE.finditer(narrative_text)],
            state_changes=StateChanges(
                health_change=int(health_match.group(1)) if health_match else 0,
                items_added=[m.group(1).strip() for m in _ITEM_ADD_TAG_RE.finditer(narrative_text)],
                items_removed=[m.group(1).strip() for m in _ITEM_REMOVE_TAG_RE.finditer(narrative_text)],
                spells_learned=[m.group(1).strip() for m in _SPELL_LEARN_TAG_RE.finditer(narrative_text)],
            ),
            confidence=0.2,
            extraction_warnings=warnings,
        )

    def _merge_with_defaults(
        self,
        extracted: ExtractedSceneSchema,
        previous: PreviousSceneContext,
        narrative_text: str,
    ) -> ScenePayload:
        warnings: list[str] = []

        location = (extracted.location or "").strip()
        if not location and previous.location:
            location = previous.location
            warnings.append(LOCATION_INFERRED_WARNING)
        if not location:
            location = self._config.default_location
            warnings.append(LOCATION_DEFAULTED_WARNING)

        if extracted.characters:
            characters = [
                SceneCharacter(
                    name=c.name,
                    position=c.position,
                    expression=c.expression,
                    speaking=c.speaking,
                    description=c.description,
                    confidence=0.5,
                )
                for c in extracted.characters
            ]
        elif previous.characters:
            characters = [
                SceneCharacter(
                    name=str(c.get("name")),
                    position=str(c.get("position") or "center"),
                    expression=str(c.get("expression") or "neutral"),
                    confidence=0.3,
                )
                for c in previous.characters
                if c.get("name")
            ]
            warnings.append(CHARACTERS_INFERRED_WARNING)
        else:
            characters = []

        ambiance = extracted.ambiance
        changes = extracted.state_changes
        trial = extracted.trial_progress
        return ScenePayload(
            location=location,
            narrative_text=narrative_text,
            cleaned_text=clean_narrative_text(narrative_text),
            time=extracted.time or previous.time,
            ambiance=(
                Ambiance(
                    lighting=ambiance.lighting,
                    weather=ambiance.weather,
                    mood=ambiance.mood,
                    sounds=list(ambiance.sounds),
                )
                if ambiance is not None
                else Ambiance()
            ),
            characters=characters,
            choices=[
                Choice(
                    text=c.text,
                    spell_involved=c.spell_involved,
                    direction=c.direction,
                    consequence=c.consequence,
                )
                for c in extracted.choices
            ],
            state_changes=(
                StateChanges(
                    health_change=changes.health_change,
                    items_added=list(changes.items_added),
                    items_removed=list(changes.items_removed),
                    spells_learned=list(changes.spells_learned),
                    new_location=changes.new_location,
                    time_advance=changes.time_advance,
                )
                if changes is not None
                else StateChanges()
            ),
            narrator_mood=extracted.narrator_mood or "ominous",
            trial_progress=(
                TrialProgress(
                    current_trial=trial.current_trial,
                    trial_name=trial.trial_name,
                    phase=trial.phase,
                )
                if trial is not None
                else TrialProgress()
            ),
            confidence=extracted.confidence if extracted.confidence is not None else 0.5,
            extraction_warnings=warnings,
        )
