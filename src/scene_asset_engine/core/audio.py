from __future__ import annotations

import base64
import io
import logging
import re
import wave

from .config import AssetPipelineConfig
from .errors import AudioSynthesisError
from .ports import SpeechSynthesisPort

_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")


def select_narration_passage(text: str, *, max_chars: int = 500, min_paragraph_chars: int = 20) -> str:
    """Pick the closing paragraph of the narrative for read-aloud."""
    paragraphs = [p for p in _PARAGRAPH_BREAK_RE.split(text or "") if len(p.strip()) > min_paragraph_chars]
    passage = paragraphs[-1] if paragraphs else (text or "")[-max_chars:]
    return passage.strip()[:max_chars]


def pcm16_to_wav(pcm: bytes, sample_rate: int = 24_000, channels: int = 1) -> bytes:
    frame_width = 2 * channels
    pcm = pcm[: len(pcm) - (len(pcm) % frame_width)]
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def wav_data_url(wav_bytes: bytes) -> str:
    return "data:audio/wav;base64," + base64.b64encode(wav_bytes).decode("ascii")


class NarrationSynthesizer:
    def __init__(
        self,
        speech: SpeechSynthesisPort,
        *,
        config: AssetPipelineConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self._speech = speech
        self._config = config or AssetPipelineConfig()
        self._logger = logger or logging.getLogger(__name__)

    async def narrate(self, text: str) -> str:
        """Synthesize the closing passage of ``text`` and return a WAV data URL.

        Raises ``AudioSynthesisError`` when there is nothing to read or the
        speech service produced no audio.
        """
        cfg = self._config
        passage = select_narration_passage(
            text,
            max_chars=cfg.narration_max_chars,
            min_paragraph_chars=cfg.narration_min_paragraph_chars,
        )
        if not passage:
            raise AudioSynthesisError("nothing to narrate")

        chunks: list[bytes] = []
        try:
            async for chunk in self._speech.synthesize(passage):
                if chunk:
                    chunks.append(chunk)
        except Exception as exc:
            raise AudioSynthesisError(f"speech synthesis failed: {exc}") from exc

        pcm = b"".join(chunks)
        if not pcm:
            raise AudioSynthesisError("no audio generated")

        self._logger.info("NARRATION AUDIO passage_chars=%s pcm_bytes=%s", len(passage), len(pcm))
        return wav_data_url(pcm16_to_wav(pcm, cfg.narration_sample_rate))
