"""Speech-to-text back ends."""

from __future__ import annotations

import asyncio
import itertools
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

import numpy as np

from .audio_utils import PreparedAudio

logger = logging.getLogger("meetsense")

WHISPER_SAMPLE_RATE = 16000


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    confidence: float
    is_final: bool = True
    language: Optional[str] = None


class Recognizer(Protocol):
    async def recognize(
        self,
        audio: PreparedAudio,
        language: str,
        hints: Sequence[str] = (),
    ) -> RecognitionResult:
        ...


class LanguageDetector(Protocol):
    async def detect(self, audio: PreparedAudio) -> str:
        ...


class FixedLanguageDetector:
    def __init__(self, language: str = "en-US") -> None:
        self.language = language

    async def detect(self, audio: PreparedAudio) -> str:
        return self.language


def _resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    if source_rate == target_rate or samples.size == 0:
        return samples.astype(np.float32)
    duration = samples.size / float(source_rate)
    target_len = max(1, int(round(duration * target_rate)))
    source_t = np.linspace(0.0, duration, num=samples.size, endpoint=False)
    target_t = np.linspace(0.0, duration, num=target_len, endpoint=False)
    return np.interp(target_t, source_t, samples).astype(np.float32)


class WhisperRecognizer:
    """Faster-Whisper recognizer; the model loads on first use."""

    def __init__(
        self,
        model_name: str = "small",
        device: Optional[str] = None,
        compute_type: Optional[str] = None,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self.compute_type = compute_type
        self._model: Any = None
        self._load_lock = threading.Lock()

    def _load_model(self) -> Any:
        with self._load_lock:
            if self._model is not None:
                return self._model
            try:
                from faster_whisper import WhisperModel
            except Exception as exc:  # pragma: no cover - optional dependency
                raise RuntimeError(
                    "faster-whisper is required for transcription."
                ) from exc

            kwargs = {}
            if self.device:
                kwargs["device"] = self.device
            if self.compute_type:
                kwargs["compute_type"] = self.compute_type
            logger.info("Loading whisper model %s", self.model_name)
            self._model = WhisperModel(self.model_name, **kwargs)
            return self._model

    async def recognize(
        self,
        audio: PreparedAudio,
        language: str,
        hints: Sequence[str] = (),
    ) -> RecognitionResult:
        return await asyncio.to_thread(self._recognize_sync, audio, language, tuple(hints))

    def _recognize_sync(
        self,
        audio: PreparedAudio,
        language: str,
        hints: Sequence[str],
    ) -> RecognitionResult:
        if audio.samples.size == 0:
            raise ValueError("Whisper needs decoded samples, not a raw buffer.")
        model = self._load_model()
        samples = _resample(audio.samples, audio.sample_rate_hz, WHISPER_SAMPLE_RATE)
        lang = (language or "").split("-")[0] or None
        segments, info = model.transcribe(
            samples,
            language=lang,
            initial_prompt=", ".join(hints) if hints else None,
        )

        texts = []
        confidences = []
        for seg in segments:
            text = seg.text.strip()
            if not text:
                continue
            texts.append(text)
            confidences.append(min(1.0, math.exp(float(seg.avg_logprob))))
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return RecognitionResult(
            text=" ".join(texts),
            confidence=round(confidence, 4),
            is_final=True,
            language=getattr(info, "language", None),
        )


DEMO_PHRASES = (
    "I think we should prioritize the user authentication feature for the next sprint.",
    "We decided to go with React for the frontend framework.",
    "We need to schedule a follow-up meeting to discuss the API integration.",
    "The design team should have the mockups ready by Friday.",
    "My main concern is the database migration, it could be a blocker.",
)


class MockRecognizer:
    """Scripted recognizer for demos and offline runs.

    With ``interim_first`` every phrase is preceded by a partial hypothesis,
    the way streaming recognizers report unstable text. The held-back phrase
    belongs to the clip that was asked, so concurrent turns keep their own.
    """

    def __init__(
        self,
        phrases: Sequence[str] = DEMO_PHRASES,
        confidence: float = 0.92,
        interim_first: bool = False,
    ) -> None:
        if not phrases:
            raise ValueError("MockRecognizer needs at least one phrase.")
        self._phrases = itertools.cycle(phrases)
        self._pending: Dict[int, str] = {}
        self.confidence = confidence
        self.interim_first = interim_first

    async def recognize(
        self,
        audio: PreparedAudio,
        language: str,
        hints: Sequence[str] = (),
    ) -> RecognitionResult:
        await asyncio.sleep(0)
        key = id(audio)
        if key in self._pending:
            text = self._pending.pop(key)
            return RecognitionResult(text=text, confidence=self.confidence, language=language)
        text = next(self._phrases)
        if self.interim_first:
            self._pending[key] = text
            partial = " ".join(text.split()[:3])
            return RecognitionResult(
                text=partial, confidence=self.confidence / 2, is_final=False, language=language
            )
        return RecognitionResult(text=text, confidence=self.confidence, language=language)
