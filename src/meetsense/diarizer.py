"""Speaker diarization for live audio chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

import numpy as np

from .audio_utils import PreparedAudio
from .models import AudioCharacteristics

logger = logging.getLogger("meetsense")


@dataclass
class SpeakerTurn:
    start: float
    end: float
    audio: PreparedAudio
    characteristics: AudioCharacteristics
    confidence: float = 1.0


class Diarizer(Protocol):
    async def diarize(self, audio: PreparedAudio, language: str) -> List[SpeakerTurn]:
        ...


class SingleSpeakerDiarizer:
    """Treats the whole chunk as one turn with a fixed voice signature."""

    def __init__(self, pitch: float = 150.0, tone: float = 0.7, pace: float = 1.2) -> None:
        self.pitch = pitch
        self.tone = tone
        self.pace = pace

    async def diarize(self, audio: PreparedAudio, language: str) -> List[SpeakerTurn]:
        duration = audio.duration_seconds
        if duration <= 0:
            return []
        characteristics = AudioCharacteristics(
            pitch=self.pitch, tone=self.tone, pace=self.pace, language=language
        )
        return [SpeakerTurn(start=0.0, end=duration, audio=audio, characteristics=characteristics)]


def estimate_pitch(samples: np.ndarray, sample_rate: int, fmin: float = 60.0, fmax: float = 400.0) -> float:
    window = samples[: min(len(samples), sample_rate)]
    min_lag = max(1, int(sample_rate / fmax))
    max_lag = int(sample_rate / fmin)
    if len(window) <= max_lag:
        return 0.0
    spectrum = np.fft.rfft(window, n=2 * len(window))
    autocorr = np.fft.irfft(spectrum * np.conj(spectrum))[: len(window)]
    if autocorr[0] <= 0:
        return 0.0
    lag = min_lag + int(np.argmax(autocorr[min_lag:max_lag]))
    return float(sample_rate) / lag


def estimate_tone(samples: np.ndarray, sample_rate: int) -> float:
    """Spectral centroid scaled to [0, 1] of the Nyquist band."""
    if samples.size == 0:
        return 0.0
    magnitude = np.abs(np.fft.rfft(samples))
    total = float(np.sum(magnitude))
    if total <= 0:
        return 0.0
    freqs = np.fft.rfftfreq(samples.size, d=1.0 / sample_rate)
    centroid = float(np.sum(freqs * magnitude)) / total
    return min(max(centroid / (sample_rate / 2.0), 0.0), 1.0)


def estimate_pace(envelope: np.ndarray, frame_s: float) -> float:
    """Energy bursts per second, scaled so conversational speech sits near 1."""
    if envelope.size < 3 or frame_s <= 0:
        return 0.0
    mean = float(np.mean(envelope))
    inner = envelope[1:-1]
    peaks = np.sum((inner > envelope[:-2]) & (inner >= envelope[2:]) & (inner > mean))
    duration = envelope.size * frame_s
    return float(peaks) / duration / 4.0


class EnergyDiarizer:
    """Splits a chunk on silence and labels voiced regions by voice features.

    Neighbouring regions whose features fall inside the speaker match radius
    are merged, so each returned turn is speaker-homogeneous.
    """

    def __init__(
        self,
        frame_ms: int = 30,
        silence_threshold: float = 0.02,
        min_turn_ms: int = 300,
        max_gap_ms: int = 400,
        radius: Tuple[float, float, float] = (20.0, 0.3, 0.5),
    ) -> None:
        self.frame_ms = frame_ms
        self.silence_threshold = silence_threshold
        self.min_turn_ms = min_turn_ms
        self.max_gap_ms = max_gap_ms
        self.radius = radius

    async def diarize(self, audio: PreparedAudio, language: str) -> List[SpeakerTurn]:
        return self.split(audio, language)

    def split(self, audio: PreparedAudio, language: str) -> List[SpeakerTurn]:
        samples = audio.samples
        sample_rate = audio.sample_rate_hz
        frame_len = max(1, int(sample_rate * self.frame_ms / 1000))
        frame_count = samples.size // frame_len
        if frame_count == 0:
            return []

        frames = samples[: frame_count * frame_len].reshape(frame_count, frame_len)
        rms = np.sqrt(np.mean(frames.astype(np.float64) ** 2, axis=1))
        regions = self._voiced_regions(rms > self.silence_threshold)

        frame_s = frame_len / float(sample_rate)
        turns: List[SpeakerTurn] = []
        for first, last in regions:
            start = first * frame_s
            end = (last + 1) * frame_s
            window = samples[first * frame_len : (last + 1) * frame_len]
            envelope = rms[first : last + 1]
            characteristics = AudioCharacteristics(
                pitch=estimate_pitch(window, sample_rate),
                tone=estimate_tone(window, sample_rate),
                pace=estimate_pace(envelope, frame_s),
                language=language,
            )
            voiced_ratio = float(np.mean(envelope > self.silence_threshold))
            turns.append(
                SpeakerTurn(
                    start=start,
                    end=end,
                    audio=audio.slice(start, end),
                    characteristics=characteristics,
                    confidence=round(min(1.0, 0.5 + voiced_ratio / 2.0), 3),
                )
            )
        return self._merge_same_speaker(turns, audio)

    def _voiced_regions(self, voiced: np.ndarray) -> List[Tuple[int, int]]:
        max_gap = max(0, int(self.max_gap_ms / self.frame_ms))
        min_len = max(1, int(self.min_turn_ms / self.frame_ms))
        regions: List[List[int]] = []
        for idx in np.flatnonzero(voiced):
            idx = int(idx)
            if regions and idx - regions[-1][1] - 1 <= max_gap:
                regions[-1][1] = idx
            else:
                regions.append([idx, idx])
        return [(a, b) for a, b in regions if b - a + 1 >= min_len]

    def _same_speaker(self, a: AudioCharacteristics, b: AudioCharacteristics) -> bool:
        pitch_r, tone_r, pace_r = self.radius
        return (
            abs(a.pitch - b.pitch) < pitch_r
            and abs(a.tone - b.tone) < tone_r
            and abs(a.pace - b.pace) < pace_r
        )

    def _merge_same_speaker(self, turns: List[SpeakerTurn], audio: PreparedAudio) -> List[SpeakerTurn]:
        merged: List[SpeakerTurn] = []
        for turn in turns:
            previous: Optional[SpeakerTurn] = merged[-1] if merged else None
            if previous is None or not self._same_speaker(previous.characteristics, turn.characteristics):
                merged.append(turn)
                continue
            span_a = previous.end - previous.start
            span_b = turn.end - turn.start
            weight = span_b / (span_a + span_b) if span_a + span_b else 0.5
            a, b = previous.characteristics, turn.characteristics
            merged[-1] = SpeakerTurn(
                start=previous.start,
                end=turn.end,
                audio=audio.slice(previous.start, turn.end),
                characteristics=AudioCharacteristics(
                    pitch=a.pitch + weight * (b.pitch - a.pitch),
                    tone=a.tone + weight * (b.tone - a.tone),
                    pace=a.pace + weight * (b.pace - a.pace),
                    language=a.language,
                ),
                confidence=round((previous.confidence + turn.confidence) / 2.0, 3),
            )
        logger.debug("Diarized %d voiced regions into %d turns", len(turns), len(merged))
        return merged
