"""Audio helpers."""

from __future__ import annotations

import wave
from dataclasses import dataclass, field
from typing import Iterator, Optional

import numpy as np


@dataclass(frozen=True)
class AudioChunk:
    """Opaque slice of a meeting audio stream, 16-bit PCM by default."""

    data: bytes
    sequence: Optional[int] = None
    sample_rate_hz: int = 16000
    channels: int = 1
    sample_width: int = 2
    self_attributed: bool = False

    @property
    def duration_seconds(self) -> float:
        frame_bytes = self.sample_width * max(self.channels, 1)
        if not self.sample_rate_hz or not frame_bytes:
            return 0.0
        return len(self.data) / float(frame_bytes * self.sample_rate_hz)


@dataclass
class PreparedAudio:
    samples: np.ndarray
    sample_rate_hz: int
    raw: bytes = b""
    duration_override: Optional[float] = field(default=None, repr=False)

    @property
    def duration_seconds(self) -> float:
        if self.duration_override is not None:
            return self.duration_override
        if not self.sample_rate_hz:
            return 0.0
        return len(self.samples) / float(self.sample_rate_hz)

    def slice(self, start_s: float, end_s: float) -> "PreparedAudio":
        if self.samples.size == 0:
            return PreparedAudio(
                samples=self.samples,
                sample_rate_hz=self.sample_rate_hz,
                raw=self.raw,
                duration_override=max(0.0, end_s - start_s),
            )
        start = max(0, int(start_s * self.sample_rate_hz))
        end = max(start, int(end_s * self.sample_rate_hz))
        return PreparedAudio(samples=self.samples[start:end], sample_rate_hz=self.sample_rate_hz)


def decode_pcm16(data: bytes, channels: int = 1) -> np.ndarray:
    """Decode interleaved 16-bit PCM into a mono float32 array in [-1, 1]."""
    frame_bytes = 2 * max(channels, 1)
    if len(data) % frame_bytes:
        raise ValueError("PCM buffer is not a whole number of 16-bit frames.")
    raw = np.frombuffer(data, dtype=np.int16)
    if channels > 1:
        raw = raw.reshape(-1, channels).mean(axis=1)
    return (raw.astype(np.float32) / 32768.0).astype(np.float32)


def encode_pcm16(samples: np.ndarray) -> bytes:
    clipped = np.clip(samples, -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16).tobytes()


class PcmFrontEnd:
    """Decode, remove DC offset and peak-normalise a chunk.

    Chunks whose peak stays under ``noise_floor`` keep their level, so room
    noise is not amplified past the diarizer's silence threshold.
    """

    def __init__(self, target_peak: float = 0.9, noise_floor: float = 0.01) -> None:
        self.target_peak = target_peak
        self.noise_floor = noise_floor

    def prepare(self, chunk: AudioChunk) -> PreparedAudio:
        if chunk.sample_width != 2:
            raise ValueError("Only 16-bit PCM is supported.")
        samples = decode_pcm16(chunk.data, chunk.channels)
        if samples.size:
            samples = samples - float(np.mean(samples))
            peak = float(np.max(np.abs(samples)))
            if peak > self.noise_floor:
                samples = samples * (self.target_peak / peak)
        return PreparedAudio(samples=samples.astype(np.float32), sample_rate_hz=chunk.sample_rate_hz)


class PassthroughFrontEnd:
    """Hands the chunk through untouched; recognizers get the raw bytes."""

    def prepare(self, chunk: AudioChunk) -> PreparedAudio:
        return PreparedAudio(
            samples=np.zeros(0, dtype=np.float32),
            sample_rate_hz=chunk.sample_rate_hz,
            raw=chunk.data,
            duration_override=chunk.duration_seconds,
        )


def iter_wav_chunks(path: str, chunk_ms: int = 5000) -> Iterator[AudioChunk]:
    """Split a 16-bit WAV file into sequential chunks, as a live feed would."""
    with wave.open(path, "rb") as handle:
        channels = handle.getnchannels()
        sampwidth = handle.getsampwidth()
        framerate = handle.getframerate()

        if sampwidth != 2:
            raise ValueError("Only 16-bit PCM is supported for chunking.")

        frames_per_chunk = max(1, int(framerate * chunk_ms / 1000))
        sequence = 0
        while True:
            raw = handle.readframes(frames_per_chunk)
            if not raw:
                break
            yield AudioChunk(
                data=raw,
                sequence=sequence,
                sample_rate_hz=framerate,
                channels=channels,
            )
            sequence += 1
