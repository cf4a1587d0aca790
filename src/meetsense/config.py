"""Configuration handling."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional
import yaml


@dataclass
class TranscriptionConfig:
    recognizer: str = "whisper"
    whisper_model: str = "small"
    language: str = "en-US"
    device: Optional[str] = None
    compute_type: Optional[str] = None
    noise_floor: float = 0.01
    max_recognition_attempts: int = 3


@dataclass
class DiarizationConfig:
    enabled: bool = True
    frame_ms: int = 30
    silence_threshold: float = 0.02
    min_turn_ms: int = 300
    max_gap_ms: int = 400


@dataclass
class VoiceProfileConfig:
    scope: str = "session"
    pitch_radius: float = 20.0
    tone_radius: float = 0.3
    pace_radius: float = 0.5
    initial_confidence: float = 0.8


@dataclass
class AnalysisConfig:
    max_highlights: int = 5
    max_topics: int = 5
    min_topic_length: int = 4


@dataclass
class SessionConfig:
    chunk_ms: int = 5000
    self_attributed: bool = False


@dataclass
class Config:
    base_dir: str = ""
    log_level: str = "INFO"
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    diarization: DiarizationConfig = field(default_factory=DiarizationConfig)
    voice_profiles: VoiceProfileConfig = field(default_factory=VoiceProfileConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    transcription = TranscriptionConfig(**data.get("transcription", {}))
    diarization = DiarizationConfig(**data.get("diarization", {}))
    voice_profiles = VoiceProfileConfig(**data.get("voice_profiles", {}))
    analysis = AnalysisConfig(**data.get("analysis", {}))
    sessions = SessionConfig(**data.get("sessions", {}))

    if voice_profiles.scope not in ("session", "global"):
        raise ValueError(f"Unknown voice profile scope: {voice_profiles.scope}")

    return Config(
        base_dir=data.get("base_dir", ""),
        log_level=str(data.get("log_level", "INFO")).upper(),
        transcription=transcription,
        diarization=diarization,
        voice_profiles=voice_profiles,
        analysis=analysis,
        sessions=sessions,
    )


def save_config(path: str, config: Config) -> None:
    data = {
        "base_dir": config.base_dir,
        "log_level": config.log_level,
        "transcription": asdict(config.transcription),
        "diarization": asdict(config.diarization),
        "voice_profiles": asdict(config.voice_profiles),
        "analysis": asdict(config.analysis),
        "sessions": asdict(config.sessions),
    }
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)
