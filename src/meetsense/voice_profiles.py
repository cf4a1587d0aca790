"""Speaker fingerprints and identity resolution."""

from __future__ import annotations

import itertools
import logging
import math
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import AudioCharacteristics, VoiceProfile

logger = logging.getLogger("meetsense")

GLOBAL_NAMESPACE = "global"


class VoiceProfileStore:
    """Nearest-match speaker identification over (pitch, tone, pace).

    A stored profile matches an observation only when all three deltas are
    inside their radius. Among several matches the closest one by Euclidean
    distance wins; equal distances go to the most recently updated profile.
    Profiles live in namespaces: one per session when ``scope`` is
    ``"session"``, a single shared one when it is ``"global"``.
    """

    def __init__(
        self,
        scope: str = "session",
        pitch_radius: float = 20.0,
        tone_radius: float = 0.3,
        pace_radius: float = 0.5,
        initial_confidence: float = 0.8,
        max_confidence: float = 0.99,
    ) -> None:
        if scope not in ("session", "global"):
            raise ValueError(f"Unknown voice profile scope: {scope}")
        self.scope = scope
        self.pitch_radius = pitch_radius
        self.tone_radius = tone_radius
        self.pace_radius = pace_radius
        self.initial_confidence = initial_confidence
        self.max_confidence = max_confidence
        self._lock = threading.Lock()
        self._profiles: Dict[str, Dict[str, VoiceProfile]] = {}
        self._counters: Dict[str, itertools.count] = {}
        self._revision = itertools.count(1)

    def namespace_for(self, session_id: Optional[str]) -> str:
        if self.scope == "global" or not session_id:
            return GLOBAL_NAMESPACE
        return session_id

    def identify_speaker(
        self,
        characteristics: AudioCharacteristics,
        namespace: Optional[str] = None,
    ) -> str:
        key = namespace or GLOBAL_NAMESPACE
        with self._lock:
            match = self._closest_locked(key, characteristics)
            if match is not None:
                return match.speaker_id
            return self._create_locked(key, characteristics).speaker_id

    def observe(
        self,
        characteristics: AudioCharacteristics,
        confidence: float = 1.0,
        namespace: Optional[str] = None,
    ) -> str:
        """Identify the speaker and fold the observation into its profile."""
        key = namespace or GLOBAL_NAMESPACE
        with self._lock:
            match = self._closest_locked(key, characteristics)
            if match is None:
                return self._create_locked(key, characteristics).speaker_id
            self._update_locked(match, characteristics, confidence)
            return match.speaker_id

    def update_profile(
        self,
        speaker_id: str,
        characteristics: AudioCharacteristics,
        confidence: float = 1.0,
        namespace: Optional[str] = None,
    ) -> None:
        key = namespace or GLOBAL_NAMESPACE
        with self._lock:
            profile = self._profiles.get(key, {}).get(speaker_id)
            if profile is None:
                logger.warning("Voice profile update for unknown speaker %s", speaker_id)
                return
            self._update_locked(profile, characteristics, confidence)

    def bind_identity(
        self,
        speaker_id: str,
        name: str,
        email: str,
        namespace: Optional[str] = None,
    ) -> bool:
        key = namespace or GLOBAL_NAMESPACE
        with self._lock:
            profile = self._profiles.get(key, {}).get(speaker_id)
            if profile is None:
                logger.warning("Cannot bind identity to unknown speaker %s", speaker_id)
                return False
            profile.name = name
            profile.email = email
        logger.info("Voice profile %s bound to %s", speaker_id, name)
        return True

    def get_profile(self, speaker_id: str, namespace: Optional[str] = None) -> Optional[VoiceProfile]:
        with self._lock:
            profile = self._profiles.get(namespace or GLOBAL_NAMESPACE, {}).get(speaker_id)
            return replace(profile) if profile else None

    def profiles(self, namespace: Optional[str] = None) -> List[VoiceProfile]:
        with self._lock:
            table = self._profiles.get(namespace or GLOBAL_NAMESPACE, {})
            return [replace(p) for p in table.values()]

    def clear(self, namespace: Optional[str] = None) -> None:
        key = namespace or GLOBAL_NAMESPACE
        with self._lock:
            self._profiles.pop(key, None)
            self._counters.pop(key, None)

    def load(self, profiles: List[VoiceProfile], namespace: Optional[str] = None) -> int:
        """Restore previously saved profiles; new ids continue after the highest loaded one."""
        key = namespace or GLOBAL_NAMESPACE
        with self._lock:
            table = self._profiles.setdefault(key, {})
            highest = 0
            for profile in profiles:
                table[profile.speaker_id] = replace(profile, revision=next(self._revision))
                suffix = profile.speaker_id.rpartition("_")[2]
                if suffix.isdigit():
                    highest = max(highest, int(suffix))
            self._counters[key] = itertools.count(highest + 1)
        return len(profiles)

    def _within_radius(self, a: AudioCharacteristics, b: AudioCharacteristics) -> bool:
        return (
            abs(a.pitch - b.pitch) < self.pitch_radius
            and abs(a.tone - b.tone) < self.tone_radius
            and abs(a.pace - b.pace) < self.pace_radius
        )

    def _closest_locked(self, key: str, characteristics: AudioCharacteristics) -> Optional[VoiceProfile]:
        best: Optional[VoiceProfile] = None
        best_distance = math.inf
        for profile in self._profiles.get(key, {}).values():
            if not self._within_radius(characteristics, profile.characteristics):
                continue
            distance = math.dist(characteristics.vector(), profile.characteristics.vector())
            if distance < best_distance or (
                distance == best_distance and best is not None and profile.revision > best.revision
            ):
                best = profile
                best_distance = distance
        return best

    def _create_locked(self, key: str, characteristics: AudioCharacteristics) -> VoiceProfile:
        counter = self._counters.setdefault(key, itertools.count(1))
        table = self._profiles.setdefault(key, {})
        speaker_id = f"speaker_{next(counter)}"
        while speaker_id in table:
            speaker_id = f"speaker_{next(counter)}"
        profile = VoiceProfile(
            speaker_id=speaker_id,
            characteristics=characteristics,
            confidence=self.initial_confidence,
            last_updated=datetime.now(timezone.utc),
            revision=next(self._revision),
        )
        table[speaker_id] = profile
        logger.debug("New voice profile %s in %s", speaker_id, key)
        return profile

    def _update_locked(
        self,
        profile: VoiceProfile,
        observed: AudioCharacteristics,
        confidence: float,
    ) -> None:
        measurement = min(max(confidence, 0.0), 1.0)
        if measurement <= 0.0:
            return
        step = measurement / (measurement + profile.confidence)
        current = profile.characteristics
        profile.characteristics = AudioCharacteristics(
            pitch=current.pitch + step * (observed.pitch - current.pitch),
            tone=current.tone + step * (observed.tone - current.tone),
            pace=current.pace + step * (observed.pace - current.pace),
            language=observed.language or current.language,
            accent=observed.accent or current.accent,
        )
        profile.confidence = min(
            self.max_confidence,
            profile.confidence + (1.0 - profile.confidence) * 0.1 * measurement,
        )
        profile.observations += 1
        profile.last_updated = datetime.now(timezone.utc)
        profile.revision = next(self._revision)
