"""Streaming transcription of meeting audio chunks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .audio_utils import AudioChunk, PcmFrontEnd, PreparedAudio
from .diarizer import Diarizer, EnergyDiarizer, SpeakerTurn
from .errors import TranscriptionFailure
from .models import CURRENT_USER, TranscriptSegment
from .recognizers import FixedLanguageDetector, LanguageDetector, RecognitionResult, Recognizer
from .text_utils import clean_text, extract_keywords, score_sentiment
from .voice_profiles import VoiceProfileStore

logger = logging.getLogger("meetsense")


@dataclass
class _SessionCursor:
    started_at: datetime
    namespace: str
    vocabulary: Tuple[str, ...] = ()
    offsets: Dict[int, float] = field(default_factory=dict)
    next_offset: float = 0.0
    next_sequence: int = 0
    watermark: Optional[datetime] = None


class TranscriptionEngine:
    """Turns audio chunks into final, speaker-attributed transcript segments.

    Each chunk goes through the front end, language detection, diarization,
    speaker identification and recognition. Interim recognizer hypotheses
    never leave this class. A chunk that fails at any stage yields no
    segments; the failure is logged and the session carries on.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        profiles: VoiceProfileStore,
        diarizer: Optional[Diarizer] = None,
        front_end=None,
        language_detector: Optional[LanguageDetector] = None,
        max_attempts: int = 3,
    ) -> None:
        self.recognizer = recognizer
        self.profiles = profiles
        self.diarizer = diarizer or EnergyDiarizer()
        self.front_end = front_end or PcmFrontEnd()
        self.language_detector = language_detector or FixedLanguageDetector()
        self.max_attempts = max(1, max_attempts)
        self._cursors: Dict[str, _SessionCursor] = {}

    def open_session(
        self,
        session_id: str,
        started_at: Optional[datetime] = None,
        vocabulary: Sequence[str] = (),
    ) -> None:
        self._cursors[session_id] = _SessionCursor(
            started_at=started_at or datetime.now(timezone.utc),
            namespace=self.profiles.namespace_for(session_id),
            vocabulary=tuple(vocabulary),
        )

    def close_session(self, session_id: str) -> None:
        self._cursors.pop(session_id, None)

    async def transcribe(self, session_id: str, chunk: AudioChunk) -> List[TranscriptSegment]:
        cursor = self._cursors.get(session_id)
        if cursor is None:
            self.open_session(session_id)
            cursor = self._cursors[session_id]

        sequence = chunk.sequence if chunk.sequence is not None else cursor.next_sequence
        offset = self._offset_for(cursor, sequence, chunk.duration_seconds)
        try:
            segments = await self._transcribe_chunk(session_id, cursor, sequence, offset, chunk)
        except TranscriptionFailure as exc:
            logger.warning(
                "Transcription failed session=%s chunk=%s: %s",
                session_id,
                sequence,
                exc,
                exc_info=exc.__cause__ is not None,
            )
            return []
        logger.debug("session=%s chunk=%s segments=%d", session_id, sequence, len(segments))
        return segments

    def _offset_for(self, cursor: _SessionCursor, sequence: int, duration: float) -> float:
        if sequence in cursor.offsets:
            return cursor.offsets[sequence]
        offset = cursor.next_offset
        cursor.offsets[sequence] = offset
        cursor.next_offset += duration
        cursor.next_sequence = max(cursor.next_sequence, sequence + 1)
        return offset

    async def _transcribe_chunk(
        self,
        session_id: str,
        cursor: _SessionCursor,
        sequence: int,
        offset: float,
        chunk: AudioChunk,
    ) -> List[TranscriptSegment]:
        try:
            audio = self.front_end.prepare(chunk)
            language = await self.language_detector.detect(audio)
            turns = await self.diarizer.diarize(audio, language)
        except Exception as exc:
            raise TranscriptionFailure(
                f"Preprocessing failed for chunk {sequence}", session_id
            ) from exc

        turns = sorted(turns, key=lambda t: t.start)
        # Identification runs in temporal order; profile drift depends on it.
        speakers = [self._speaker_for(turn, cursor, chunk) for turn in turns]

        results = await asyncio.gather(
            *(self._recognize(turn.audio, language, cursor.vocabulary) for turn in turns),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                if isinstance(result, TranscriptionFailure):
                    result.session_id = session_id
                    raise result
                raise TranscriptionFailure(
                    f"Recognition failed for chunk {sequence}", session_id
                ) from result

        segments: List[TranscriptSegment] = []
        for index, (turn, speaker_id, result) in enumerate(zip(turns, speakers, results)):
            if result is None:
                continue
            text = clean_text(result.text)
            if not text:
                continue
            timestamp = cursor.started_at + timedelta(seconds=offset + turn.start)
            if cursor.watermark is not None and timestamp < cursor.watermark:
                timestamp = cursor.watermark
            cursor.watermark = timestamp
            segments.append(
                TranscriptSegment(
                    id=f"seg_{sequence:06d}_{index:03d}",
                    speaker_id=speaker_id,
                    text=text,
                    timestamp=timestamp,
                    confidence=min(max(float(result.confidence), 0.0), 1.0),
                    language=result.language or language,
                    sentiment=score_sentiment(text),
                    keywords=tuple(extract_keywords(text, cursor.vocabulary)),
                )
            )
        return segments

    def _speaker_for(self, turn: SpeakerTurn, cursor: _SessionCursor, chunk: AudioChunk) -> str:
        if chunk.self_attributed:
            return CURRENT_USER
        return self.profiles.observe(turn.characteristics, turn.confidence, cursor.namespace)

    async def _recognize(
        self,
        audio: PreparedAudio,
        language: str,
        hints: Sequence[str],
    ) -> Optional[RecognitionResult]:
        """Ask the recognizer until it commits to a final hypothesis."""
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await self.recognizer.recognize(audio, language, hints)
            except Exception as exc:
                last_error = exc
                logger.info("Recognizer attempt %d/%d failed: %s", attempt, self.max_attempts, exc)
                continue
            if result.is_final:
                return result
            logger.debug("Discarded interim hypothesis on attempt %d", attempt)
        if last_error is not None:
            raise TranscriptionFailure("Recognizer gave no final result") from last_error
        return None
