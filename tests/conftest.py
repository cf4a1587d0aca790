from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from meetsense.analyzer import ContentAnalyzer
from meetsense.audio_utils import AudioChunk, PreparedAudio, encode_pcm16
from meetsense.diarizer import SingleSpeakerDiarizer, SpeakerTurn
from meetsense.models import AudioCharacteristics, SentimentScore, TranscriptSegment
from meetsense.orchestrator import SessionOrchestrator
from meetsense.recognizers import RecognitionResult
from meetsense.transcriber import TranscriptionEngine
from meetsense.voice_profiles import VoiceProfileStore

ALICE = AudioCharacteristics(pitch=210.0, tone=0.55, pace=1.1)
BOB = AudioCharacteristics(pitch=110.0, tone=0.35, pace=0.9)
START = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class ScriptedRecognizer:
    """Returns queued results in call order; exceptions in the queue are raised."""

    def __init__(self, items: Iterable = ()) -> None:
        self.items = deque(items)
        self.calls = 0

    def push(self, *items) -> None:
        self.items.extend(items)

    async def recognize(self, audio: PreparedAudio, language: str, hints: Sequence[str] = ()):
        self.calls += 1
        item = self.items.popleft() if self.items else "filler words only"
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, RecognitionResult):
            return item
        return RecognitionResult(text=item, confidence=0.95, language=language)


class ScriptedDiarizer:
    """Emits one turn per voice in the script entry for each chunk."""

    def __init__(self, script: Iterable[Sequence[AudioCharacteristics]] = ()) -> None:
        self.script = deque(script)

    def push(self, *voices: AudioCharacteristics) -> None:
        self.script.append(voices)

    async def diarize(self, audio: PreparedAudio, language: str) -> List[SpeakerTurn]:
        voices = self.script.popleft() if self.script else (ALICE,)
        span = audio.duration_seconds / max(len(voices), 1)
        return [
            SpeakerTurn(
                start=index * span,
                end=(index + 1) * span,
                audio=audio.slice(index * span, (index + 1) * span),
                characteristics=voice,
            )
            for index, voice in enumerate(voices)
        ]


def silence(seconds: float = 0.5, sample_rate: int = 16000) -> bytes:
    return encode_pcm16(np.zeros(int(seconds * sample_rate), dtype=np.float32))


def tone(freq: float, seconds: float, sample_rate: int = 16000, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(int(seconds * sample_rate)) / float(sample_rate)
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def chunk(sequence: Optional[int] = None, seconds: float = 0.5, **kwargs) -> AudioChunk:
    return AudioChunk(data=silence(seconds), sequence=sequence, **kwargs)


def segment(
    seg_id: str,
    text: str,
    speaker_id: str = "speaker_1",
    offset_s: float = 0.0,
    confidence: float = 0.95,
    sentiment: Optional[SentimentScore] = None,
) -> TranscriptSegment:
    return TranscriptSegment(
        id=seg_id,
        speaker_id=speaker_id,
        text=text,
        timestamp=START + timedelta(seconds=offset_s),
        confidence=confidence,
        language="en-US",
        sentiment=sentiment,
    )


@pytest.fixture
def profiles() -> VoiceProfileStore:
    return VoiceProfileStore()


@pytest.fixture
def recognizer() -> ScriptedRecognizer:
    return ScriptedRecognizer()


@pytest.fixture
def diarizer() -> ScriptedDiarizer:
    return ScriptedDiarizer()


@pytest.fixture
def engine(recognizer, diarizer, profiles) -> TranscriptionEngine:
    return TranscriptionEngine(recognizer=recognizer, profiles=profiles, diarizer=diarizer)


@pytest.fixture
def orchestrator_factory(profiles):
    def build(recognizer, diarizer=None) -> Tuple[SessionOrchestrator, TranscriptionEngine]:
        engine = TranscriptionEngine(
            recognizer=recognizer,
            profiles=profiles,
            diarizer=diarizer or SingleSpeakerDiarizer(),
        )
        return SessionOrchestrator(engine=engine, analyzer=ContentAnalyzer()), engine

    return build


@pytest.fixture
def sample_snapshot():
    from meetsense.models import (
        ActionItem,
        Decision,
        DecisionCategory,
        ImpactLevel,
        MeetingMetadata,
        MeetingPlatform,
        MeetingSession,
        MeetingStatus,
        MeetingSummary,
        MeetingTemplate,
        Participant,
        ParticipationStats,
        Priority,
        TaskIntegration,
        TaskPlatform,
    )
    from meetsense.orchestrator import make_snapshot
    from meetsense.text_utils import score_sentiment

    text_1 = "We decided to go with Postgres."
    text_2 = "Maria will migrate the schema by Friday."
    session = MeetingSession(
        id="session_0123456789ab",
        title="Sprint Planning",
        start_time=START,
        end_time=START + timedelta(minutes=30),
        platform=MeetingPlatform.TEAMS,
        status=MeetingStatus.COMPLETED,
        metadata=MeetingMetadata(template=MeetingTemplate.PLANNING, custom_vocabulary=("Postgres",)),
        participants=[
            Participant(id="p1", name="Maria Lopez", email="maria@example.com", voice_profile_id="speaker_2"),
        ],
        transcript=[
            TranscriptSegment(
                id="seg_000000_000", speaker_id="speaker_1", text=text_1, timestamp=START,
                confidence=0.9, language="en-US", sentiment=score_sentiment(text_1),
                keywords=("postgres",),
            ),
            TranscriptSegment(
                id="seg_000001_000", speaker_id="speaker_2", text=text_2,
                timestamp=START + timedelta(seconds=5), confidence=0.85, language="en-US",
            ),
        ],
        action_items=[
            ActionItem(
                id="action_seg_000001_000_0", description="Maria will migrate the schema by Friday",
                assignee="Maria", priority=Priority.MEDIUM, confidence=0.55,
                extracted_from="seg_000001_000", due_date=START + timedelta(days=4, hours=7),
                integrations=[TaskIntegration(platform=TaskPlatform.JIRA, task_id="JIRA-7")],
            )
        ],
        decisions=[
            Decision(
                id="decision_seg_000000_000_0", description="We decided to go with Postgres",
                confidence=0.72, timestamp=START, impact=ImpactLevel.MEDIUM,
                category=DecisionCategory.TECHNICAL, extracted_from="seg_000000_000",
                participants=["speaker_1"],
            )
        ],
        summary=MeetingSummary(
            key_highlights=[text_1, text_2],
            main_topics=["postgres", "schema"],
            next_steps=[],
            risks=["Schema drift"],
            participation_stats=ParticipationStats(
                speaking_time={"speaker_1": len(text_1), "speaker_2": len(text_2)},
                interaction_count={"speaker_1": 1, "speaker_2": 1},
                engagement_level={"speaker_1": 0.41, "speaker_2": 0.5},
            ),
        ),
    )
    return make_snapshot(session)
