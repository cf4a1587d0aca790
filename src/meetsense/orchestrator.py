"""Meeting session lifecycle and per-session audio ingestion."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .analyzer import (
    AnalysisResult,
    ContentAnalyzer,
    Summarizer,
    apply_engagement,
    prioritize_action_items,
    prioritize_decisions,
)
from .audio_utils import AudioChunk, PcmFrontEnd
from .config import Config
from .diarizer import EnergyDiarizer, SingleSpeakerDiarizer
from .errors import InvalidSessionError, SessionNotFoundError
from .models import (
    MeetingConfig,
    MeetingMetadata,
    MeetingSession,
    MeetingSnapshot,
    MeetingStatus,
    Participant,
)
from .recognizers import FixedLanguageDetector, MockRecognizer, Recognizer, WhisperRecognizer
from .transcriber import TranscriptionEngine
from .voice_profiles import VoiceProfileStore

logger = logging.getLogger("meetsense")

_STOP = object()

_TRANSITIONS = {
    MeetingStatus.SCHEDULED: {MeetingStatus.IN_PROGRESS, MeetingStatus.CANCELLED},
    MeetingStatus.IN_PROGRESS: {MeetingStatus.COMPLETED, MeetingStatus.CANCELLED},
    MeetingStatus.COMPLETED: set(),
    MeetingStatus.CANCELLED: set(),
}


def _transition(session: MeetingSession, target: MeetingStatus) -> None:
    if target not in _TRANSITIONS[session.status]:
        raise InvalidSessionError(
            f"Session {session.id} cannot move from {session.status.value} to {target.value}",
            session.id,
        )
    session.status = target


def make_snapshot(session: MeetingSession) -> MeetingSnapshot:
    return MeetingSnapshot(
        id=session.id,
        title=session.title,
        start_time=session.start_time,
        end_time=session.end_time,
        platform=session.platform,
        status=session.status,
        metadata=session.metadata,
        participants=tuple(copy.deepcopy(session.participants)),
        transcript=tuple(session.transcript),
        action_items=tuple(copy.deepcopy(session.action_items)),
        decisions=tuple(copy.deepcopy(session.decisions)),
        summary=copy.deepcopy(session.summary),
    )


@dataclass
class SessionHandle:
    session: MeetingSession
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    worker: Optional[asyncio.Task] = None
    closer: Optional[asyncio.Task] = None
    closing: bool = False
    next_sequence: int = 0


class SessionStore:
    """Table of active sessions.

    Inserts and removals take the table lock; each handle carries its own
    lock for state merges, so sessions never wait on one another.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionHandle] = {}
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        async with self._lock:
            self._sessions.clear()

    async def add(self, handle: SessionHandle) -> None:
        async with self._lock:
            if handle.session.id in self._sessions:
                raise ValueError(f"Session {handle.session.id} already registered.")
            self._sessions[handle.session.id] = handle

    def get(self, session_id: str) -> Optional[SessionHandle]:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> Optional[SessionHandle]:
        async with self._lock:
            return self._sessions.pop(session_id, None)

    def ids(self) -> List[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)


class SessionOrchestrator:
    """Owns every active meeting and is the only writer of session state.

    Audio for one session is funnelled through a single worker task, so
    chunks are transcribed and merged in submission order. Different
    sessions run their workers concurrently.
    """

    def __init__(
        self,
        engine: TranscriptionEngine,
        analyzer: Optional[ContentAnalyzer] = None,
        store: Optional[SessionStore] = None,
    ) -> None:
        self.engine = engine
        self.analyzer = analyzer or ContentAnalyzer()
        self.store = store or SessionStore()

    async def __aenter__(self) -> "SessionOrchestrator":
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.teardown()

    async def init(self) -> None:
        await self.store.init()

    async def teardown(self) -> None:
        for session_id in self.store.ids():
            handle = self.store.get(session_id)
            if handle is not None and handle.closer is not None:
                await asyncio.wait([handle.closer])
                continue
            try:
                await self.cancel_meeting(session_id)
            except SessionNotFoundError:
                continue

    def active_sessions(self) -> List[str]:
        return self.store.ids()

    async def start_meeting(self, config: MeetingConfig) -> str:
        session = MeetingSession(
            id=f"session_{uuid.uuid4().hex[:12]}",
            title=config.title,
            start_time=datetime.now(timezone.utc),
            platform=config.platform,
            participants=copy.deepcopy(list(config.participants)),
            metadata=MeetingMetadata(
                privacy_level=config.privacy_level,
                template=config.template,
                custom_vocabulary=tuple(config.custom_vocabulary),
                recording_enabled=config.recording_enabled,
                ai_processing_enabled=config.ai_processing_enabled,
            ),
        )
        _transition(session, MeetingStatus.IN_PROGRESS)

        handle = SessionHandle(session=session)
        self.engine.open_session(session.id, session.start_time, session.metadata.custom_vocabulary)
        await self.store.add(handle)
        handle.worker = asyncio.create_task(self._run_worker(handle), name=f"meetsense-{session.id}")
        logger.info("Meeting session %s started: %s", session.id, session.title)
        return session.id

    async def ingest_audio(self, session_id: str, chunk: AudioChunk) -> None:
        handle = self.store.get(session_id)
        if handle is None or handle.closing or handle.session.status is not MeetingStatus.IN_PROGRESS:
            raise InvalidSessionError(f"Session {session_id} is not accepting audio", session_id)
        if chunk.sequence is None:
            chunk = replace(chunk, sequence=handle.next_sequence)
        handle.next_sequence = max(handle.next_sequence, chunk.sequence + 1)
        handle.queue.put_nowait(chunk)

    async def end_meeting(self, session_id: str) -> MeetingSnapshot:
        handle = self._claim(session_id)
        return await self._close(handle, self._complete(handle))

    async def cancel_meeting(self, session_id: str) -> MeetingSnapshot:
        handle = self._claim(session_id)
        return await self._close(handle, self._cancel(handle))

    async def _close(self, handle: SessionHandle, finish) -> MeetingSnapshot:
        """Run the close on its own task; a cancelled caller does not abort it."""
        handle.closer = asyncio.create_task(finish, name=f"meetsense-close-{handle.session.id}")
        return await asyncio.shield(handle.closer)

    async def _complete(self, handle: SessionHandle) -> MeetingSnapshot:
        session = handle.session
        session_id = session.id
        try:
            await self._stop_worker(handle)
            async with handle.lock:
                analysis = await self.analyzer.analyze(
                    list(session.transcript),
                    session_id,
                    enabled=session.metadata.ai_processing_enabled,
                )
                session.action_items = analysis.action_items
                session.decisions = analysis.decisions
                session.summary = analysis.summary
                apply_engagement(session.participants, analysis.summary)
                session.end_time = datetime.now(timezone.utc)
                _transition(session, MeetingStatus.COMPLETED)
                snapshot = make_snapshot(session)
        finally:
            await self._release(session_id)
        logger.info(
            "Meeting session %s completed: %d segments, %d action items, %d decisions",
            session_id,
            len(snapshot.transcript),
            len(snapshot.action_items),
            len(snapshot.decisions),
        )
        return snapshot

    async def _cancel(self, handle: SessionHandle) -> MeetingSnapshot:
        session = handle.session
        dropped = 0
        try:
            while True:
                try:
                    handle.queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                handle.queue.task_done()
                dropped += 1
            await self._stop_worker(handle)

            async with handle.lock:
                session.end_time = datetime.now(timezone.utc)
                _transition(session, MeetingStatus.CANCELLED)
                snapshot = make_snapshot(session)
        finally:
            await self._release(session.id)
        logger.info("Meeting session %s cancelled, %d queued chunks dropped", session.id, dropped)
        return snapshot

    def get_snapshot(self, session_id: str) -> MeetingSnapshot:
        handle = self.store.get(session_id)
        if handle is None:
            raise SessionNotFoundError(f"Session {session_id} not found", session_id)
        return make_snapshot(handle.session)

    async def bind_speaker(self, session_id: str, speaker_id: str, participant_id: str) -> Participant:
        handle = self.store.get(session_id)
        if handle is None:
            raise SessionNotFoundError(f"Session {session_id} not found", session_id)
        async with handle.lock:
            participant = next(
                (p for p in handle.session.participants if p.id == participant_id), None
            )
            if participant is None:
                raise KeyError(f"Unknown participant {participant_id} in session {session_id}")
            namespace = self.engine.profiles.namespace_for(session_id)
            self.engine.profiles.bind_identity(speaker_id, participant.name, participant.email, namespace)
            participant.voice_profile_id = speaker_id
            return copy.deepcopy(participant)

    def _claim(self, session_id: str) -> SessionHandle:
        handle = self.store.get(session_id)
        if handle is None or handle.closing:
            raise SessionNotFoundError(f"Session {session_id} not found", session_id)
        handle.closing = True
        return handle

    async def _stop_worker(self, handle: SessionHandle) -> None:
        handle.queue.put_nowait(_STOP)
        if handle.worker is not None:
            await handle.worker

    async def _release(self, session_id: str) -> None:
        await self.store.remove(session_id)
        self.engine.close_session(session_id)
        profiles = self.engine.profiles
        if profiles.scope == "session":
            profiles.clear(profiles.namespace_for(session_id))

    async def _run_worker(self, handle: SessionHandle) -> None:
        session_id = handle.session.id
        while True:
            chunk = await handle.queue.get()
            try:
                if chunk is _STOP:
                    return
                await self._process_chunk(handle, chunk)
            except Exception:
                logger.exception("Chunk processing failed session=%s", session_id)
            finally:
                handle.queue.task_done()

    async def _process_chunk(self, handle: SessionHandle, chunk: AudioChunk) -> None:
        session = handle.session
        if not session.metadata.recording_enabled:
            logger.debug("Recording disabled for %s, chunk %s discarded", session.id, chunk.sequence)
            return

        segments = await self.engine.transcribe(session.id, chunk)
        if not segments:
            return

        async with handle.lock:
            known = {segment.id for segment in session.transcript}
            fresh = [segment for segment in segments if segment.id not in known]
            if not fresh:
                logger.debug("Chunk %s already merged for %s", chunk.sequence, session.id)
                return
            context = list(session.transcript)
            session.transcript.extend(fresh)

        analysis = await self.analyzer.analyze(
            fresh,
            session.id,
            context=context,
            enabled=session.metadata.ai_processing_enabled,
        )
        async with handle.lock:
            self._merge(session, analysis)

    @staticmethod
    def _merge(session: MeetingSession, analysis: AnalysisResult) -> None:
        session.action_items = prioritize_action_items(session.action_items + analysis.action_items)
        session.decisions = prioritize_decisions(session.decisions + analysis.decisions)
        session.summary = analysis.summary


def build_profile_store(config: Config) -> VoiceProfileStore:
    vp = config.voice_profiles
    return VoiceProfileStore(
        scope=vp.scope,
        pitch_radius=vp.pitch_radius,
        tone_radius=vp.tone_radius,
        pace_radius=vp.pace_radius,
        initial_confidence=vp.initial_confidence,
    )


def build_orchestrator(
    config: Config,
    recognizer: Optional[Recognizer] = None,
    profiles: Optional[VoiceProfileStore] = None,
) -> SessionOrchestrator:
    """Compose the pipeline from configuration."""
    vp = config.voice_profiles
    profiles = profiles or build_profile_store(config)

    tc = config.transcription
    if recognizer is None:
        if tc.recognizer == "mock":
            recognizer = MockRecognizer()
        elif tc.recognizer == "whisper":
            recognizer = WhisperRecognizer(
                model_name=tc.whisper_model, device=tc.device, compute_type=tc.compute_type
            )
        else:
            raise ValueError(f"Unknown recognizer: {tc.recognizer}")

    dc = config.diarization
    if dc.enabled:
        diarizer = EnergyDiarizer(
            frame_ms=dc.frame_ms,
            silence_threshold=dc.silence_threshold,
            min_turn_ms=dc.min_turn_ms,
            max_gap_ms=dc.max_gap_ms,
            radius=(vp.pitch_radius, vp.tone_radius, vp.pace_radius),
        )
    else:
        diarizer = SingleSpeakerDiarizer()

    engine = TranscriptionEngine(
        recognizer=recognizer,
        profiles=profiles,
        diarizer=diarizer,
        front_end=PcmFrontEnd(noise_floor=tc.noise_floor),
        language_detector=FixedLanguageDetector(tc.language),
        max_attempts=tc.max_recognition_attempts,
    )
    ac = config.analysis
    analyzer = ContentAnalyzer(
        summarizer=Summarizer(
            max_highlights=ac.max_highlights,
            max_topics=ac.max_topics,
            min_topic_length=ac.min_topic_length,
        )
    )
    return SessionOrchestrator(engine=engine, analyzer=analyzer)
