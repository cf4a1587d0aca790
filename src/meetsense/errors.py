"""Error types raised by the meeting pipeline."""

from __future__ import annotations

from typing import Optional


class MeetingAssistantError(Exception):
    code = "meeting_error"

    def __init__(self, message: str, session_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class InvalidSessionError(MeetingAssistantError):
    """Audio was submitted to a session that is unknown or not in progress."""

    code = "invalid_session"


class SessionNotFoundError(MeetingAssistantError):
    """The session is not (or no longer) in the active table."""

    code = "session_not_found"


class TranscriptionFailure(MeetingAssistantError):
    code = "transcription_failure"


class ExtractionFailure(MeetingAssistantError):
    code = "extraction_failure"


class SummarizationFailure(MeetingAssistantError):
    code = "summarization_failure"


class UnknownPlatformError(MeetingAssistantError, LookupError):
    code = "unknown_platform"
