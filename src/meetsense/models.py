"""Data models for meetsense."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

CURRENT_USER = "current_user"


class MeetingPlatform(str, Enum):
    ZOOM = "zoom"
    TEAMS = "teams"
    GOOGLE_MEET = "google_meet"
    SLACK_HUDDLES = "slack_huddles"
    WEBEX = "webex"


class MeetingStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return _WEIGHTS[self.value]


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return _WEIGHTS[self.value]


_WEIGHTS = {"low": 1, "medium": 2, "high": 3, "critical": 4}


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class DecisionCategory(str, Enum):
    STRATEGIC = "strategic"
    OPERATIONAL = "operational"
    TECHNICAL = "technical"
    FINANCIAL = "financial"
    PERSONNEL = "personnel"


class TaskPlatform(str, Enum):
    ASANA = "asana"
    TRELLO = "trello"
    JIRA = "jira"
    MONDAY = "monday"
    NOTION = "notion"
    TODOIST = "todoist"


class IntegrationStatus(str, Enum):
    CONNECTED = "connected"
    PENDING = "pending"
    FAILED = "failed"
    DISABLED = "disabled"


class MeetingTemplate(str, Enum):
    STANDUP = "standup"
    PLANNING = "planning"
    RETROSPECTIVE = "retrospective"
    ONE_ON_ONE = "one_on_one"
    ALL_HANDS = "all_hands"
    CLIENT_MEETING = "client_meeting"
    BRAINSTORMING = "brainstorming"


class PrivacyLevel(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"


@dataclass(frozen=True)
class AudioCharacteristics:
    pitch: float
    tone: float
    pace: float
    language: str = "en-US"
    accent: Optional[str] = None

    def vector(self) -> Tuple[float, float, float]:
        return (self.pitch, self.tone, self.pace)


@dataclass
class VoiceProfile:
    speaker_id: str
    characteristics: AudioCharacteristics
    confidence: float
    last_updated: datetime
    name: Optional[str] = None
    email: Optional[str] = None
    observations: int = 1
    revision: int = 0


@dataclass(frozen=True)
class SentimentScore:
    positive: float
    negative: float
    neutral: float
    overall: str = "neutral"


NEUTRAL_SENTIMENT = SentimentScore(positive=0.5, negative=0.2, neutral=0.3, overall="neutral")


@dataclass
class Participant:
    id: str
    name: str
    email: str
    role: Optional[str] = None
    department: Optional[str] = None
    voice_profile_id: Optional[str] = None
    engagement_score: Optional[float] = None


@dataclass(frozen=True)
class TranscriptSegment:
    id: str
    speaker_id: str
    text: str
    timestamp: datetime
    confidence: float
    language: str
    sentiment: Optional[SentimentScore] = None
    keywords: Tuple[str, ...] = ()


@dataclass
class TaskIntegration:
    platform: TaskPlatform
    status: IntegrationStatus = IntegrationStatus.PENDING
    task_id: Optional[str] = None
    last_sync: Optional[datetime] = None


@dataclass
class ActionItem:
    id: str
    description: str
    assignee: str
    priority: Priority
    confidence: float
    extracted_from: str
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    related_decisions: List[str] = field(default_factory=list)
    integrations: List[TaskIntegration] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.description or not self.description.strip():
            raise ValueError("Action item description must not be empty.")
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)


@dataclass
class Decision:
    id: str
    description: str
    confidence: float
    timestamp: datetime
    impact: ImpactLevel
    category: DecisionCategory
    extracted_from: str
    participants: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)


@dataclass
class ParticipationStats:
    speaking_time: Dict[str, int] = field(default_factory=dict)
    interaction_count: Dict[str, int] = field(default_factory=dict)
    engagement_level: Dict[str, float] = field(default_factory=dict)


@dataclass
class MeetingSummary:
    key_highlights: List[str] = field(default_factory=list)
    main_topics: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    overall_sentiment: SentimentScore = NEUTRAL_SENTIMENT
    participation_stats: ParticipationStats = field(default_factory=ParticipationStats)


@dataclass(frozen=True)
class MeetingMetadata:
    privacy_level: PrivacyLevel = PrivacyLevel.INTERNAL
    template: Optional[MeetingTemplate] = None
    custom_vocabulary: Tuple[str, ...] = ()
    recording_enabled: bool = True
    ai_processing_enabled: bool = True


@dataclass
class MeetingConfig:
    title: str
    participants: List[Participant] = field(default_factory=list)
    platform: MeetingPlatform = MeetingPlatform.ZOOM
    template: Optional[MeetingTemplate] = None
    custom_vocabulary: List[str] = field(default_factory=list)
    privacy_level: PrivacyLevel = PrivacyLevel.INTERNAL
    recording_enabled: bool = True
    ai_processing_enabled: bool = True


@dataclass
class MeetingSession:
    id: str
    title: str
    start_time: datetime
    platform: MeetingPlatform
    metadata: MeetingMetadata
    status: MeetingStatus = MeetingStatus.SCHEDULED
    participants: List[Participant] = field(default_factory=list)
    transcript: List[TranscriptSegment] = field(default_factory=list)
    action_items: List[ActionItem] = field(default_factory=list)
    decisions: List[Decision] = field(default_factory=list)
    summary: Optional[MeetingSummary] = None
    end_time: Optional[datetime] = None


@dataclass(frozen=True)
class MeetingSnapshot:
    """Read-only copy of a session handed to callers."""

    id: str
    title: str
    start_time: datetime
    end_time: Optional[datetime]
    platform: MeetingPlatform
    status: MeetingStatus
    metadata: MeetingMetadata
    participants: Tuple[Participant, ...]
    transcript: Tuple[TranscriptSegment, ...]
    action_items: Tuple[ActionItem, ...]
    decisions: Tuple[Decision, ...]
    summary: Optional[MeetingSummary]
