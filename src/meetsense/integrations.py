"""Boundaries to meeting platforms, task managers and calendars.

Vendor adapters implement one protocol per concern and are registered
against the platform they serve. Nothing here talks to a remote API by
itself; callers plug in connectors and task managers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Generic, Iterable, List, Optional, Protocol, TypeVar

from .audio_utils import AudioChunk
from .errors import UnknownPlatformError
from .models import (
    ActionItem,
    IntegrationStatus,
    MeetingConfig,
    MeetingPlatform,
    MeetingSnapshot,
    Participant,
    Priority,
    TaskPlatform,
    TaskStatus,
)

logger = logging.getLogger("meetsense")

K = TypeVar("K")
V = TypeVar("V")

TASK_TAG = "meetsense"
REMINDER_MINUTES = 15
FOLLOW_UP_MINUTES = 60

_PRIORITY_LABELS = {
    Priority.CRITICAL: "urgent",
    Priority.HIGH: "high",
    Priority.MEDIUM: "medium",
    Priority.LOW: "low",
}

_REMOTE_STATUSES = {
    "todo": TaskStatus.PENDING,
    "open": TaskStatus.PENDING,
    "in_progress": TaskStatus.IN_PROGRESS,
    "in progress": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.COMPLETED,
    "completed": TaskStatus.COMPLETED,
    "blocked": TaskStatus.BLOCKED,
    "cancelled": TaskStatus.CANCELLED,
    "canceled": TaskStatus.CANCELLED,
}


class PlatformConnector(Protocol):
    async def connect(self, meeting_ref: str) -> None:
        ...

    def get_audio_stream(self, meeting_ref: str) -> AsyncIterator[bytes]:
        ...

    async def get_participants(self, meeting_ref: str) -> List[Participant]:
        ...

    async def disconnect(self, meeting_ref: str) -> None:
        ...


@dataclass
class TaskData:
    title: str
    description: str
    assignee: str
    priority: str
    due_date: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, object] = field(default_factory=dict)


class TaskManager(Protocol):
    async def create_task(self, task: TaskData) -> str:
        ...

    async def get_task_status(self, task_id: str) -> str:
        ...

    async def update_task(self, task_id: str, updates: Dict[str, object]) -> None:
        ...


class _Registry(Generic[K, V]):
    kind = "adapter"

    def __init__(self) -> None:
        self._items: Dict[K, V] = {}

    def register(self, key: K, item: V) -> None:
        self._items[key] = item

    def unregister(self, key: K) -> None:
        self._items.pop(key, None)

    def get(self, key: K) -> V:
        try:
            return self._items[key]
        except KeyError:
            raise UnknownPlatformError(f"No {self.kind} registered for {getattr(key, 'value', key)}") from None

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def platforms(self) -> List[K]:
        return list(self._items)


class ConnectorRegistry(_Registry[MeetingPlatform, PlatformConnector]):
    kind = "meeting connector"


class TaskManagerRegistry(_Registry[TaskPlatform, TaskManager]):
    kind = "task manager"


def _merge_roster(configured: Iterable[Participant], roster: Iterable[Participant]) -> List[Participant]:
    merged = list(configured)
    known = {p.id for p in merged}
    for participant in roster:
        if participant.id not in known:
            merged.append(participant)
            known.add(participant.id)
    return merged


async def stream_meeting(
    orchestrator,
    registry: ConnectorRegistry,
    config: MeetingConfig,
    meeting_ref: str,
    sample_rate_hz: int = 16000,
    channels: int = 1,
) -> MeetingSnapshot:
    """Run one live meeting from a platform connector to a final snapshot.

    The roster reported by the platform is added to the configured
    participants. If the audio stream breaks, the session is cancelled and
    the error propagates.
    """
    connector = registry.get(config.platform)
    await connector.connect(meeting_ref)
    try:
        roster = await connector.get_participants(meeting_ref)
        config = replace(config, participants=_merge_roster(config.participants, roster))
        session_id = await orchestrator.start_meeting(config)
        logger.info("Streaming %s meeting %s into %s", config.platform.value, meeting_ref, session_id)
        try:
            sequence = 0
            async for data in connector.get_audio_stream(meeting_ref):
                if not data:
                    continue
                await orchestrator.ingest_audio(
                    session_id,
                    AudioChunk(
                        data=data,
                        sequence=sequence,
                        sample_rate_hz=sample_rate_hz,
                        channels=channels,
                    ),
                )
                sequence += 1
        except BaseException:
            logger.warning("Audio stream for %s broke, cancelling %s", meeting_ref, session_id)
            await orchestrator.cancel_meeting(session_id)
            raise
        return await orchestrator.end_meeting(session_id)
    finally:
        await connector.disconnect(meeting_ref)


def build_task(item: ActionItem, session_id: str) -> TaskData:
    return TaskData(
        title=item.description,
        description=f"Action item from meeting session: {session_id}",
        assignee=item.assignee,
        priority=_PRIORITY_LABELS[item.priority],
        due_date=item.due_date,
        tags=[TASK_TAG, session_id],
        metadata={
            "source_type": "meeting",
            "source_id": session_id,
            "action_item_id": item.id,
            "confidence": item.confidence,
        },
    )


def map_task_status(remote_status: str) -> TaskStatus:
    return _REMOTE_STATUSES.get((remote_status or "").strip().lower(), TaskStatus.PENDING)


async def create_tasks(
    registry: TaskManagerRegistry,
    items: Iterable[ActionItem],
    session_id: str,
) -> int:
    """Push action items to every task platform they are linked to.

    Returns the number of tasks created. A failing platform marks that
    integration FAILED and does not stop the others.
    """
    created = 0
    for item in items:
        for integration in item.integrations:
            if integration.status is IntegrationStatus.DISABLED or integration.task_id:
                continue
            try:
                manager = registry.get(integration.platform)
                integration.task_id = await manager.create_task(build_task(item, session_id))
            except Exception as exc:
                integration.status = IntegrationStatus.FAILED
                logger.warning(
                    "Task creation in %s failed for %s: %s", integration.platform.value, item.id, exc
                )
                continue
            integration.status = IntegrationStatus.CONNECTED
            integration.last_sync = datetime.now(timezone.utc)
            created += 1
    return created


async def sync_task_status(registry: TaskManagerRegistry, items: Iterable[ActionItem]) -> None:
    for item in items:
        for integration in item.integrations:
            if not integration.task_id or integration.status is not IntegrationStatus.CONNECTED:
                continue
            try:
                manager = registry.get(integration.platform)
                remote = await manager.get_task_status(integration.task_id)
            except Exception as exc:
                logger.warning("Task sync from %s failed for %s: %s", integration.platform.value, item.id, exc)
                continue
            item.status = map_task_status(remote)
            integration.last_sync = datetime.now(timezone.utc)


@dataclass
class CalendarEvent:
    title: str
    start_time: datetime
    duration_minutes: int
    attendees: List[str] = field(default_factory=list)
    description: str = ""

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)


def reminder_events(snapshot: MeetingSnapshot) -> List[CalendarEvent]:
    """One short reminder a day ahead of every dated action item."""
    events = []
    for item in snapshot.action_items:
        if item.due_date is None:
            continue
        events.append(
            CalendarEvent(
                title=f"Reminder: {item.description}",
                start_time=item.due_date - timedelta(days=1),
                duration_minutes=REMINDER_MINUTES,
                attendees=[item.assignee],
                description=(
                    "Action item reminder\n\n"
                    f"Task: {item.description}\n"
                    f"Due: {item.due_date.date().isoformat()}"
                ),
            )
        )
    return events


def follow_up_event(snapshot: MeetingSnapshot, when: datetime) -> CalendarEvent:
    agenda = list(snapshot.summary.next_steps) if snapshot.summary else []
    if not agenda:
        agenda = [item.description for item in snapshot.action_items]
    attendees = [p.email for p in snapshot.participants if p.email]
    lines = ["Follow-up meeting", "", "Agenda:"]
    lines.extend(f"- {entry}" for entry in agenda)
    return CalendarEvent(
        title=f"Follow-up: {snapshot.title}",
        start_time=when,
        duration_minutes=FOLLOW_UP_MINUTES,
        attendees=attendees,
        description="\n".join(lines),
    )
