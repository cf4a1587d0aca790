from datetime import datetime, timedelta, timezone

import pytest

from conftest import ScriptedRecognizer, chunk, silence
from meetsense.errors import UnknownPlatformError
from meetsense.integrations import (
    ConnectorRegistry,
    TaskManagerRegistry,
    build_task,
    create_tasks,
    follow_up_event,
    map_task_status,
    reminder_events,
    stream_meeting,
    sync_task_status,
)
from meetsense.models import (
    ActionItem,
    IntegrationStatus,
    MeetingConfig,
    MeetingPlatform,
    MeetingStatus,
    Participant,
    Priority,
    TaskIntegration,
    TaskPlatform,
    TaskStatus,
)

DUE = datetime(2026, 3, 6, 17, 0, tzinfo=timezone.utc)


class FakeConnector:
    def __init__(self, chunks, fail_after=None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.events = []

    async def connect(self, meeting_ref):
        self.events.append(("connect", meeting_ref))

    async def get_audio_stream(self, meeting_ref):
        for index, data in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError("stream dropped")
            yield data

    async def get_participants(self, meeting_ref):
        return [Participant(id="zoom_7", name="Grace", email="grace@example.com")]

    async def disconnect(self, meeting_ref):
        self.events.append(("disconnect", meeting_ref))


class FakeTaskManager:
    def __init__(self, status="todo", fail=False):
        self.created = []
        self.status = status
        self.fail = fail

    async def create_task(self, task):
        if self.fail:
            raise RuntimeError("quota exceeded")
        self.created.append(task)
        return f"task_{len(self.created)}"

    async def get_task_status(self, task_id):
        return self.status

    async def update_task(self, task_id, updates):
        pass


def _item(priority=Priority.HIGH, due=DUE, platforms=(TaskPlatform.JIRA,)):
    return ActionItem(
        id="action_seg_1_0",
        description="Ship the onboarding flow",
        assignee="Maria",
        priority=priority,
        confidence=0.8,
        extracted_from="seg_1",
        due_date=due,
        integrations=[TaskIntegration(platform=p) for p in platforms],
    )


def test_registry_lookup_and_unknown_platform():
    registry = ConnectorRegistry()
    connector = FakeConnector([])
    registry.register(MeetingPlatform.ZOOM, connector)
    assert registry.get(MeetingPlatform.ZOOM) is connector
    assert MeetingPlatform.ZOOM in registry
    registry.unregister(MeetingPlatform.ZOOM)
    assert MeetingPlatform.ZOOM not in registry
    with pytest.raises(UnknownPlatformError):
        registry.get(MeetingPlatform.WEBEX)
    with pytest.raises(LookupError):
        TaskManagerRegistry().get(TaskPlatform.ASANA)


@pytest.mark.asyncio
async def test_stream_meeting_runs_full_session(orchestrator_factory):
    orchestrator, _ = orchestrator_factory(
        ScriptedRecognizer(["Grace will send the agenda.", "Sounds good to me."])
    )
    connector = FakeConnector([silence(), b"", silence()])
    registry = ConnectorRegistry()
    registry.register(MeetingPlatform.ZOOM, connector)
    host = Participant(id="p1", name="Host", email="host@example.com")

    snapshot = await stream_meeting(
        orchestrator, registry, MeetingConfig(title="Weekly", participants=[host]), "zoom-123"
    )

    assert snapshot.status is MeetingStatus.COMPLETED
    assert [p.name for p in snapshot.participants] == ["Host", "Grace"]
    assert len(snapshot.transcript) == 2
    assert snapshot.action_items[0].assignee == "Grace"
    assert connector.events == [("connect", "zoom-123"), ("disconnect", "zoom-123")]


@pytest.mark.asyncio
async def test_stream_failure_cancels_session(orchestrator_factory):
    orchestrator, _ = orchestrator_factory(ScriptedRecognizer(["Partial meeting."]))
    connector = FakeConnector([silence(), silence()], fail_after=1)
    registry = ConnectorRegistry()
    registry.register(MeetingPlatform.TEAMS, connector)

    with pytest.raises(ConnectionError):
        await stream_meeting(
            orchestrator,
            registry,
            MeetingConfig(title="Flaky", platform=MeetingPlatform.TEAMS),
            "teams-1",
        )
    assert orchestrator.active_sessions() == []
    assert connector.events[-1] == ("disconnect", "teams-1")


def test_build_task_maps_priority_and_metadata():
    task = build_task(_item(priority=Priority.CRITICAL), "session_abc")
    assert task.priority == "urgent"
    assert task.title == "Ship the onboarding flow"
    assert task.tags == ["meetsense", "session_abc"]
    assert task.metadata["action_item_id"] == "action_seg_1_0"
    assert build_task(_item(priority=Priority.LOW), "s").priority == "low"


def test_map_task_status():
    assert map_task_status("Done") is TaskStatus.COMPLETED
    assert map_task_status("in_progress") is TaskStatus.IN_PROGRESS
    assert map_task_status("blocked") is TaskStatus.BLOCKED
    assert map_task_status("something odd") is TaskStatus.PENDING


@pytest.mark.asyncio
async def test_create_and_sync_tasks():
    jira = FakeTaskManager(status="done")
    registry = TaskManagerRegistry()
    registry.register(TaskPlatform.JIRA, jira)
    item = _item()

    assert await create_tasks(registry, [item], "session_abc") == 1
    integration = item.integrations[0]
    assert integration.status is IntegrationStatus.CONNECTED
    assert integration.task_id == "task_1"
    assert integration.last_sync is not None

    assert await create_tasks(registry, [item], "session_abc") == 0
    await sync_task_status(registry, [item])
    assert item.status is TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_platform_does_not_stop_others():
    registry = TaskManagerRegistry()
    registry.register(TaskPlatform.JIRA, FakeTaskManager(fail=True))
    registry.register(TaskPlatform.TRELLO, FakeTaskManager())
    item = _item(platforms=(TaskPlatform.JIRA, TaskPlatform.TRELLO, TaskPlatform.NOTION))

    assert await create_tasks(registry, [item], "s") == 1
    statuses = [i.status for i in item.integrations]
    assert statuses == [IntegrationStatus.FAILED, IntegrationStatus.CONNECTED, IntegrationStatus.FAILED]


@pytest.mark.asyncio
async def test_calendar_events(orchestrator_factory):
    orchestrator, _ = orchestrator_factory(
        ScriptedRecognizer(["Maria will ship the onboarding flow by Friday. Next we follow up with sales."])
    )
    grace = Participant(id="p1", name="Grace", email="grace@example.com")
    session_id = await orchestrator.start_meeting(MeetingConfig(title="Launch", participants=[grace]))
    await orchestrator.ingest_audio(session_id, chunk())
    snapshot = await orchestrator.end_meeting(session_id)

    reminders = reminder_events(snapshot)
    dated = [i for i in snapshot.action_items if i.due_date is not None]
    assert len(reminders) == len(dated) >= 1
    assert reminders[0].start_time == dated[0].due_date - timedelta(days=1)
    assert reminders[0].duration_minutes == 15
    assert reminders[0].end_time == reminders[0].start_time + timedelta(minutes=15)

    when = datetime(2026, 3, 9, 10, 0, tzinfo=timezone.utc)
    follow_up = follow_up_event(snapshot, when)
    assert follow_up.title == "Follow-up: Launch"
    assert follow_up.attendees == ["grace@example.com"]
    assert "- Next we follow up with sales" in follow_up.description
