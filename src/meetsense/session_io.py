"""Meeting snapshot persistence."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import (
    ActionItem,
    AudioCharacteristics,
    Decision,
    DecisionCategory,
    ImpactLevel,
    IntegrationStatus,
    MeetingMetadata,
    MeetingPlatform,
    MeetingSnapshot,
    MeetingStatus,
    MeetingSummary,
    MeetingTemplate,
    Participant,
    ParticipationStats,
    Priority,
    PrivacyLevel,
    SentimentScore,
    TaskIntegration,
    TaskPlatform,
    TaskStatus,
    TranscriptSegment,
    VoiceProfile,
)


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Cannot serialise {type(value).__name__}")


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _sentiment(data: Optional[dict]) -> Optional[SentimentScore]:
    return SentimentScore(**data) if data else None


def snapshot_to_dict(snapshot: MeetingSnapshot) -> Dict[str, Any]:
    return json.loads(json.dumps(asdict(snapshot), default=_default))


def _segment(data: dict) -> TranscriptSegment:
    return TranscriptSegment(
        id=data["id"],
        speaker_id=data["speaker_id"],
        text=data["text"],
        timestamp=_dt(data["timestamp"]),
        confidence=data["confidence"],
        language=data["language"],
        sentiment=_sentiment(data.get("sentiment")),
        keywords=tuple(data.get("keywords") or ()),
    )


def _action_item(data: dict) -> ActionItem:
    return ActionItem(
        id=data["id"],
        description=data["description"],
        assignee=data["assignee"],
        priority=Priority(data["priority"]),
        confidence=data["confidence"],
        extracted_from=data["extracted_from"],
        status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
        due_date=_dt(data.get("due_date")),
        related_decisions=list(data.get("related_decisions") or []),
        integrations=[
            TaskIntegration(
                platform=TaskPlatform(entry["platform"]),
                status=IntegrationStatus(entry.get("status", IntegrationStatus.PENDING.value)),
                task_id=entry.get("task_id"),
                last_sync=_dt(entry.get("last_sync")),
            )
            for entry in data.get("integrations") or []
        ],
    )


def _decision(data: dict) -> Decision:
    return Decision(
        id=data["id"],
        description=data["description"],
        confidence=data["confidence"],
        timestamp=_dt(data["timestamp"]),
        impact=ImpactLevel(data["impact"]),
        category=DecisionCategory(data["category"]),
        extracted_from=data["extracted_from"],
        participants=list(data.get("participants") or []),
    )


def _summary(data: Optional[dict]) -> Optional[MeetingSummary]:
    if data is None:
        return None
    stats = data.get("participation_stats") or {}
    return MeetingSummary(
        key_highlights=list(data.get("key_highlights") or []),
        main_topics=list(data.get("main_topics") or []),
        next_steps=list(data.get("next_steps") or []),
        risks=list(data.get("risks") or []),
        overall_sentiment=_sentiment(data.get("overall_sentiment")) or MeetingSummary().overall_sentiment,
        participation_stats=ParticipationStats(
            speaking_time=dict(stats.get("speaking_time") or {}),
            interaction_count=dict(stats.get("interaction_count") or {}),
            engagement_level=dict(stats.get("engagement_level") or {}),
        ),
    )


def snapshot_from_dict(data: Dict[str, Any]) -> MeetingSnapshot:
    meta = data.get("metadata") or {}
    template = meta.get("template")
    return MeetingSnapshot(
        id=data["id"],
        title=data["title"],
        start_time=_dt(data["start_time"]),
        end_time=_dt(data.get("end_time")),
        platform=MeetingPlatform(data["platform"]),
        status=MeetingStatus(data["status"]),
        metadata=MeetingMetadata(
            privacy_level=PrivacyLevel(meta.get("privacy_level", PrivacyLevel.INTERNAL.value)),
            template=MeetingTemplate(template) if template else None,
            custom_vocabulary=tuple(meta.get("custom_vocabulary") or ()),
            recording_enabled=meta.get("recording_enabled", True),
            ai_processing_enabled=meta.get("ai_processing_enabled", True),
        ),
        participants=tuple(Participant(**p) for p in data.get("participants") or []),
        transcript=tuple(_segment(s) for s in data.get("transcript") or []),
        action_items=tuple(_action_item(a) for a in data.get("action_items") or []),
        decisions=tuple(_decision(d) for d in data.get("decisions") or []),
        summary=_summary(data.get("summary")),
    )


def save_snapshot(path: str, snapshot: MeetingSnapshot) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(snapshot_to_dict(snapshot), handle, indent=2)


def load_snapshot(path: str) -> MeetingSnapshot:
    with open(path, "r", encoding="utf-8") as handle:
        return snapshot_from_dict(json.load(handle))


def save_profiles(path: str, profiles: List[VoiceProfile]) -> None:
    payload = [asdict(profile) for profile in profiles]
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, default=_default)


def load_profiles(path: str) -> List[VoiceProfile]:
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    profiles = []
    for entry in payload:
        entry = dict(entry)
        entry["characteristics"] = AudioCharacteristics(**entry["characteristics"])
        entry["last_updated"] = _dt(entry["last_updated"])
        profiles.append(VoiceProfile(**entry))
    return profiles
