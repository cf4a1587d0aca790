"""Markdown meeting minutes rendering."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from .models import MeetingSnapshot, TranscriptSegment


def _yaml_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f"\"{escaped}\""


def _clean_text(value: str) -> str:
    return " ".join(value.split())


def _offset(start: datetime, at: datetime) -> float:
    return max(0.0, (at - start).total_seconds())


def _speaker_names(snapshot: MeetingSnapshot) -> Dict[str, str]:
    names = {}
    for participant in snapshot.participants:
        if participant.voice_profile_id:
            names[participant.voice_profile_id] = participant.name
        names.setdefault(participant.id, participant.name)
    return names


def _build_timeline_lines(
    segments: List[TranscriptSegment],
    start: datetime,
    names: Optional[Dict[str, str]] = None,
) -> List[str]:
    names = names or {}
    timeline = []
    for seg in segments:
        seconds = _offset(start, seg.timestamp)
        speaker = _clean_text(names.get(seg.speaker_id, seg.speaker_id))
        timeline.append(
            {
                "time": seconds,
                "line": f"[{seconds:0>8.2f}]"
                f"{' ' + speaker + ':' if speaker else ''} {_clean_text(seg.text)}",
            }
        )
    return [item["line"] for item in sorted(timeline, key=lambda x: x["time"])]


def _bullets(items: List[str], empty: str = "None recorded.") -> List[str]:
    if not items:
        return [f"_{empty}_"]
    return [f"- {_clean_text(item)}" for item in items]


def render_minutes(snapshot: MeetingSnapshot, debug_log: Optional[str] = None) -> str:
    names = _speaker_names(snapshot)
    summary = snapshot.summary
    duration = None
    if snapshot.end_time is not None:
        duration = int(_offset(snapshot.start_time, snapshot.end_time))

    lines: List[str] = []
    lines.append("---")
    lines.append("schema: 1")
    lines.append(f"title: {_yaml_quote(snapshot.title)}")
    lines.append(f"date: {_yaml_quote(snapshot.start_time.date().isoformat())}")
    lines.append(f"session_id: {_yaml_quote(snapshot.id)}")
    lines.append(f"platform: {_yaml_quote(snapshot.platform.value)}")
    lines.append(f"status: {_yaml_quote(snapshot.status.value)}")
    lines.append(f"started_at: {_yaml_quote(snapshot.start_time.isoformat())}")
    if snapshot.end_time is not None:
        lines.append(f"ended_at: {_yaml_quote(snapshot.end_time.isoformat())}")
    if duration is not None:
        lines.append(f"duration_seconds: {duration}")
    if snapshot.metadata.template is not None:
        lines.append(f"template: {_yaml_quote(snapshot.metadata.template.value)}")
    lines.append(f"privacy: {_yaml_quote(snapshot.metadata.privacy_level.value)}")
    if snapshot.participants:
        lines.append("participants:")
        for participant in snapshot.participants:
            lines.append(f"  - {_yaml_quote(participant.name)}")
    if summary and summary.main_topics:
        lines.append("topics:")
        for topic in summary.main_topics:
            lines.append(f"  - {_yaml_quote(topic)}")
    if summary:
        lines.append(f"sentiment: {_yaml_quote(summary.overall_sentiment.overall)}")
    lines.append("---")
    lines.append("")
    lines.append(f"# {_clean_text(snapshot.title)}")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.extend(_bullets(summary.key_highlights if summary else []))
    lines.append("")

    lines.append("## Action Items")
    lines.append("")
    if snapshot.action_items:
        for item in snapshot.action_items:
            owner = _clean_text(names.get(item.assignee, item.assignee))
            line = f"- [ ] {_clean_text(item.description)} ({owner}, {item.priority.value}"
            if item.due_date is not None:
                line += f", due {item.due_date.date().isoformat()}"
            lines.append(line + ")")
    else:
        lines.extend(_bullets([]))
    lines.append("")

    lines.append("## Decisions")
    lines.append("")
    lines.extend(
        _bullets(
            [
                f"{d.description} [{d.category.value}, {d.impact.value} impact]"
                for d in snapshot.decisions
            ]
        )
    )
    lines.append("")

    lines.append("## Risks")
    lines.append("")
    lines.extend(_bullets(summary.risks if summary else []))
    lines.append("")

    lines.append("## Next Steps")
    lines.append("")
    lines.extend(_bullets(summary.next_steps if summary else []))
    lines.append("")

    if summary and summary.participation_stats.interaction_count:
        stats = summary.participation_stats
        lines.append("## Participation")
        lines.append("")
        for speaker, count in sorted(stats.interaction_count.items(), key=lambda kv: -kv[1]):
            label = _clean_text(names.get(speaker, speaker))
            engagement = stats.engagement_level.get(speaker, 0.0)
            lines.append(f"- {label}: {count} turns, engagement {engagement:.2f}")
        lines.append("")

    lines.append("## Transcript")
    lines.append("")
    lines.extend(_build_timeline_lines(list(snapshot.transcript), snapshot.start_time, names))
    lines.append("")
    if debug_log:
        lines.append("## Debug Log")
        lines.append("")
        lines.append("```text")
        lines.extend(debug_log.splitlines())
        lines.append("```")
        lines.append("")
    return "\n".join(lines)
