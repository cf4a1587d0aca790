"""Extraction of action items, decisions and summaries from transcripts."""

from __future__ import annotations

import asyncio
import calendar
import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, TypeVar

from .errors import ExtractionFailure, SummarizationFailure
from .models import (
    ActionItem,
    Decision,
    DecisionCategory,
    ImpactLevel,
    MeetingSummary,
    Participant,
    ParticipationStats,
    Priority,
    TranscriptSegment,
)
from .text_utils import STOP_WORDS, average_sentiment, compile_terms, count_matches, tokenize

logger = logging.getLogger("meetsense")

T = TypeVar("T")

ACTION_TERMS = compile_terms(
    ["should", "need to", "needs to", "must", "have to", "has to", "will",
     "going to", "task", "action item", "todo", "to-do"]
)
DECISION_TERMS = compile_terms(
    ["decided", "decide", "choose", "chose", "go with", "going with", "implement",
     "agreed", "settled on", "select", "selected", "pick", "picked"]
)
RISK_TERMS = compile_terms(
    ["concern", "concerns", "issue", "issues", "problem", "problems", "risk", "risks",
     "blocker", "blockers", "blocked", "challenge", "challenges", "worried"]
)
NEXT_STEP_TERMS = compile_terms(
    ["next", "follow up", "follow-up", "action", "todo", "will do", "should"]
)
CRITICAL_TERMS = compile_terms(
    ["urgent", "urgently", "asap", "immediately", "critical", "emergency", "important"]
)
HIGH_TERMS = compile_terms(["soon", "quickly", "priority", "must"])

CATEGORY_TERMS = (
    (DecisionCategory.TECHNICAL, compile_terms(
        ["api", "database", "postgres", "postgresql", "react", "framework", "architecture",
         "code", "migrate", "migration", "deploy", "server", "infrastructure", "library",
         "stack", "frontend", "backend", "cloud"])),
    (DecisionCategory.FINANCIAL, compile_terms(
        ["budget", "cost", "costs", "price", "pricing", "revenue", "spend", "spending",
         "invoice", "funding", "expense", "expenses"])),
    (DecisionCategory.PERSONNEL, compile_terms(
        ["hire", "hiring", "recruit", "staff", "role", "promotion", "promote", "onboard",
         "onboarding", "headcount", "contractor"])),
    (DecisionCategory.STRATEGIC, compile_terms(
        ["strategy", "strategic", "roadmap", "market", "vision", "partnership",
         "long-term", "expansion", "goal", "goals", "quarter"])),
)

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_ASSIGNEE_RE = re.compile(
    r"^\s*(?P<name>[A-Z][a-zA-Z]+)\s+(?:should|will|must|needs? to|has to|have to|"
    r"is going to|can you|could)\b"
)
_ASSIGNED_TO_RE = re.compile(r"\b(?:assign(?:ed)? (?:it |this )?to|owned by|owner is)\s+(?P<name>[A-Z][a-zA-Z]+)")
_NOT_NAMES = frozenset(
    ["We", "You", "They", "The", "This", "That", "It", "Someone", "Everyone", "Somebody",
     "Everybody", "Nobody", "He", "She", "Our", "Their", "Your", "Next", "Then", "So"]
)
_WEEKDAYS = {name.lower(): index for index, name in enumerate(calendar.day_name)}
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b", re.IGNORECASE)
_IN_DAYS_RE = re.compile(r"\b(?:in|within) (\d{1,3}) (day|days|week|weeks)\b", re.IGNORECASE)

UNASSIGNED = "unassigned"


@dataclass
class ExtractionResult:
    action_items: List[ActionItem] = field(default_factory=list)
    decisions: List[Decision] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)


@dataclass
class AnalysisResult:
    action_items: List[ActionItem]
    decisions: List[Decision]
    summary: MeetingSummary
    risks: List[str]
    next_steps: List[str]

    @classmethod
    def empty(cls) -> "AnalysisResult":
        return cls(action_items=[], decisions=[], summary=MeetingSummary(), risks=[], next_steps=[])


class Extractor(Protocol):
    async def extract(self, segment: TranscriptSegment) -> ExtractionResult:
        ...


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text.strip()) if s.strip()]


def _description(sentence: str) -> str:
    return sentence.strip().rstrip(".!?;,").strip()


def classify_urgency(text: str) -> Priority:
    if count_matches(text, CRITICAL_TERMS):
        return Priority.CRITICAL
    if count_matches(text, HIGH_TERMS):
        return Priority.HIGH
    return Priority.MEDIUM


def classify_category(text: str) -> DecisionCategory:
    best = DecisionCategory.OPERATIONAL
    best_hits = 0
    for category, terms in CATEGORY_TERMS:
        hits = count_matches(text, terms)
        if hits > best_hits:
            best, best_hits = category, hits
    return best


def detect_risks(text: str) -> List[str]:
    return [_description(s) for s in split_sentences(text) if count_matches(s, RISK_TERMS)]


def detect_next_steps(text: str) -> List[str]:
    return [_description(s) for s in split_sentences(text) if count_matches(s, NEXT_STEP_TERMS)]


def resolve_due_date(text: str, spoken_at: datetime, priority: Priority) -> Optional[datetime]:
    """Parse a relative deadline ("by Friday", "next week") against the utterance time."""
    lowered = text.lower()
    base = spoken_at.replace(hour=17, minute=0, second=0, microsecond=0)
    if re.search(r"\b(today|tonight|eod|end of (?:the )?day)\b", lowered):
        return base
    if re.search(r"\btomorrow\b", lowered):
        return base + timedelta(days=1)
    if re.search(r"\bend of (?:the |this )?week\b", lowered):
        return base + timedelta(days=(4 - base.weekday()) % 7)
    if re.search(r"\bend of (?:the |this )?month\b", lowered):
        last_day = calendar.monthrange(base.year, base.month)[1]
        return base.replace(day=last_day)
    if re.search(r"\bnext week\b", lowered):
        return base + timedelta(days=7)
    match = _IN_DAYS_RE.search(lowered)
    if match:
        amount = int(match.group(1))
        days = amount * 7 if match.group(2).startswith("week") else amount
        return base + timedelta(days=days)
    match = _WEEKDAY_RE.search(lowered)
    if match:
        target = _WEEKDAYS[match.group(1).lower()]
        ahead = (target - base.weekday()) % 7 or 7
        return base + timedelta(days=ahead)
    if priority is Priority.CRITICAL:
        return spoken_at + timedelta(days=1)
    return None


def resolve_assignee(sentence: str, speaker_id: str) -> str:
    match = _ASSIGNED_TO_RE.search(sentence)
    if match and match.group("name") not in _NOT_NAMES:
        return match.group("name")
    if re.match(r"^\s*I(?:'ll|'m)?\b", sentence):
        return speaker_id
    match = _ASSIGNEE_RE.match(sentence)
    if match and match.group("name") not in _NOT_NAMES and match.group("name") != "I":
        return match.group("name")
    return UNASSIGNED


def _confidence(hits: int, segment_confidence: float) -> float:
    return round(min(1.0, 0.5 + 0.15 * hits) * min(max(segment_confidence, 0.0), 1.0), 3)


class KeywordExtractor:
    """Vocabulary-driven detectors for action items, decisions, risks and next steps.

    Matching is word-boundary and case-insensitive on each sentence of a
    segment. Negated statements ("we do not have a blocker") still match.
    """

    async def extract(self, segment: TranscriptSegment) -> ExtractionResult:
        result = ExtractionResult()
        for sentence in split_sentences(segment.text):
            description = _description(sentence)
            if not description:
                continue

            decision_hits = count_matches(sentence, DECISION_TERMS)
            if decision_hits:
                result.decisions.append(
                    Decision(
                        id=f"decision_{segment.id}_{len(result.decisions)}",
                        description=description,
                        participants=[segment.speaker_id] if segment.speaker_id else [],
                        confidence=_confidence(decision_hits, segment.confidence),
                        timestamp=segment.timestamp,
                        impact=ImpactLevel(classify_urgency(sentence).value),
                        category=classify_category(sentence),
                        extracted_from=segment.id,
                    )
                )

            action_hits = count_matches(sentence, ACTION_TERMS)
            if action_hits:
                priority = classify_urgency(sentence)
                result.action_items.append(
                    ActionItem(
                        id=f"action_{segment.id}_{len(result.action_items)}",
                        description=description,
                        assignee=resolve_assignee(sentence, segment.speaker_id),
                        priority=priority,
                        due_date=resolve_due_date(sentence, segment.timestamp, priority),
                        confidence=_confidence(action_hits, segment.confidence),
                        extracted_from=segment.id,
                    )
                )

            if count_matches(sentence, RISK_TERMS):
                result.risks.append(description)
            if count_matches(sentence, NEXT_STEP_TERMS):
                result.next_steps.append(description)

        decision_ids = [d.id for d in result.decisions]
        for item in result.action_items:
            item.related_decisions = list(decision_ids)
        return result


def dedupe_by_text(items: Iterable[T], key: Callable[[T], str]) -> List[T]:
    """Keep the first item per case-insensitive text."""
    seen = set()
    unique: List[T] = []
    for item in items:
        marker = " ".join(key(item).lower().split())
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
    return unique


def prioritize_action_items(items: Iterable[ActionItem]) -> List[ActionItem]:
    unique = dedupe_by_text(items, lambda i: i.description)
    return sorted(unique, key=lambda i: i.priority.weight, reverse=True)


def prioritize_decisions(decisions: Iterable[Decision]) -> List[Decision]:
    unique = dedupe_by_text(decisions, lambda d: d.description)
    return sorted(unique, key=lambda d: d.impact.weight, reverse=True)


def participation_stats(segments: Sequence[TranscriptSegment]) -> ParticipationStats:
    speaking: Dict[str, int] = {}
    counts: Dict[str, int] = {}
    for segment in segments:
        speaking[segment.speaker_id] = speaking.get(segment.speaker_id, 0) + len(segment.text)
        counts[segment.speaker_id] = counts.get(segment.speaker_id, 0) + 1
    engagement = {
        speaker: round((speaking[speaker] + counts[speaker] * 10) / 100.0, 4)
        for speaker in speaking
    }
    return ParticipationStats(speaking_time=speaking, interaction_count=counts, engagement_level=engagement)


def apply_engagement(participants: Iterable[Participant], summary: Optional[MeetingSummary]) -> None:
    """Copy per-speaker engagement onto participants linked to a voice profile."""
    if summary is None:
        return
    levels = summary.participation_stats.engagement_level
    for participant in participants:
        speaker = participant.voice_profile_id or participant.id
        if speaker in levels:
            participant.engagement_score = levels[speaker]


class Summarizer:
    """Deterministic summary of a whole transcript."""

    def __init__(self, max_highlights: int = 5, max_topics: int = 5, min_topic_length: int = 4) -> None:
        self.max_highlights = max_highlights
        self.max_topics = max_topics
        self.min_topic_length = min_topic_length

    def _terms(self, text: str) -> List[str]:
        return [
            word for word in tokenize(text)
            if len(word) >= self.min_topic_length and word not in STOP_WORDS and not word.isdigit()
        ]

    def summarize(self, segments: Sequence[TranscriptSegment]) -> MeetingSummary:
        if not segments:
            return MeetingSummary()

        per_segment = [self._terms(segment.text) for segment in segments]
        frequency: Counter = Counter()
        first_seen: Dict[str, int] = {}
        for terms in per_segment:
            for term in terms:
                frequency[term] += 1
                first_seen.setdefault(term, len(first_seen))

        ranked_terms = sorted(frequency, key=lambda t: (-frequency[t], first_seen[t]))
        main_topics = ranked_terms[: self.max_topics]

        scored = []
        for index, terms in enumerate(per_segment):
            if not terms:
                continue
            score = sum(frequency[t] for t in terms) / math.sqrt(len(terms))
            scored.append((score, index))
        scored.sort(key=lambda pair: (-pair[0], pair[1]))
        chosen = sorted(index for _, index in scored[: self.max_highlights])
        key_highlights = dedupe_by_text(
            (segments[index].text for index in chosen), lambda text: text
        )

        full_text = " ".join(segment.text for segment in segments)
        risks = dedupe_by_text(detect_risks(full_text), lambda text: text)
        next_steps = dedupe_by_text(detect_next_steps(full_text), lambda text: text)

        sentiments = [s.sentiment for s in segments if s.sentiment is not None]
        return MeetingSummary(
            key_highlights=key_highlights,
            main_topics=main_topics,
            next_steps=next_steps,
            risks=risks,
            overall_sentiment=average_sentiment(sentiments),
            participation_stats=participation_stats(segments),
        )


def merge_transcripts(
    context: Sequence[TranscriptSegment],
    segments: Sequence[TranscriptSegment],
) -> List[TranscriptSegment]:
    merged: List[TranscriptSegment] = []
    seen = set()
    for segment in list(context) + list(segments):
        if segment.id in seen:
            continue
        seen.add(segment.id)
        merged.append(segment)
    return sorted(merged, key=lambda s: s.timestamp)


class ContentAnalyzer:
    """Runs per-segment extraction and whole-transcript summarisation.

    ``analyze`` extracts candidates from ``segments`` only; the summary is
    computed over ``context`` plus ``segments`` so incremental calls and a
    single final call over the full transcript agree. Failures degrade to
    empty results and are logged.
    """

    def __init__(
        self,
        extractor: Optional[Extractor] = None,
        summarizer: Optional[Summarizer] = None,
    ) -> None:
        self.extractor = extractor or KeywordExtractor()
        self.summarizer = summarizer or Summarizer()

    async def analyze(
        self,
        segments: Sequence[TranscriptSegment],
        session_id: str,
        context: Sequence[TranscriptSegment] = (),
        enabled: bool = True,
    ) -> AnalysisResult:
        if not enabled:
            return AnalysisResult.empty()

        batch = list(segments)
        extracted = await asyncio.gather(
            *(self._extract_one(segment, session_id) for segment in batch)
        )

        action_items: List[ActionItem] = []
        decisions: List[Decision] = []
        risks: List[str] = []
        next_steps: List[str] = []
        for result in extracted:
            action_items.extend(result.action_items)
            decisions.extend(result.decisions)
            risks.extend(result.risks)
            next_steps.extend(result.next_steps)

        summary = self._summarize(merge_transcripts(context, batch), session_id)
        return AnalysisResult(
            action_items=prioritize_action_items(action_items),
            decisions=prioritize_decisions(decisions),
            summary=summary,
            risks=dedupe_by_text(risks, lambda text: text),
            next_steps=dedupe_by_text(next_steps, lambda text: text),
        )

    async def _extract_one(self, segment: TranscriptSegment, session_id: str) -> ExtractionResult:
        try:
            return await self.extractor.extract(segment)
        except Exception as exc:
            failure = ExtractionFailure(f"Extraction failed for segment {segment.id}", session_id)
            logger.warning("%s: %s", failure, exc, exc_info=exc)
            return ExtractionResult()

    def _summarize(self, segments: Sequence[TranscriptSegment], session_id: str) -> MeetingSummary:
        try:
            return self.summarizer.summarize(segments)
        except Exception as exc:
            failure = SummarizationFailure(f"Summary failed for session {session_id}", session_id)
            logger.warning("%s: %s", failure, exc, exc_info=exc)
            return MeetingSummary()
