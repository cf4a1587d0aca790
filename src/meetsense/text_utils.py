"""Text helpers shared by transcription and analysis."""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from .models import NEUTRAL_SENTIMENT, SentimentScore

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by is are was were be been
    have has had do does did will would could should this that these those
    it its we our you your they them their i me my he she his her there here
    what when where which who how not just also then than so very can about
    into from out over under again more most some such only own same too
    going need needs want think know really okay yeah well like get got
    """.split()
)

POSITIVE_WORDS = frozenset(
    ["good", "great", "excellent", "awesome", "perfect", "love", "like", "happy",
     "glad", "agree", "nice", "done", "success"]
)
NEGATIVE_WORDS = frozenset(
    ["bad", "terrible", "awful", "hate", "dislike", "problem", "issue", "concern",
     "blocked", "blocker", "late", "fail", "failed", "risk"]
)

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")


def clean_text(value: str) -> str:
    return " ".join(value.split())


def tokenize(text: str) -> List[str]:
    return _WORD_RE.findall(text.lower())


def score_sentiment(text: str) -> SentimentScore:
    words = tokenize(text)
    positive = sum(1 for word in words if word in POSITIVE_WORDS)
    negative = sum(1 for word in words if word in NEGATIVE_WORDS)
    total = positive + negative
    if total == 0:
        return NEUTRAL_SENTIMENT
    pos = positive / total
    neg = negative / total
    return SentimentScore(
        positive=pos,
        negative=neg,
        neutral=max(0.0, 1.0 - pos - neg),
        overall=_overall(pos, neg),
    )


def average_sentiment(scores: Sequence[SentimentScore]) -> SentimentScore:
    if not scores:
        return NEUTRAL_SENTIMENT
    count = len(scores)
    pos = round(sum(s.positive for s in scores) / count, 6)
    neg = round(sum(s.negative for s in scores) / count, 6)
    neu = round(max(0.0, 1.0 - pos - neg), 6)
    return SentimentScore(positive=pos, negative=neg, neutral=neu, overall=_overall(pos, neg))


def _overall(positive: float, negative: float) -> str:
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def extract_keywords(
    text: str,
    vocabulary: Iterable[str] = (),
    limit: int = 5,
) -> List[str]:
    """Vocabulary terms found in the text first, then content words in order."""
    lowered = text.lower()
    keywords: List[str] = []
    for term in vocabulary:
        term_lower = term.strip().lower()
        if term_lower and re.search(rf"\b{re.escape(term_lower)}\b", lowered):
            if term_lower not in keywords:
                keywords.append(term_lower)
    for word in tokenize(text):
        if len(keywords) >= limit:
            break
        if len(word) > 3 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords[:limit]


def count_matches(text: str, patterns: Sequence[re.Pattern]) -> int:
    return sum(1 for pattern in patterns if pattern.search(text))


def compile_terms(terms: Iterable[str]) -> List[re.Pattern]:
    return [re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE) for term in terms]
