"""Weak-area detection and study recommendations from review history.

This is a pure computation module with no I/O. Everything here is a view
recomputed from cards and ReviewLogEntry history; nothing is persisted.

Topics are whatever key the caller groups cards by. By default that is the
card's ``topic`` attribute (the owning book's title).
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any, Protocol

from backend.config import utcnow
from backend.srs.history import ReviewLogEntry, within_window
from backend.srs.sm2 import LearningState

logger = logging.getLogger(__name__)

# A topic is weak above this failure rate, or at this many failures
WEAK_FAILURE_RATE = 0.2
WEAK_MIN_FAILURES = 3

HIGH_SEVERITY_RATE = 0.5
MEDIUM_SEVERITY_RATE = 0.3

STRUGGLING_FAILURE_RATE = 0.3  # Raises a due card's priority
EXTRA_PRACTICE_FAILURE_RATE = 0.5  # Suggests a card that is not due yet

DEFAULT_WEAK_WINDOW_DAYS = 30
DEFAULT_RECOMMENDATION_WINDOW_DAYS = 7
DEFAULT_MAX_RECOMMENDATIONS = 30

SECONDS_PER_RECOMMENDED_CARD = 30
MINUTES_PER_PAGE = 2
MIN_READING_MINUTES = 5
MAX_PLAN_DURATION = timedelta(minutes=75)  # Three 25-minute sessions


class AnalyzedCard(Protocol):
    id: int
    state: LearningState
    due: datetime
    repetitions: int
    source_page: int | None


TopicKey = Callable[[Any], str | None]


def card_topic(card: Any) -> str | None:
    return getattr(card, "topic", None)


# --- Mastery ---


class MasteryLevel(Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"


def mastery_level(state: LearningState, repetitions: int) -> MasteryLevel:
    """Classify a card by how settled its memory is."""
    if state is LearningState.NEW:
        return MasteryLevel.NEW
    if state is not LearningState.REVIEW:
        return MasteryLevel.LEARNING
    if repetitions >= 6:
        return MasteryLevel.MASTERED
    if repetitions >= 3:
        return MasteryLevel.REVIEWING
    return MasteryLevel.LEARNING


def mastery_breakdown(cards: Iterable[AnalyzedCard]) -> dict[MasteryLevel, int]:
    counts = dict.fromkeys(MasteryLevel, 0)
    for card in cards:
        counts[mastery_level(card.state, card.repetitions)] += 1
    return counts


# --- Weak areas ---


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class WeakArea:
    """A topic with an elevated recent failure rate."""

    topic: str
    failure_rate: float
    average_response_time: float  # Seconds, 0.0 when no times were recorded
    review_count: int
    card_count: int  # Distinct cards reviewed in the window
    last_review_date: datetime | None

    @property
    def severity(self) -> Severity:
        if self.failure_rate >= HIGH_SEVERITY_RATE:
            return Severity.HIGH
        if self.failure_rate >= MEDIUM_SEVERITY_RATE:
            return Severity.MEDIUM
        return Severity.LOW


@dataclass
class _TopicPerformance:
    total: int = 0
    failures: int = 0
    response_times: list[float] = field(default_factory=list)
    card_ids: set[int] = field(default_factory=set)
    last_review: datetime | None = None


def weak_areas(
    entries: Iterable[ReviewLogEntry],
    cards: Iterable[AnalyzedCard],
    window_days: int = DEFAULT_WEAK_WINDOW_DAYS,
    now: datetime | None = None,
    topic_of: TopicKey = card_topic,
) -> list[WeakArea]:
    """Aggregate recent reviews per topic and return the weak ones.

    Args:
        entries: Review history.
        cards: Cards the entries refer to. Entries for unknown cards, or for
            cards without a topic, are ignored.
        window_days: Only reviews from the last ``window_days`` days count.
        now: Reference time (defaults to utcnow).
        topic_of: Maps a card to its topic key.

    Returns:
        Weak areas, highest failure rate first.
    """
    topics = {card.id: topic_of(card) for card in cards}
    performance: dict[str, _TopicPerformance] = defaultdict(_TopicPerformance)
    unknown = untopiced = 0

    for entry in within_window(entries, window_days, now=now):
        if entry.card_id not in topics:
            unknown += 1
            continue
        topic = topics[entry.card_id]
        if topic is None:
            untopiced += 1
            continue

        perf = performance[topic]
        perf.total += 1
        perf.card_ids.add(entry.card_id)
        if entry.quality.is_failure:
            perf.failures += 1
        if entry.response_time_seconds is not None:
            perf.response_times.append(entry.response_time_seconds)
        if perf.last_review is None or entry.reviewed_at > perf.last_review:
            perf.last_review = entry.reviewed_at

    if unknown:
        logger.warning("Ignored %d review(s) of unknown cards", unknown)
    if untopiced:
        logger.debug("Ignored %d review(s) of cards without a topic", untopiced)

    areas: list[WeakArea] = []
    for topic, perf in performance.items():
        failure_rate = perf.failures / perf.total
        if not (failure_rate > WEAK_FAILURE_RATE or perf.failures >= WEAK_MIN_FAILURES):
            continue
        average_time = (
            sum(perf.response_times) / len(perf.response_times) if perf.response_times else 0.0
        )
        areas.append(
            WeakArea(
                topic=topic,
                failure_rate=failure_rate,
                average_response_time=average_time,
                review_count=perf.total,
                card_count=len(perf.card_ids),
                last_review_date=perf.last_review,
            )
        )

    areas.sort(key=lambda a: (-a.failure_rate, a.topic))
    return areas


# --- Card recommendations ---


class ReviewPriority(IntEnum):
    OPTIONAL = 0  # Not due, but challenging
    NORMAL = 1  # Due today
    HIGH = 2  # Overdue, or due with recent struggles
    CRITICAL = 3  # Overdue with recent struggles


@dataclass(frozen=True)
class CardRecommendation:
    card_id: int
    priority: ReviewPriority
    reason: str
    failure_rate: float


def recommend_card(
    card: AnalyzedCard,
    entries: Iterable[ReviewLogEntry],
    now: datetime | None = None,
    window_days: int = DEFAULT_RECOMMENDATION_WINDOW_DAYS,
) -> CardRecommendation | None:
    """Recommend reviewing ``card``, or return None if it needs no attention.

    ``entries`` should be this card's reviews; the failure rate is taken
    over the last ``window_days`` days.
    """
    now = now or utcnow()
    is_due = card.due <= now
    is_overdue = card.due < now - timedelta(days=1)

    cutoff = now - timedelta(days=window_days)
    recent = [e for e in entries if e.reviewed_at > cutoff]
    failure_rate = sum(1 for e in recent if e.quality.is_failure) / len(recent) if recent else 0.0

    if is_overdue and failure_rate > STRUGGLING_FAILURE_RATE:
        priority, reason = ReviewPriority.CRITICAL, "Overdue with low retention"
    elif is_overdue:
        priority, reason = ReviewPriority.HIGH, "Overdue"
    elif is_due and failure_rate > STRUGGLING_FAILURE_RATE:
        priority, reason = ReviewPriority.HIGH, "Due today with recent struggles"
    elif is_due:
        priority, reason = ReviewPriority.NORMAL, "Scheduled for review today"
    elif failure_rate > EXTRA_PRACTICE_FAILURE_RATE:
        priority, reason = ReviewPriority.OPTIONAL, "Extra practice for challenging material"
    else:
        return None

    return CardRecommendation(
        card_id=card.id,
        priority=priority,
        reason=reason,
        failure_rate=failure_rate,
    )


def recommend_cards(
    cards: Iterable[AnalyzedCard],
    entries: Iterable[ReviewLogEntry],
    now: datetime | None = None,
    window_days: int = DEFAULT_RECOMMENDATION_WINDOW_DAYS,
    limit: int = DEFAULT_MAX_RECOMMENDATIONS,
) -> list[CardRecommendation]:
    """Recommendations for every card that warrants one, highest priority first."""
    now = now or utcnow()
    by_card: dict[int, list[ReviewLogEntry]] = defaultdict(list)
    for entry in entries:
        by_card[entry.card_id].append(entry)

    recommendations = [
        rec
        for card in cards
        if (rec := recommend_card(card, by_card.get(card.id, []), now, window_days)) is not None
    ]
    recommendations.sort(key=lambda r: r.priority, reverse=True)
    return recommendations[: max(0, limit)]


# --- Focus areas and reading suggestions ---


@dataclass(frozen=True)
class FocusArea:
    topic: str
    retention_rate: float
    reviews_needed: int


def focus_areas(areas: Sequence[WeakArea], limit: int = 5) -> list[FocusArea]:
    return [
        FocusArea(
            topic=area.topic,
            retention_rate=1.0 - area.failure_rate,
            reviews_needed=max(3, int(area.failure_rate * 10)),
        )
        for area in areas[:limit]
    ]


@dataclass(frozen=True)
class ReadingSuggestion:
    """Pages to re-read because the cards taken from them keep failing."""

    topic: str
    first_page: int
    last_page: int
    estimated_minutes: int
    failure_rate: float

    @property
    def page_range(self) -> str:
        return f"Pages {self.first_page}-{self.last_page}"


def reading_suggestions(
    areas: Sequence[WeakArea],
    cards: Iterable[AnalyzedCard],
    topic_of: TopicKey = card_topic,
    limit: int = 3,
) -> list[ReadingSuggestion]:
    """Suggest re-reading the pages behind the weakest topics.

    Topics whose cards carry no source page are left out.
    """
    pages: dict[str, list[int]] = defaultdict(list)
    for card in cards:
        topic = topic_of(card)
        if topic is not None and card.source_page is not None:
            pages[topic].append(card.source_page)

    suggestions = []
    for area in areas[:limit]:
        topic_pages = pages.get(area.topic)
        if not topic_pages:
            continue
        first, last = min(topic_pages), max(topic_pages)
        suggestions.append(
            ReadingSuggestion(
                topic=area.topic,
                first_page=first,
                last_page=last,
                estimated_minutes=max(MIN_READING_MINUTES, (last - first + 1) * MINUTES_PER_PAGE),
                failure_rate=area.failure_rate,
            )
        )
    return suggestions


# --- Daily plan ---


@dataclass(frozen=True)
class StudyPlan:
    generated_at: datetime
    recommendations: list[CardRecommendation]
    weak_areas: list[WeakArea]
    focus_areas: list[FocusArea]
    reading_suggestions: list[ReadingSuggestion]
    estimated_duration: timedelta

    @property
    def formatted_duration(self) -> str:
        minutes = int(self.estimated_duration.total_seconds() // 60)
        if minutes >= 60:
            return f"{minutes // 60}h {minutes % 60}m"
        return f"{minutes}m"


def build_study_plan(
    cards: Sequence[AnalyzedCard],
    entries: Sequence[ReviewLogEntry],
    now: datetime | None = None,
    topic_of: TopicKey = card_topic,
    weak_window_days: int = DEFAULT_WEAK_WINDOW_DAYS,
    recommendation_window_days: int = DEFAULT_RECOMMENDATION_WINDOW_DAYS,
    max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
) -> StudyPlan:
    """Put together today's plan: cards to review, weak topics, and pages to re-read."""
    now = now or utcnow()
    recommendations = recommend_cards(
        cards, entries, now=now, window_days=recommendation_window_days, limit=max_recommendations
    )
    areas = weak_areas(entries, cards, window_days=weak_window_days, now=now, topic_of=topic_of)
    reading = reading_suggestions(areas, cards, topic_of=topic_of)

    duration = timedelta(seconds=len(recommendations) * SECONDS_PER_RECOMMENDED_CARD)
    duration += timedelta(minutes=sum(s.estimated_minutes for s in reading))

    plan = StudyPlan(
        generated_at=now,
        recommendations=recommendations,
        weak_areas=areas,
        focus_areas=focus_areas(areas),
        reading_suggestions=reading,
        estimated_duration=min(duration, MAX_PLAN_DURATION),
    )
    logger.info(
        "Study plan: %d cards, %d weak areas, %d reading suggestions (%s)",
        len(recommendations),
        len(areas),
        len(reading),
        plan.formatted_duration,
    )
    return plan
