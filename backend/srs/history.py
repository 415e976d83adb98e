"""Review history: immutable log entries and the statistics derived from them.

Every rating appends one ReviewLogEntry. Entries are never edited; all
history-based numbers (retention, streaks, weak areas) are recomputed from
them on demand.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from backend.config import utcnow
from backend.srs.sm2 import CardState, LearningState, Quality, ReviewOutcome


@dataclass(frozen=True)
class ReviewLogEntry:
    """One review transition of one card."""

    card_id: int
    reviewed_at: datetime
    quality: Quality
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    new_state: LearningState  # Tells whether new_interval is minutes or days
    response_time_seconds: float | None = None


def build_log_entry(
    card_id: int,
    before: CardState,
    quality: Quality,
    outcome: ReviewOutcome,
    reviewed_at: datetime | None = None,
    response_time_seconds: float | None = None,
) -> ReviewLogEntry:
    """Record the transition from ``before`` to ``outcome``."""
    return ReviewLogEntry(
        card_id=card_id,
        reviewed_at=reviewed_at or utcnow(),
        quality=quality,
        previous_interval=before.interval,
        new_interval=outcome.interval,
        previous_ease_factor=before.ease_factor,
        new_ease_factor=outcome.ease_factor,
        new_state=outcome.state,
        response_time_seconds=response_time_seconds,
    )


def within_window(
    entries: Iterable[ReviewLogEntry],
    days: int,
    now: datetime | None = None,
) -> list[ReviewLogEntry]:
    """Entries reviewed in the last ``days`` days."""
    cutoff = (now or utcnow()) - timedelta(days=days)
    return [e for e in entries if e.reviewed_at >= cutoff]


def retention_rate(entries: Iterable[ReviewLogEntry]) -> float:
    """Share of reviews rated Good or Easy. 0.0 when there are none."""
    entries = list(entries)
    if not entries:
        return 0.0
    passed = sum(1 for e in entries if e.quality >= Quality.GOOD)
    return passed / len(entries)


def reviews_on_day(entries: Iterable[ReviewLogEntry], day: date) -> int:
    return sum(1 for e in entries if e.reviewed_at.date() == day)


def study_streak(entries: Iterable[ReviewLogEntry], today: date) -> int:
    """Count consecutive days with at least one review, ending today."""
    review_days = sorted({e.reviewed_at.date() for e in entries}, reverse=True)

    streak = 0
    for i, review_day in enumerate(review_days):
        if review_day == today - timedelta(days=i):
            streak += 1
        else:
            break
    return streak
