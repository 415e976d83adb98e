"""SM-2 spaced repetition scheduler with learning and relearning steps.

Reference: https://www.supermemo.com/en/archives1990-2015/english/ol/sm2

Key concepts:
- Learning steps: short, sub-day intervals (minutes) a card walks through
  before it graduates into the Review state.
- Ease factor: per-card multiplier for interval growth in the Review state.
- Lapse: a Review card rated Again. It drops into Relearning.
- Quality: Again, Hard, Good, Easy (buttons 1-4).

Lifecycle: New -> Learning -> Review <-> Relearning

Intervals are stored in two explicit fields. ``interval_minutes`` is active
while a card is New, Learning or Relearning; ``interval_days`` is active in
Review. The inactive field is always 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import TYPE_CHECKING

from backend.config import utcnow

if TYPE_CHECKING:
    from backend.config import Settings

logger = logging.getLogger(__name__)

LEARNING_STEPS: tuple[int, ...] = (1, 10)  # minutes
RELEARNING_STEPS: tuple[int, ...] = (10,)  # minutes
GRADUATING_INTERVAL = 1  # days, Good on the last learning step
EASY_INTERVAL = 4  # days, Easy on any learning step

MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
STARTING_EASE_FACTOR = 2.5

MAX_INTERVAL = 365  # days

HARD_MULTIPLIER = 1.2
EASY_BONUS = 1.3


class Quality(IntEnum):
    """How well the learner recalled a card."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @classmethod
    def from_rating(cls, rating: int) -> Quality:
        """Map a 1-4 button rating to a Quality. Out-of-range ratings are clamped."""
        rating = max(1, min(4, rating))
        return cls(rating - 1)

    @property
    def rating(self) -> int:
        """The 1-4 button number for this quality."""
        return self.value + 1

    @property
    def is_failure(self) -> bool:
        """Again and Hard count as failed recalls in analytics."""
        return self < Quality.GOOD


class LearningState(Enum):
    """Where a card is in its lifecycle."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"

    @property
    def uses_minutes(self) -> bool:
        """True when the card's interval is measured in minutes rather than days."""
        return self is not LearningState.REVIEW

    @property
    def is_time_sensitive(self) -> bool:
        return self in (LearningState.LEARNING, LearningState.RELEARNING)


# Ease factor change applied on a Review-state review
EASE_DELTAS: dict[Quality, float] = {
    Quality.AGAIN: -0.20,
    Quality.HARD: -0.15,
    Quality.GOOD: 0.0,
    Quality.EASY: 0.15,
}


@dataclass(frozen=True)
class CardState:
    """The scheduling state of a card."""

    state: LearningState = LearningState.NEW
    learning_step: int = 0  # Index into the learning/relearning steps
    interval_minutes: int = 0  # Active while not in Review
    interval_days: int = 0  # Active in Review
    ease_factor: float = STARTING_EASE_FACTOR
    repetitions: int = 0  # Successful reviews since the last reset
    due: datetime = field(default_factory=utcnow)

    @property
    def interval(self) -> int:
        """The active interval, in minutes or days depending on the state."""
        return self.interval_minutes if self.state.uses_minutes else self.interval_days


@dataclass(frozen=True)
class ReviewOutcome:
    """The scheduling state a card should take after a review."""

    state: LearningState
    learning_step: int
    interval_minutes: int
    interval_days: int
    ease_factor: float
    repetitions: int
    due: datetime

    @property
    def interval(self) -> int:
        return self.interval_minutes if self.state.uses_minutes else self.interval_days

    def to_card_state(self) -> CardState:
        return CardState(
            state=self.state,
            learning_step=self.learning_step,
            interval_minutes=self.interval_minutes,
            interval_days=self.interval_days,
            ease_factor=self.ease_factor,
            repetitions=self.repetitions,
            due=self.due,
        )


@dataclass(frozen=True)
class SchedulerConfig:
    """Tunable scheduler parameters. Passed explicitly to every review."""

    interval_modifier: float = 1.0  # Applied to Review-state growth only
    learning_steps: tuple[int, ...] = LEARNING_STEPS
    relearning_steps: tuple[int, ...] = RELEARNING_STEPS
    graduating_interval: int = GRADUATING_INTERVAL
    easy_interval: int = EASY_INTERVAL
    maximum_interval: int = MAX_INTERVAL

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerConfig:
        return cls(interval_modifier=settings.interval_modifier)


def new_card_state(now: datetime | None = None) -> CardState:
    """Return the state of a freshly created (or reset) card, due immediately."""
    return CardState(due=now or utcnow())


class SM2Scheduler:
    """SM-2 scheduler with Anki-style learning steps.

    Holds only immutable configuration, so one instance can be shared by
    any number of concurrent reviews of different cards.
    """

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        """Initialize the scheduler with optional custom configuration."""
        self.config = config or SchedulerConfig()

    def review(
        self,
        card: CardState,
        quality: Quality,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """Compute the scheduling state that follows rating ``card`` with ``quality``.

        Args:
            card: Current scheduling state. Not modified.
            quality: The learner's rating.
            now: Review time (defaults to utcnow). The new due date is
                offset from it.

        Returns:
            ReviewOutcome for the caller to apply to the card.
        """
        now = now or utcnow()
        ease_factor = card.ease_factor
        repetitions = card.repetitions

        if card.state in (LearningState.NEW, LearningState.LEARNING):
            state, interval, step, graduated = self._learning_review(card.learning_step, quality)
            if graduated:
                repetitions = 1
        elif card.state is LearningState.REVIEW:
            state, interval, ease_factor = self._review_review(
                card.interval_days, card.ease_factor, quality
            )
            step = 0 if state is LearningState.RELEARNING else card.learning_step
            if quality is not Quality.AGAIN:
                repetitions += 1
        else:
            state, interval, step = self._relearning_review(card.interval_minutes, quality)

        ease_factor = max(MIN_EASE_FACTOR, min(MAX_EASE_FACTOR, ease_factor))

        if state is LearningState.REVIEW:
            interval = min(interval, self.config.maximum_interval)
            due = now + timedelta(days=interval)
            interval_minutes, interval_days = 0, interval
        else:
            due = now + timedelta(minutes=interval)
            interval_minutes, interval_days = interval, 0

        logger.debug(
            "Rated %s: %s -> %s, interval %d%s, ease %.2f",
            quality.name,
            card.state.value,
            state.value,
            interval,
            "m" if state.uses_minutes else "d",
            ease_factor,
        )

        return ReviewOutcome(
            state=state,
            learning_step=step,
            interval_minutes=interval_minutes,
            interval_days=interval_days,
            ease_factor=ease_factor,
            repetitions=repetitions,
            due=due,
        )

    def _learning_review(
        self,
        current_step: int,
        quality: Quality,
    ) -> tuple[LearningState, int, int, bool]:
        """Walk a New/Learning card through the learning steps.

        Returns (state, interval, step, graduated).
        """
        steps = self.config.learning_steps
        # Stored steps can outlive a config change that shortened the table
        step = max(0, min(current_step, len(steps) - 1))

        if quality is Quality.AGAIN:
            return LearningState.LEARNING, steps[0], 0, False
        if quality is Quality.HARD:
            return LearningState.LEARNING, steps[step], step, False
        if quality is Quality.GOOD:
            if step >= len(steps) - 1:
                return LearningState.REVIEW, self.config.graduating_interval, current_step, True
            next_step = step + 1
            return LearningState.LEARNING, steps[next_step], next_step, False
        return LearningState.REVIEW, self.config.easy_interval, current_step, True

    def _review_review(
        self,
        current_interval: int,
        ease_factor: float,
        quality: Quality,
    ) -> tuple[LearningState, int, float]:
        """Grow (or lapse) a Review card. Returns (state, interval, ease_factor)."""
        # Only floored here; the 2.5 ceiling is applied after the interval is computed
        new_ease = max(MIN_EASE_FACTOR, ease_factor + EASE_DELTAS[quality])
        modifier = self.config.interval_modifier

        if quality is Quality.AGAIN:
            return LearningState.RELEARNING, self.config.relearning_steps[0], new_ease
        if quality is Quality.HARD:
            interval = int(current_interval * HARD_MULTIPLIER * modifier)
        elif quality is Quality.GOOD:
            interval = int(current_interval * new_ease * modifier)
        else:
            interval = int(current_interval * new_ease * EASY_BONUS * modifier)
        return LearningState.REVIEW, max(1, interval), new_ease

    def _relearning_review(
        self,
        previous_interval: int,
        quality: Quality,
    ) -> tuple[LearningState, int, int]:
        """Bring a lapsed card back to Review. Returns (state, interval, step)."""
        first_step = self.config.relearning_steps[0]
        if quality is Quality.AGAIN:
            return LearningState.RELEARNING, first_step, 0
        if quality is Quality.HARD:
            return LearningState.RELEARNING, first_step * 2, 0
        # Halves the relearning interval (minutes) into a review interval (days)
        return LearningState.REVIEW, max(1, previous_interval // 2), 0


def compute_outcome(
    card: CardState,
    quality: Quality,
    config: SchedulerConfig | None = None,
    now: datetime | None = None,
) -> ReviewOutcome:
    """Rate ``card`` with ``quality`` under ``config`` and return the outcome."""
    return SM2Scheduler(config).review(card, quality, now=now)
