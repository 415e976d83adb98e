"""Review session orchestrator.

Coordinates the queue, the scheduler, interval previews, and review
logging into a cohesive session flow.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import utcnow
from backend.models.card import Card
from backend.srs.cards import record_review
from backend.srs.preview import interval_previews
from backend.srs.queue import ReviewQueue, build_queue
from backend.srs.sm2 import LearningState, Quality, ReviewOutcome, SchedulerConfig

logger = logging.getLogger(__name__)


@dataclass
class SessionCard:
    """A card presented during a session, with the interval each rating would give."""

    card: Card
    previews: dict[Quality, str]


@dataclass
class SessionStats:
    """Statistics for a review session."""

    cards_reviewed: int = 0
    ratings: dict[Quality, int] = field(default_factory=lambda: dict.fromkeys(Quality, 0))
    new_cards_seen: int = 0
    requeued: int = 0
    total_time_seconds: float = 0.0
    average_time_seconds: float = 0.0

    @property
    def correct(self) -> int:
        return self.ratings[Quality.GOOD] + self.ratings[Quality.EASY]

    @property
    def incorrect(self) -> int:
        return self.ratings[Quality.AGAIN] + self.ratings[Quality.HARD]


@dataclass
class ReviewSession:
    """Manages an active review session."""

    queue: ReviewQueue
    config: SchedulerConfig = field(default_factory=SchedulerConfig)
    book_id: int | None = None
    stats: SessionStats = field(default_factory=SessionStats)
    started_at: datetime = field(default_factory=utcnow)
    _timed_reviews: int = field(default=0, init=False, repr=False)

    @property
    def remaining(self) -> int:
        return self.queue.remaining

    @property
    def is_complete(self) -> bool:
        return self.queue.is_complete

    def get_next(self, now: datetime | None = None) -> SessionCard | None:
        """Get the next card to present, or None if the session is complete."""
        card = self.queue.current
        if card is None:
            return None
        previews = interval_previews(card.to_state(), self.config, now=now)
        return SessionCard(card=card, previews=previews)

    async def submit_rating(
        self,
        db: AsyncSession,
        session_card: SessionCard,
        quality: Quality,
        response_time_seconds: float | None = None,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """Rate the current card, persist the result, and move on.

        A card that is still Learning/Relearning and already due again goes
        back to the end of the queue.
        """
        now = now or utcnow()
        card = session_card.card
        was_new = card.state is LearningState.NEW

        outcome, _ = await record_review(
            db,
            card,
            quality,
            config=self.config,
            response_time_seconds=response_time_seconds,
            now=now,
        )

        self.stats.cards_reviewed += 1
        self.stats.ratings[quality] += 1
        if was_new:
            self.stats.new_cards_seen += 1
        if response_time_seconds is not None:
            self._timed_reviews += 1
            self.stats.total_time_seconds += response_time_seconds
            self.stats.average_time_seconds = self.stats.total_time_seconds / self._timed_reviews

        self.queue.advance()
        if self.queue.requeue_if_due(card, now=now):
            self.stats.requeued += 1
            logger.debug("Re-queued card %d", card.id)

        return outcome

    def skip(self) -> None:
        """Move the current card to the end of the queue."""
        self.queue.skip()


async def start_session(
    db: AsyncSession,
    book_id: int | None = None,
    config: SchedulerConfig | None = None,
    limit: int | None = None,
) -> ReviewSession:
    """Start a new review session.

    Args:
        db: Database session.
        book_id: Only review cards from this book.
        config: Scheduler configuration.
        limit: Maximum cards to queue (defaults to the session size setting).

    Returns:
        A ReviewSession ready for use.
    """
    queue = await build_queue(db, book_id=book_id, limit=limit)
    session = ReviewSession(queue=queue, config=config or SchedulerConfig(), book_id=book_id)

    logger.info("Started session: %d cards queued", queue.total)
    return session
