"""Queue management for SRS review sessions.

Selects due cards and orders them so short-interval learning cards are not
starved by bulk new or review cards:

1. Learning and Relearning cards (time-sensitive)
2. New cards
3. Review cards

Ties within a tier are broken by due date, oldest first.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import NamedTuple, Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.config import settings, utcnow
from backend.models.card import Card
from backend.srs.sm2 import LearningState

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


class SchedulableCard(Protocol):
    state: LearningState
    due: datetime
    repetitions: int


C = TypeVar("C", bound=SchedulableCard)


class CardCounts(NamedTuple):
    new: int
    learning: int
    due: int


def _priority(card: SchedulableCard) -> tuple[int, datetime]:
    if card.state.is_time_sensitive:
        tier = 0
    elif card.state is LearningState.NEW:
        tier = 1
    else:
        tier = 2
    return tier, card.due


def select_due_cards(
    cards: Iterable[C],
    now: datetime | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[C]:
    """Return up to ``limit`` due cards in review priority order.

    The input is not modified. Sorting is stable, so cards with equal tier
    and due date keep their input order.
    """
    now = now or utcnow()
    due = sorted((c for c in cards if c.due <= now), key=_priority)
    return due[: max(0, limit)]


def card_counts(cards: Iterable[SchedulableCard], now: datetime | None = None) -> CardCounts:
    """Count unstarted, due learning, and due review cards in a single pass.

    Review cards that are not yet due are in none of the three counts.
    """
    now = now or utcnow()
    new = learning = due = 0
    for card in cards:
        if card.state is LearningState.NEW and card.repetitions == 0:
            new += 1
        elif card.state.is_time_sensitive:
            if card.due <= now:
                learning += 1
        elif card.state is LearningState.REVIEW and card.due <= now:
            due += 1
    return CardCounts(new=new, learning=learning, due=due)


@dataclass
class ReviewQueue:
    """The ordered cards of one review session and a cursor into them."""

    cards: list[Card] = field(default_factory=list)
    position: int = 0

    @property
    def total(self) -> int:
        return len(self.cards)

    @property
    def remaining(self) -> int:
        """Return the number of cards left to review."""
        return max(0, len(self.cards) - self.position)

    @property
    def is_complete(self) -> bool:
        return self.position >= len(self.cards)

    @property
    def current(self) -> Card | None:
        """Return the current card or None if the queue is exhausted."""
        if self.position < len(self.cards):
            return self.cards[self.position]
        return None

    def advance(self) -> None:
        self.position += 1

    def requeue_if_due(self, card: Card, now: datetime | None = None) -> bool:
        """Append a Learning/Relearning card that is already due again.

        Returns True if the card was re-queued.
        """
        now = now or utcnow()
        if card.state.is_time_sensitive and card.due <= now:
            self.cards.append(card)
            return True
        return False

    def skip(self) -> None:
        """Move the current card to the end of the queue."""
        card = self.current
        if card is None:
            return
        self.cards.append(card)
        self.advance()


async def build_queue(
    session: AsyncSession,
    book_id: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> ReviewQueue:
    """Build a review queue, optionally restricted to one book.

    Args:
        session: Database session.
        book_id: Only queue cards from this book.
        limit: Maximum number of cards (defaults to the session size setting).
        now: Current time (defaults to utcnow).

    Returns:
        A ReviewQueue in priority order.
    """
    limit = limit if limit is not None else settings.max_cards_per_session
    now = now or utcnow()

    stmt = select(Card).where(Card.due <= now).options(selectinload(Card.book))
    if book_id is not None:
        stmt = stmt.where(Card.book_id == book_id)
    stmt = stmt.order_by(Card.id.asc())
    result = await session.execute(stmt)
    candidates: Sequence[Card] = result.scalars().all()

    queue = ReviewQueue(cards=select_due_cards(candidates, now=now, limit=limit))
    logger.info(
        "Built queue%s: %d of %d due cards",
        f" for book {book_id}" if book_id is not None else "",
        queue.total,
        len(candidates),
    )
    return queue
