"""Card persistence: create, fetch, review, and reset cards in the database.

The scheduler itself never touches storage. This module applies its
outcomes: a review updates the card and appends a ReviewLog row in one
commit.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.config import utcnow
from backend.models.book import Book
from backend.models.card import Card
from backend.models.review_log import ReviewLog
from backend.srs.history import ReviewLogEntry, build_log_entry
from backend.srs.sm2 import Quality, ReviewOutcome, SchedulerConfig, SM2Scheduler, new_card_state

logger = logging.getLogger(__name__)


class CardNotFoundError(LookupError):
    def __init__(self, card_id: int) -> None:
        super().__init__(f"Card {card_id} not found")
        self.card_id = card_id


class BookNotFoundError(LookupError):
    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book {book_id} not found")
        self.book_id = book_id


async def get_card(db: AsyncSession, card_id: int) -> Card:
    """Fetch a card with its book loaded. Raises CardNotFoundError."""
    stmt = select(Card).where(Card.id == card_id).options(selectinload(Card.book))
    card = (await db.execute(stmt)).scalar_one_or_none()
    if card is None:
        raise CardNotFoundError(card_id)
    return card


async def fetch_cards(db: AsyncSession, book_id: int | None = None) -> list[Card]:
    stmt = select(Card).options(selectinload(Card.book)).order_by(Card.id.asc())
    if book_id is not None:
        stmt = stmt.where(Card.book_id == book_id)
    return list((await db.execute(stmt)).scalars().all())


async def get_or_create_book(db: AsyncSession, title: str, author: str | None = None) -> Book:
    stmt = select(Book).where(Book.title == title)
    book = (await db.execute(stmt)).scalar_one_or_none()
    if book is not None:
        return book

    book = Book(title=title, author=author)
    db.add(book)
    try:
        await db.commit()
    except IntegrityError:
        # Another session inserted the same title first
        await db.rollback()
        logger.debug("Book %r created concurrently, reusing it", title)
        return (await db.execute(stmt)).scalar_one()

    await db.refresh(book)
    logger.info("Created book %d: %s", book.id, title)
    return book


async def create_card(
    db: AsyncSession,
    front: str,
    back: str,
    book_id: int | None = None,
    source_page: int | None = None,
    source_text: str | None = None,
    now: datetime | None = None,
) -> Card:
    """Create a New card, due immediately."""
    if book_id is not None and await db.get(Book, book_id) is None:
        raise BookNotFoundError(book_id)

    card = Card.create(
        front=front,
        back=back,
        book_id=book_id,
        source_page=source_page,
        source_text=source_text,
        now=now,
    )
    db.add(card)
    await db.commit()
    logger.info("Created card %d", card.id)
    return await get_card(db, card.id)


async def record_review(
    db: AsyncSession,
    card: Card,
    quality: Quality,
    config: SchedulerConfig | None = None,
    response_time_seconds: float | None = None,
    now: datetime | None = None,
) -> tuple[ReviewOutcome, ReviewLogEntry]:
    """Rate a card, store its new scheduling state, and append a review log.

    Args:
        db: Database session.
        card: The card being reviewed.
        quality: The learner's rating.
        config: Scheduler configuration (interval modifier etc.).
        response_time_seconds: How long the learner took, if measured.
        now: Review time (defaults to utcnow).

    Returns:
        Tuple of (outcome, log_entry).
    """
    now = now or utcnow()
    before = card.to_state()
    outcome = SM2Scheduler(config).review(before, quality, now=now)

    card.apply_state(outcome)
    entry = build_log_entry(
        card.id,
        before,
        quality,
        outcome,
        reviewed_at=now,
        response_time_seconds=response_time_seconds,
    )
    db.add(ReviewLog.from_entry(entry))
    await db.commit()

    logger.info(
        "Card %d rated %s: %s -> %s, due %s",
        card.id,
        quality.name,
        before.state.value,
        outcome.state.value,
        outcome.due.isoformat(timespec="minutes"),
    )
    return outcome, entry


async def reset_card(db: AsyncSession, card: Card, now: datetime | None = None) -> Card:
    """Put a card back to New. Its review history is kept."""
    card.apply_state(new_card_state(now))
    await db.commit()
    logger.info("Reset card %d", card.id)
    return card


async def reset_cards(
    db: AsyncSession,
    book_id: int | None = None,
    now: datetime | None = None,
) -> int:
    """Reset every card (or every card of one book). Returns how many were reset."""
    now = now or utcnow()
    cards = await fetch_cards(db, book_id)
    for card in cards:
        card.apply_state(new_card_state(now))
    await db.commit()
    logger.info("Reset %d cards", len(cards))
    return len(cards)


async def fetch_review_entries(
    db: AsyncSession,
    days: int | None = None,
    card_id: int | None = None,
    now: datetime | None = None,
) -> list[ReviewLogEntry]:
    """Load review history as immutable entries, newest first."""
    stmt = select(ReviewLog).order_by(ReviewLog.reviewed_at.desc(), ReviewLog.id.desc())
    if days is not None:
        stmt = stmt.where(ReviewLog.reviewed_at >= (now or utcnow()) - timedelta(days=days))
    if card_id is not None:
        stmt = stmt.where(ReviewLog.card_id == card_id)
    result = await db.execute(stmt)
    return [log.to_entry() for log in result.scalars().all()]
