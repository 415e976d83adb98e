"""Tests for the card service, queue building, and review sessions against SQLite."""

import asyncio
from dataclasses import fields
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.config import utcnow
from backend.models.book import Book
from backend.models.card import Card
from backend.models.review_log import ReviewLog
from backend.srs.cards import (
    BookNotFoundError,
    CardNotFoundError,
    create_card,
    fetch_review_entries,
    get_card,
    get_or_create_book,
    record_review,
    reset_card,
    reset_cards,
)
from backend.srs.queue import ReviewQueue, build_queue
from backend.srs.session import ReviewSession, start_session
from backend.srs.sm2 import CardState, LearningState, Quality, SchedulerConfig


async def add_card(
    db: AsyncSession,
    front: str,
    state: LearningState = LearningState.NEW,
    due_offset: timedelta = timedelta(minutes=-1),
    book_id: int | None = None,
) -> Card:
    card = await create_card(db, front=front, back="answer", book_id=book_id)
    card.apply_state(CardState(state=state, due=utcnow() + due_offset))
    await db.commit()
    return card


class TestCardService:
    @pytest.mark.asyncio
    async def test_create_card_is_new_and_due(self, db: AsyncSession) -> None:
        book = await get_or_create_book(db, "Riyad as-Salihin")
        card = await create_card(db, "Front", "Back", book_id=book.id, source_page=42)

        assert card.id >= 1
        assert card.state is LearningState.NEW
        assert card.interval_minutes == 0
        assert card.interval_days == 0
        assert card.ease_factor == 2.5
        assert card.repetitions == 0
        assert card.due <= utcnow()
        assert card.topic == "Riyad as-Salihin"
        assert card.source_page == 42

    @pytest.mark.asyncio
    async def test_get_or_create_book_reuses_title(self, db: AsyncSession) -> None:
        first = await get_or_create_book(db, "Bulugh al-Maram")
        second = await get_or_create_book(db, "Bulugh al-Maram")
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_concurrent_book_creation_yields_one_book(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as first, session_factory() as second:
            books = await asyncio.gather(
                get_or_create_book(first, "Ihya"),
                get_or_create_book(second, "Ihya"),
            )
        assert books[0].id == books[1].id

        async with session_factory() as db:
            count = (await db.execute(select(func.count(Book.id)))).scalar()
            assert count == 1
            assert (await get_or_create_book(db, "Ihya")).id == books[0].id

    @pytest.mark.asyncio
    async def test_create_card_unknown_book(self, db: AsyncSession) -> None:
        with pytest.raises(BookNotFoundError):
            await create_card(db, "Front", "Back", book_id=999)

    @pytest.mark.asyncio
    async def test_get_card_missing(self, db: AsyncSession) -> None:
        with pytest.raises(CardNotFoundError) as exc_info:
            await get_card(db, 12345)
        assert exc_info.value.card_id == 12345
        assert isinstance(exc_info.value, LookupError)

    @pytest.mark.asyncio
    async def test_record_review_updates_card_and_logs(self, db: AsyncSession) -> None:
        card = await create_card(db, "Front", "Back")
        now = utcnow()

        outcome, entry = await record_review(
            db, card, Quality.GOOD, response_time_seconds=3.5, now=now
        )

        assert outcome.state is LearningState.LEARNING
        assert card.state is LearningState.LEARNING
        assert card.learning_step == 1
        assert card.interval_minutes == 10
        assert card.due == now + timedelta(minutes=10)

        assert entry.card_id == card.id
        assert entry.previous_interval == 0
        assert entry.new_interval == 10

        logs = (await db.execute(select(ReviewLog))).scalars().all()
        assert len(logs) == 1
        assert logs[0].quality == Quality.GOOD
        assert logs[0].new_state is LearningState.LEARNING
        assert logs[0].response_time_seconds == 3.5

        reloaded = await get_card(db, card.id)
        assert reloaded.to_state() == outcome.to_card_state()

    @pytest.mark.asyncio
    async def test_record_review_applies_interval_modifier(self, db: AsyncSession) -> None:
        card = await add_card(db, "Front", state=LearningState.REVIEW)
        card.apply_state(CardState(state=LearningState.REVIEW, interval_days=10, due=utcnow()))
        await db.commit()

        outcome, _ = await record_review(
            db, card, Quality.GOOD, config=SchedulerConfig(interval_modifier=0.5)
        )
        assert outcome.interval_days == 12

    @pytest.mark.asyncio
    async def test_fetch_review_entries_newest_first(self, db: AsyncSession) -> None:
        card = await create_card(db, "Front", "Back")
        start = utcnow()
        for minutes, quality in ((0, Quality.AGAIN), (5, Quality.GOOD), (20, Quality.GOOD)):
            await record_review(db, card, quality, now=start + timedelta(minutes=minutes))

        entries = await fetch_review_entries(db, card_id=card.id)
        assert [e.quality for e in entries] == [Quality.GOOD, Quality.GOOD, Quality.AGAIN]
        assert entries[0].new_state is LearningState.REVIEW
        assert entries[0].new_interval == 1

    @pytest.mark.asyncio
    async def test_fetch_review_entries_window(self, db: AsyncSession) -> None:
        card = await create_card(db, "Front", "Back")
        now = utcnow()
        await record_review(db, card, Quality.AGAIN, now=now - timedelta(days=40))
        await record_review(db, card, Quality.GOOD, now=now - timedelta(days=1))

        assert len(await fetch_review_entries(db, days=30, now=now)) == 1
        assert len(await fetch_review_entries(db)) == 2

    @pytest.mark.asyncio
    async def test_reset_card_keeps_history(self, db: AsyncSession) -> None:
        card = await create_card(db, "Front", "Back")
        await record_review(db, card, Quality.EASY)
        assert card.state is LearningState.REVIEW

        await reset_card(db, card)
        assert card.state is LearningState.NEW
        assert card.interval_days == 0
        assert card.ease_factor == 2.5
        assert card.repetitions == 0
        assert card.learning_step == 0

        count = (await db.execute(select(func.count(ReviewLog.id)))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_reset_cards_by_book(self, db: AsyncSession) -> None:
        book = await get_or_create_book(db, "Al-Adab al-Mufrad")
        in_book = await add_card(db, "a", state=LearningState.REVIEW, book_id=book.id)
        other = await add_card(db, "b", state=LearningState.REVIEW)

        assert await reset_cards(db, book_id=book.id) == 1
        assert (await get_card(db, in_book.id)).state is LearningState.NEW
        assert (await get_card(db, other.id)).state is LearningState.REVIEW


class TestBuildQueue:
    @pytest.mark.asyncio
    async def test_orders_by_tier(self, db: AsyncSession) -> None:
        await add_card(db, "review", state=LearningState.REVIEW, due_offset=timedelta(days=-3))
        await add_card(db, "new", state=LearningState.NEW)
        await add_card(db, "learning", state=LearningState.LEARNING)
        await add_card(db, "later", state=LearningState.REVIEW, due_offset=timedelta(days=2))

        queue = await build_queue(db)
        assert [c.front for c in queue.cards] == ["learning", "new", "review"]

    @pytest.mark.asyncio
    async def test_book_filter_and_limit(self, db: AsyncSession) -> None:
        book = await get_or_create_book(db, "Kitab at-Tawhid")
        for i in range(4):
            await add_card(db, f"book-{i}", book_id=book.id)
        await add_card(db, "loose")

        queue = await build_queue(db, book_id=book.id, limit=3)
        assert queue.total == 3
        assert all(c.book_id == book.id for c in queue.cards)
        assert all(c.topic == "Kitab at-Tawhid" for c in queue.cards)

    @pytest.mark.asyncio
    async def test_empty(self, db: AsyncSession) -> None:
        queue = await build_queue(db)
        assert queue.is_complete
        assert queue.current is None


class TestReviewSession:
    def test_timing_counter_is_internal(self) -> None:
        assert "_timed_reviews" not in {f.name for f in fields(ReviewSession) if f.init}
        with pytest.raises(TypeError):
            ReviewSession(queue=ReviewQueue(), _timed_reviews=1)
        assert "_timed_reviews" not in repr(ReviewSession(queue=ReviewQueue()))

    @pytest.mark.asyncio
    async def test_session_flow(self, db: AsyncSession) -> None:
        await add_card(db, "one")
        await add_card(db, "two")
        session = await start_session(db)
        assert session.remaining == 2

        first = session.get_next()
        assert first.card.front == "one"
        assert first.previews[Quality.GOOD] == "10m"

        outcome = await session.submit_rating(db, first, Quality.EASY, response_time_seconds=2.0)
        assert outcome.state is LearningState.REVIEW
        assert session.remaining == 1

        second = session.get_next()
        await session.submit_rating(db, second, Quality.AGAIN, response_time_seconds=4.0)

        assert session.is_complete
        assert session.get_next() is None
        assert session.stats.cards_reviewed == 2
        assert session.stats.new_cards_seen == 2
        assert session.stats.ratings[Quality.EASY] == 1
        assert session.stats.ratings[Quality.AGAIN] == 1
        assert session.stats.correct == 1
        assert session.stats.incorrect == 1
        assert session.stats.average_time_seconds == 3.0
        assert session.stats.requeued == 0

    @pytest.mark.asyncio
    async def test_learning_card_due_again_is_requeued(self, db: AsyncSession) -> None:
        await add_card(db, "one")
        config = SchedulerConfig(learning_steps=(0, 10))
        session = await start_session(db, config=config)

        card = session.get_next()
        await session.submit_rating(db, card, Quality.AGAIN)

        assert session.stats.requeued == 1
        assert session.remaining == 1
        assert session.get_next().card is card.card

    @pytest.mark.asyncio
    async def test_skip(self, db: AsyncSession) -> None:
        await add_card(db, "one")
        await add_card(db, "two")
        session = await start_session(db)

        session.skip()
        assert session.get_next().card.front == "two"
        assert session.remaining == 2
