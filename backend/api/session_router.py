"""API routes for review sessions."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    NextCardResponse,
    PreviewResponse,
    SessionStartResponse,
    SessionStatsResponse,
)
from backend.config import settings
from backend.database import get_session
from backend.srs.queue import card_counts
from backend.srs.session import ReviewSession, start_session
from backend.srs.sm2 import Quality, SchedulerConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])

# In-memory session store, keyed by session id. Lost on restart.
_active_sessions: dict[str, ReviewSession] = {}


def _get_active(session_id: str) -> ReviewSession:
    review_session = _active_sessions.get(session_id)
    if not review_session:
        raise HTTPException(status_code=404, detail="Session not found")
    return review_session


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    book_id: int | None = None,
    limit: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> SessionStartResponse:
    """Start a new review session, optionally for a single book."""
    review_session = await start_session(
        db,
        book_id=book_id,
        config=SchedulerConfig.from_settings(settings),
        limit=limit,
    )

    if review_session.queue.total == 0:
        raise HTTPException(status_code=404, detail="No cards available for review")

    session_id = str(uuid.uuid4())
    _active_sessions[session_id] = review_session

    counts = card_counts(review_session.queue.cards)
    return SessionStartResponse(
        session_id=session_id,
        book_id=book_id,
        total_cards=review_session.queue.total,
        new_cards=counts.new,
        learning_cards=counts.learning,
        due_cards=counts.due,
    )


@router.get("/next/{session_id}", response_model=NextCardResponse)
async def session_next(session_id: str) -> NextCardResponse:
    """Get the next card in the session, with rating previews."""
    review_session = _get_active(session_id)

    session_card = review_session.get_next()
    if session_card is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    card = session_card.card
    return NextCardResponse(
        card_id=card.id,
        front=card.front,
        back=card.back,
        state=card.state.value,
        previews=PreviewResponse.from_previews(session_card.previews),
        remaining=review_session.remaining,
    )


@router.post("/answer/{session_id}", response_model=AnswerResponse)
async def session_answer(
    session_id: str,
    request: AnswerRequest,
    db: AsyncSession = Depends(get_session),
) -> AnswerResponse:
    """Rate the current card."""
    review_session = _get_active(session_id)

    session_card = review_session.get_next()
    if session_card is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    if session_card.card.id != request.card_id:
        raise HTTPException(status_code=400, detail="Card ID mismatch")

    # Queued cards are detached once the request that built the queue ends
    db.add(session_card.card)
    quality = Quality.from_rating(request.rating)
    outcome = await review_session.submit_rating(
        db,
        session_card,
        quality,
        response_time_seconds=request.response_time_seconds,
    )

    return AnswerResponse(
        card_id=request.card_id,
        quality=quality.name.lower(),
        state=outcome.state.value,
        interval=outcome.interval,
        interval_unit="minutes" if outcome.state.uses_minutes else "days",
        next_due=outcome.due,
        remaining=review_session.remaining,
        session_complete=review_session.is_complete,
    )


@router.post("/skip/{session_id}", response_model=NextCardResponse | None)
async def session_skip(session_id: str) -> NextCardResponse | None:
    """Move the current card to the end of the queue and return the new current card."""
    review_session = _get_active(session_id)
    review_session.skip()
    return await session_next(session_id) if not review_session.is_complete else None


@router.get("/stats/{session_id}", response_model=SessionStatsResponse)
async def session_stats(session_id: str) -> SessionStatsResponse:
    """Get stats for the current session."""
    s = _get_active(session_id).stats
    return SessionStatsResponse(
        cards_reviewed=s.cards_reviewed,
        again=s.ratings[Quality.AGAIN],
        hard=s.ratings[Quality.HARD],
        good=s.ratings[Quality.GOOD],
        easy=s.ratings[Quality.EASY],
        new_cards_seen=s.new_cards_seen,
        requeued=s.requeued,
        average_time_seconds=s.average_time_seconds,
    )


@router.post("/end/{session_id}")
async def session_end(session_id: str) -> dict:
    """End a session and clean up."""
    review_session = _active_sessions.pop(session_id, None)
    if not review_session:
        raise HTTPException(status_code=404, detail="Session not found")

    s = review_session.stats
    return {
        "status": "ended",
        "cards_reviewed": s.cards_reviewed,
        "correct": s.correct,
        "incorrect": s.incorrect,
    }
