"""API routes for creating, rating, and resetting individual cards."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    CardCreateRequest,
    CardResponse,
    PreviewResponse,
    ReviewRequest,
    ReviewResponse,
)
from backend.config import settings
from backend.database import get_session
from backend.models.card import Card
from backend.srs.cards import (
    CardNotFoundError,
    create_card,
    get_card,
    get_or_create_book,
    record_review,
    reset_card,
)
from backend.srs.preview import interval_previews
from backend.srs.sm2 import Quality, SchedulerConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cards", tags=["cards"])


async def _load_card(db: AsyncSession, card_id: int) -> Card:
    try:
        return await get_card(db, card_id)
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("", response_model=CardResponse, status_code=201)
async def card_create(
    request: CardCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    """Create a New card, optionally filed under a book."""
    book_id = None
    if request.book_title:
        book = await get_or_create_book(db, request.book_title)
        book_id = book.id

    card = await create_card(
        db,
        front=request.front,
        back=request.back,
        book_id=book_id,
        source_page=request.source_page,
        source_text=request.source_text,
    )
    return CardResponse.from_card(card)


@router.get("/{card_id}", response_model=CardResponse)
async def card_get(card_id: int, db: AsyncSession = Depends(get_session)) -> CardResponse:
    return CardResponse.from_card(await _load_card(db, card_id))


@router.get("/{card_id}/previews", response_model=PreviewResponse)
async def card_previews(card_id: int, db: AsyncSession = Depends(get_session)) -> PreviewResponse:
    """Show the interval each rating would give, without rating the card."""
    card = await _load_card(db, card_id)
    previews = interval_previews(card.to_state(), SchedulerConfig.from_settings(settings))
    return PreviewResponse.from_previews(previews)


@router.post("/{card_id}/review", response_model=ReviewResponse)
async def card_review(
    card_id: int,
    request: ReviewRequest,
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Rate a card outside of a session."""
    card = await _load_card(db, card_id)
    previous_state = card.state
    quality = Quality.from_rating(request.rating)

    await record_review(
        db,
        card,
        quality,
        config=SchedulerConfig.from_settings(settings),
        response_time_seconds=request.response_time_seconds,
    )
    return ReviewResponse(
        card=CardResponse.from_card(card),
        previous_state=previous_state.value,
        quality=quality.name.lower(),
    )


@router.post("/{card_id}/reset", response_model=CardResponse)
async def card_reset(card_id: int, db: AsyncSession = Depends(get_session)) -> CardResponse:
    """Put a card back to New."""
    card = await _load_card(db, card_id)
    await reset_card(db, card)
    return CardResponse.from_card(card)
