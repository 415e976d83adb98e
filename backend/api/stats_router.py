"""API routes for statistics, weak areas, and the daily study plan."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    CardCountsResponse,
    FocusAreaResponse,
    ReadingSuggestionResponse,
    RecommendationResponse,
    StatsResponse,
    StudyPlanResponse,
    WeakAreaResponse,
)
from backend.config import settings, utcnow
from backend.database import get_session
from backend.models.card import Card
from backend.srs.analytics import WeakArea, build_study_plan, mastery_breakdown, weak_areas
from backend.srs.cards import fetch_cards, fetch_review_entries
from backend.srs.history import (
    ReviewLogEntry,
    retention_rate,
    reviews_on_day,
    study_streak,
    within_window,
)
from backend.srs.queue import card_counts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


async def _load(
    db: AsyncSession,
    book_id: int | None,
    days: int | None = None,
) -> tuple[list[Card], list[ReviewLogEntry]]:
    """Load cards and their review history, optionally for one book."""
    cards = await fetch_cards(db, book_id)
    entries = await fetch_review_entries(db, days=days)
    if book_id is not None:
        card_ids = {card.id for card in cards}
        entries = [e for e in entries if e.card_id in card_ids]
    return cards, entries


def _weak_area_response(area: WeakArea) -> WeakAreaResponse:
    return WeakAreaResponse(
        topic=area.topic,
        failure_rate=round(area.failure_rate, 3),
        severity=area.severity.value,
        average_response_time=round(area.average_response_time, 1),
        review_count=area.review_count,
        card_count=area.card_count,
        last_review_date=area.last_review_date,
    )


@router.get("", response_model=StatsResponse)
async def get_stats(
    book_id: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> StatsResponse:
    """Get overall statistics."""
    now = utcnow()
    cards, entries = await _load(db, book_id)
    counts = card_counts(cards, now=now)

    recent = within_window(entries, settings.weak_area_window_days, now=now)
    retention = round(retention_rate(recent), 3) if recent else None

    return StatsResponse(
        total_cards=len(cards),
        counts=CardCountsResponse(new=counts.new, learning=counts.learning, due=counts.due),
        mastery={level.value: n for level, n in mastery_breakdown(cards).items()},
        retention_rate=retention,
        reviews_today=reviews_on_day(entries, now.date()),
        streak_days=study_streak(entries, now.date()),
        total_reviews=len(entries),
    )


@router.get("/weak-areas", response_model=list[WeakAreaResponse])
async def get_weak_areas(
    book_id: int | None = None,
    window_days: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> list[WeakAreaResponse]:
    """Topics with an elevated failure rate, worst first."""
    window_days = window_days or settings.weak_area_window_days
    cards, entries = await _load(db, book_id, days=window_days)
    areas = weak_areas(entries, cards, window_days=window_days)
    return [_weak_area_response(area) for area in areas]


@router.get("/plan", response_model=StudyPlanResponse)
async def get_study_plan(
    book_id: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> StudyPlanResponse:
    """Today's study plan."""
    cards, entries = await _load(db, book_id, days=settings.weak_area_window_days)
    plan = build_study_plan(
        cards,
        entries,
        weak_window_days=settings.weak_area_window_days,
        recommendation_window_days=settings.recommendation_window_days,
        max_recommendations=settings.max_recommendations,
    )

    return StudyPlanResponse(
        generated_at=plan.generated_at,
        recommendations=[
            RecommendationResponse(
                card_id=r.card_id,
                priority=r.priority.name.lower(),
                reason=r.reason,
                failure_rate=round(r.failure_rate, 3),
            )
            for r in plan.recommendations
        ],
        weak_areas=[_weak_area_response(area) for area in plan.weak_areas],
        focus_areas=[
            FocusAreaResponse(
                topic=f.topic,
                retention_rate=round(f.retention_rate, 3),
                reviews_needed=f.reviews_needed,
            )
            for f in plan.focus_areas
        ],
        reading_suggestions=[
            ReadingSuggestionResponse(
                topic=s.topic,
                first_page=s.first_page,
                last_page=s.last_page,
                estimated_minutes=s.estimated_minutes,
                failure_rate=round(s.failure_rate, 3),
            )
            for s in plan.reading_suggestions
        ],
        estimated_minutes=int(plan.estimated_duration.total_seconds() // 60),
        formatted_duration=plan.formatted_duration,
    )
