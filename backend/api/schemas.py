"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.models.card import Card
from backend.srs.analytics import mastery_level
from backend.srs.sm2 import Quality

# --- Cards ---


class CardCreateRequest(BaseModel):
    """Request to create a new card."""

    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    book_title: str | None = None
    source_page: int | None = None
    source_text: str | None = None


class CardResponse(BaseModel):
    """A card with its scheduling state."""

    id: int
    front: str
    back: str
    topic: str | None
    source_page: int | None
    state: str
    learning_step: int
    interval: int
    interval_unit: str  # "minutes" or "days"
    ease_factor: float
    repetitions: int
    due: datetime
    mastery: str

    @classmethod
    def from_card(cls, card: Card) -> "CardResponse":
        state = card.to_state()
        return cls(
            id=card.id,
            front=card.front,
            back=card.back,
            topic=card.topic,
            source_page=card.source_page,
            state=card.state.value,
            learning_step=card.learning_step,
            interval=state.interval,
            interval_unit="minutes" if card.state.uses_minutes else "days",
            ease_factor=card.ease_factor,
            repetitions=card.repetitions,
            due=card.due,
            mastery=mastery_level(card.state, card.repetitions).value,
        )


class PreviewResponse(BaseModel):
    """The interval each rating would give, e.g. "10m" or "3d"."""

    again: str
    hard: str
    good: str
    easy: str

    @classmethod
    def from_previews(cls, previews: dict[Quality, str]) -> "PreviewResponse":
        return cls(
            again=previews[Quality.AGAIN],
            hard=previews[Quality.HARD],
            good=previews[Quality.GOOD],
            easy=previews[Quality.EASY],
        )


class ReviewRequest(BaseModel):
    """Request to rate a card."""

    rating: int = Field(ge=1, le=4)  # 1=Again, 2=Hard, 3=Good, 4=Easy
    response_time_seconds: float | None = Field(default=None, ge=0)


class ReviewResponse(BaseModel):
    """Response after rating a card."""

    card: CardResponse
    previous_state: str
    quality: str


# --- Session ---


class SessionStartResponse(BaseModel):
    """Response when starting a new review session."""

    session_id: str
    book_id: int | None
    total_cards: int
    new_cards: int
    learning_cards: int
    due_cards: int


class NextCardResponse(BaseModel):
    """The next card to review in a session."""

    card_id: int
    front: str
    back: str
    state: str
    previews: PreviewResponse
    remaining: int


class AnswerRequest(BaseModel):
    """Request to rate the current card of a session."""

    card_id: int
    rating: int = Field(ge=1, le=4)
    response_time_seconds: float | None = Field(default=None, ge=0)


class AnswerResponse(BaseModel):
    """Response after rating with scheduling info."""

    card_id: int
    quality: str
    state: str
    interval: int
    interval_unit: str
    next_due: datetime
    remaining: int
    session_complete: bool


class SessionStatsResponse(BaseModel):
    """Statistics for the current review session."""

    cards_reviewed: int
    again: int
    hard: int
    good: int
    easy: int
    new_cards_seen: int
    requeued: int
    average_time_seconds: float


# --- Stats ---


class CardCountsResponse(BaseModel):
    new: int
    learning: int
    due: int


class StatsResponse(BaseModel):
    """Overall statistics."""

    total_cards: int
    counts: CardCountsResponse
    mastery: dict[str, int]
    retention_rate: float | None  # Share of Good/Easy ratings in the stats window
    reviews_today: int
    streak_days: int
    total_reviews: int


class WeakAreaResponse(BaseModel):
    topic: str
    failure_rate: float
    severity: str
    average_response_time: float
    review_count: int
    card_count: int
    last_review_date: datetime | None


class RecommendationResponse(BaseModel):
    card_id: int
    priority: str
    reason: str
    failure_rate: float


class FocusAreaResponse(BaseModel):
    topic: str
    retention_rate: float
    reviews_needed: int


class ReadingSuggestionResponse(BaseModel):
    topic: str
    first_page: int
    last_page: int
    estimated_minutes: int
    failure_rate: float


class StudyPlanResponse(BaseModel):
    """Today's study plan."""

    generated_at: datetime
    recommendations: list[RecommendationResponse]
    weak_areas: list[WeakAreaResponse]
    focus_areas: list[FocusAreaResponse]
    reading_suggestions: list[ReadingSuggestionResponse]
    estimated_minutes: int
    formatted_duration: str
