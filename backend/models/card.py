"""Flashcard model carrying SM-2 scheduling state."""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base, TimestampMixin
from backend.srs.sm2 import STARTING_EASE_FACTOR, CardState, LearningState, ReviewOutcome


class Card(Base, TimestampMixin):
    """A flashcard taken from a book, with its scheduling state."""

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    book_id: Mapped[int | None] = mapped_column(ForeignKey("books.id"), nullable=True)
    front: Mapped[str] = mapped_column(Text, nullable=False)  # Question
    back: Mapped[str] = mapped_column(Text, nullable=False)  # Answer
    source_page: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    state: Mapped[LearningState] = mapped_column(
        Enum(
            LearningState,
            native_enum=False,
            length=20,
            values_callable=lambda states: [s.value for s in states],
        ),
        nullable=False,
        default=LearningState.NEW,
    )
    learning_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=STARTING_EASE_FACTOR)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    book: Mapped["Book"] = relationship(back_populates="cards")  # type: ignore[name-defined] # noqa: F821
    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="card")  # type: ignore[name-defined] # noqa: F821

    @classmethod
    def create(
        cls,
        front: str,
        back: str,
        book_id: int | None = None,
        source_page: int | None = None,
        source_text: str | None = None,
        now: datetime | None = None,
    ) -> "Card":
        """Build a New card, due immediately."""
        card = cls(
            front=front,
            back=back,
            book_id=book_id,
            source_page=source_page,
            source_text=source_text,
        )
        card.apply_state(CardState(due=now or utcnow()))
        return card

    @property
    def topic(self) -> str | None:
        """The book title, used to group reviews into weak areas."""
        return self.book.title if self.book is not None else None

    def to_state(self) -> CardState:
        """Extract the scheduling state."""
        return CardState(
            state=self.state,
            learning_step=self.learning_step,
            interval_minutes=self.interval_minutes,
            interval_days=self.interval_days,
            ease_factor=self.ease_factor,
            repetitions=self.repetitions,
            due=self.due,
        )

    def apply_state(self, state: CardState | ReviewOutcome) -> None:
        """Copy all six scheduling fields from a state or review outcome."""
        self.state = state.state
        self.learning_step = state.learning_step
        self.interval_minutes = state.interval_minutes
        self.interval_days = state.interval_days
        self.ease_factor = state.ease_factor
        self.repetitions = state.repetitions
        self.due = state.due
