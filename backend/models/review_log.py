from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base
from backend.srs.history import ReviewLogEntry
from backend.srs.sm2 import LearningState, Quality


class ReviewLog(Base):
    __tablename__ = "review_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Again, 1=Hard, 2=Good, 3=Easy
    new_state: Mapped[LearningState] = mapped_column(
        Enum(
            LearningState,
            native_enum=False,
            length=20,
            values_callable=lambda states: [s.value for s in states],
        ),
        nullable=False,
    )
    previous_interval: Mapped[int] = mapped_column(Integer, nullable=False)
    # Minutes unless new_state is review
    new_interval: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_ease_factor: Mapped[float] = mapped_column(Float, nullable=False)
    new_ease_factor: Mapped[float] = mapped_column(Float, nullable=False)
    response_time_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    card: Mapped["Card"] = relationship(back_populates="review_logs")  # type: ignore[name-defined] # noqa: F821

    @classmethod
    def from_entry(cls, entry: ReviewLogEntry) -> "ReviewLog":
        return cls(
            card_id=entry.card_id,
            quality=int(entry.quality),
            new_state=entry.new_state,
            previous_interval=entry.previous_interval,
            new_interval=entry.new_interval,
            previous_ease_factor=entry.previous_ease_factor,
            new_ease_factor=entry.new_ease_factor,
            response_time_seconds=entry.response_time_seconds,
            reviewed_at=entry.reviewed_at,
        )

    def to_entry(self) -> ReviewLogEntry:
        return ReviewLogEntry(
            card_id=self.card_id,
            reviewed_at=self.reviewed_at,
            quality=Quality(self.quality),
            previous_interval=self.previous_interval,
            new_interval=self.new_interval,
            previous_ease_factor=self.previous_ease_factor,
            new_ease_factor=self.new_ease_factor,
            new_state=self.new_state,
            response_time_seconds=self.response_time_seconds,
        )
