from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Book(Base, TimestampMixin):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Weak-area topic key
    title: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)

    cards: Mapped[list["Card"]] = relationship(back_populates="book")  # type: ignore[name-defined] # noqa: F821
