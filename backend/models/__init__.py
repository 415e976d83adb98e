"""SQLAlchemy ORM models for the Noor SRS database."""

from backend.models.base import Base
from backend.models.book import Book
from backend.models.card import Card
from backend.models.review_log import ReviewLog

__all__ = ["Base", "Book", "Card", "ReviewLog"]
