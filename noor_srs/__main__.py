"""CLI interface for Noor SRS.

Usage:
    python -m noor_srs review                      Start a review session
    python -m noor_srs due                         Show how many cards are due
    python -m noor_srs stats                       Show your statistics
    python -m noor_srs add "front" "back"          Add a new card
    python -m noor_srs weak                        Show weak areas
    python -m noor_srs plan                        Show today's study plan
    python -m noor_srs reset [card_id]             Reset cards to New
"""

import argparse
import asyncio
import logging
import time

from backend.config import settings, utcnow
from backend.database import async_session, engine, ensure_sqlite_dir
from backend.models import Base
from backend.srs.analytics import build_study_plan, mastery_breakdown, weak_areas
from backend.srs.cards import (
    CardNotFoundError,
    create_card,
    fetch_cards,
    fetch_review_entries,
    get_card,
    get_or_create_book,
    reset_card,
    reset_cards,
)
from backend.srs.history import retention_rate, reviews_on_day, study_streak, within_window
from backend.srs.preview import format_interval
from backend.srs.queue import card_counts
from backend.srs.session import start_session
from backend.srs.sm2 import LearningState, Quality, SchedulerConfig


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    ensure_sqlite_dir(str(engine.url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _prompt_rating() -> Quality | None:
    """Ask for a 1-4 rating until one is given. Returns None on quit."""
    while True:
        response = input("  Rate [1-4]: ").strip().lower()
        if response == "q":
            return None
        if response.isdigit() and 1 <= int(response) <= 4:
            return Quality.from_rating(int(response))
        print("  Please enter 1, 2, 3 or 4 (q to quit).")


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive review session."""
    await ensure_db()
    config = SchedulerConfig.from_settings(settings)

    async with async_session() as db:
        review_session = await start_session(
            db, book_id=args.book, config=config, limit=args.max_cards
        )

        if review_session.is_complete:
            print("\nNo cards due for review. You're all caught up!")
            return

        counts = card_counts(review_session.queue.cards)
        print("\n  Review Session")
        print(
            f"  {counts.learning} learning + {counts.new} new + {counts.due} review"
            f" = {review_session.queue.total} cards\n"
        )
        print("  Ratings: 1=Again  2=Hard  3=Good  4=Easy")
        print("  Type 'q' to quit\n")

        while (session_card := review_session.get_next()) is not None:
            card = session_card.card
            card_label = f"  [{review_session.remaining} left]"
            if card.state is LearningState.NEW:
                card_label += " (NEW)"
            elif card.topic:
                card_label += f" ({card.topic})"
            print(card_label)
            print(f"  {card.front}")

            start_time = time.time()
            if input("\n  Press enter to show the answer: ").strip().lower() == "q":
                print("\n  Session ended early.")
                break
            print(f"  {card.back}\n")

            buttons = "  ".join(
                f"{q.rating}={q.name.capitalize()} ({interval})"
                for q, interval in session_card.previews.items()
            )
            print(f"  {buttons}")
            quality = _prompt_rating()
            if quality is None:
                print("\n  Session ended early.")
                break

            outcome = await review_session.submit_rating(
                db,
                session_card,
                quality,
                response_time_seconds=round(time.time() - start_time, 1),
            )
            print(f"  Next review in {format_interval(outcome.state, outcome.interval)}\n")

    stats = review_session.stats
    accuracy = stats.correct / stats.cards_reviewed * 100 if stats.cards_reviewed else 0
    print("\n  Session Complete!")
    print(
        f"  Reviewed: {stats.cards_reviewed}  Correct: {stats.correct}"
        f"  Accuracy: {accuracy:.0f}%\n"
    )


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await ensure_db()

    async with async_session() as db:
        cards = await fetch_cards(db, args.book)

    counts = card_counts(cards)
    print(f"  {counts.due} cards due, {counts.learning} learning, {counts.new} new cards available")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show review statistics."""
    await ensure_db()
    now = utcnow()

    async with async_session() as db:
        cards = await fetch_cards(db, args.book)
        entries = await fetch_review_entries(db)

    if args.book is not None:
        card_ids = {card.id for card in cards}
        entries = [e for e in entries if e.card_id in card_ids]

    counts = card_counts(cards, now=now)
    mastery = mastery_breakdown(cards)
    recent = within_window(entries, settings.weak_area_window_days, now=now)

    print(f"\n  {settings.app_name} Statistics")
    print(f"  {'Total cards:':<20} {len(cards)}")
    print(f"  {'Due now:':<20} {counts.due}")
    print(f"  {'Learning:':<20} {counts.learning}")
    print(f"  {'New (unseen):':<20} {counts.new}")
    for level, n in mastery.items():
        print(f"  {level.value.capitalize() + ':':<20} {n}")
    print(f"  {'Retention:':<20} {retention_rate(recent) * 100:.0f}%")
    print(f"  {'Reviews today:':<20} {reviews_on_day(entries, now.date())}")
    print(f"  {'Streak (days):':<20} {study_streak(entries, now.date())}")
    print(f"  {'Total reviews:':<20} {len(entries)}")
    print()


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a new card, optionally under a book."""
    await ensure_db()

    async with async_session() as db:
        book_id = None
        if args.book_title:
            book = await get_or_create_book(db, args.book_title)
            book_id = book.id

        card = await create_card(
            db,
            front=args.front,
            back=args.back,
            book_id=book_id,
            source_page=args.page,
        )

    print(f"  Added card {card.id} (ready for review):")
    print(f"    {card.front}")
    print(f"    {card.back}")


async def cmd_weak(args: argparse.Namespace) -> None:
    """Show topics with an elevated failure rate."""
    await ensure_db()
    window_days = args.days or settings.weak_area_window_days

    async with async_session() as db:
        cards = await fetch_cards(db)
        entries = await fetch_review_entries(db, days=window_days)

    areas = weak_areas(entries, cards, window_days=window_days)
    if not areas:
        print(f"  No weak areas in the last {window_days} days.")
        return

    print(f"\n  Weak areas (last {window_days} days)")
    for area in areas:
        print(
            f"  {area.topic:<30} {area.failure_rate * 100:>4.0f}% failed"
            f"  {area.severity.value:<6}  {area.review_count} reviews of {area.card_count} cards"
        )
    print()


async def cmd_plan(args: argparse.Namespace) -> None:
    """Show today's study plan."""
    await ensure_db()

    async with async_session() as db:
        cards = await fetch_cards(db)
        entries = await fetch_review_entries(db, days=settings.weak_area_window_days)

    plan = build_study_plan(
        cards,
        entries,
        weak_window_days=settings.weak_area_window_days,
        recommendation_window_days=settings.recommendation_window_days,
        max_recommendations=settings.max_recommendations,
    )

    print(f"\n  Today's plan ({plan.formatted_duration})")
    print(f"  {len(plan.recommendations)} cards to review")
    for rec in plan.recommendations[:10]:
        print(f"    card {rec.card_id:<6} {rec.priority.name.lower():<9} {rec.reason}")
    if plan.focus_areas:
        print("\n  Focus on:")
        for focus in plan.focus_areas:
            print(
                f"    {focus.topic}: {focus.retention_rate * 100:.0f}% retention,"
                f" {focus.reviews_needed} more reviews"
            )
    if plan.reading_suggestions:
        print("\n  Re-read:")
        for suggestion in plan.reading_suggestions:
            print(
                f"    {suggestion.topic}, {suggestion.page_range}"
                f" (~{suggestion.estimated_minutes} min)"
            )
    print()


async def cmd_reset(args: argparse.Namespace) -> None:
    """Reset one card, one book, or every card to New."""
    await ensure_db()

    async with async_session() as db:
        if args.card_id is not None:
            try:
                card = await get_card(db, args.card_id)
            except CardNotFoundError as e:
                print(f"  {e}")
                return
            await reset_card(db, card)
            print(f"  Card {card.id} reset to New.")
            return

        count = await reset_cards(db, book_id=args.book)
    print(f"  {count} cards reset to New.")


def main() -> None:
    """Entry point for the Noor SRS CLI application."""
    parser = argparse.ArgumentParser(
        prog="noor_srs",
        description="Spaced repetition for the books you read",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Start a review session")
    review_parser.add_argument(
        "--max-cards", type=int, default=settings.max_cards_per_session, help="Max cards"
    )
    review_parser.add_argument("--book", type=int, help="Only review cards from this book id")

    # due
    due_parser = subparsers.add_parser("due", help="Show cards due for review")
    due_parser.add_argument("--book", type=int, help="Book id")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show your statistics")
    stats_parser.add_argument("--book", type=int, help="Book id")

    # add
    add_parser = subparsers.add_parser("add", help="Add a new card")
    add_parser.add_argument("front", help="Question side")
    add_parser.add_argument("back", help="Answer side")
    add_parser.add_argument("-b", "--book", dest="book_title", help="Book title (created if new)")
    add_parser.add_argument("-p", "--page", type=int, help="Source page in the book")

    # weak
    weak_parser = subparsers.add_parser("weak", help="Show weak areas")
    weak_parser.add_argument("--days", type=int, help="Look-back window in days")

    # plan
    subparsers.add_parser("plan", help="Show today's study plan")

    # reset
    reset_parser = subparsers.add_parser("reset", help="Reset cards to New")
    reset_parser.add_argument("card_id", type=int, nargs="?", help="Card id (default: all)")
    reset_parser.add_argument("--book", type=int, help="Only reset cards from this book id")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "review": cmd_review,
        "due": cmd_due,
        "stats": cmd_stats,
        "add": cmd_add,
        "weak": cmd_weak,
        "plan": cmd_plan,
        "reset": cmd_reset,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
