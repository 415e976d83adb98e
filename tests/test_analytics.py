"""Tests for weak-area detection, card recommendations, and the study plan."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from backend.srs.analytics import (
    MasteryLevel,
    ReviewPriority,
    Severity,
    WeakArea,
    build_study_plan,
    focus_areas,
    mastery_breakdown,
    mastery_level,
    recommend_card,
    recommend_cards,
    reading_suggestions,
    weak_areas,
)
from backend.srs.history import ReviewLogEntry
from backend.srs.sm2 import LearningState, Quality

NOW = datetime(2024, 3, 1, 12, 0)


@dataclass
class StubCard:
    id: int
    topic: str | None = None
    source_page: int | None = None
    state: LearningState = LearningState.REVIEW
    due: datetime = NOW + timedelta(days=5)
    repetitions: int = 3


def reviews(
    card_id: int,
    passed: int,
    failed: int,
    at: datetime = NOW - timedelta(days=1),
    response_time: float | None = None,
) -> list[ReviewLogEntry]:
    qualities = [Quality.GOOD] * passed + [Quality.AGAIN] * failed
    return [
        ReviewLogEntry(
            card_id=card_id,
            reviewed_at=at,
            quality=q,
            previous_interval=1,
            new_interval=1,
            previous_ease_factor=2.5,
            new_ease_factor=2.5,
            new_state=LearningState.REVIEW,
            response_time_seconds=response_time,
        )
        for q in qualities
    ]


def area(topic: str, failure_rate: float) -> WeakArea:
    return WeakArea(
        topic=topic,
        failure_rate=failure_rate,
        average_response_time=0.0,
        review_count=10,
        card_count=1,
        last_review_date=NOW,
    )


# --- Mastery ---


class TestMastery:
    def test_levels(self) -> None:
        assert mastery_level(LearningState.NEW, 0) is MasteryLevel.NEW
        assert mastery_level(LearningState.LEARNING, 0) is MasteryLevel.LEARNING
        assert mastery_level(LearningState.RELEARNING, 8) is MasteryLevel.LEARNING
        assert mastery_level(LearningState.REVIEW, 2) is MasteryLevel.LEARNING
        assert mastery_level(LearningState.REVIEW, 3) is MasteryLevel.REVIEWING
        assert mastery_level(LearningState.REVIEW, 6) is MasteryLevel.MASTERED

    def test_breakdown_includes_every_level(self) -> None:
        cards = [StubCard(1, state=LearningState.NEW, repetitions=0), StubCard(2, repetitions=7)]
        breakdown = mastery_breakdown(cards)
        assert breakdown[MasteryLevel.NEW] == 1
        assert breakdown[MasteryLevel.MASTERED] == 1
        assert breakdown[MasteryLevel.REVIEWING] == 0
        assert breakdown[MasteryLevel.LEARNING] == 0


# --- Weak areas ---


class TestWeakAreas:
    def test_medium_severity_topic(self) -> None:
        cards = [StubCard(1, topic="Grammar")]
        areas = weak_areas(reviews(1, passed=7, failed=3), cards, now=NOW)
        assert len(areas) == 1
        assert areas[0].topic == "Grammar"
        assert abs(areas[0].failure_rate - 0.3) < 1e-9
        assert areas[0].severity is Severity.MEDIUM
        assert areas[0].review_count == 10

    def test_low_failure_rate_is_not_weak(self) -> None:
        cards = [StubCard(1, topic="Grammar")]
        assert weak_areas(reviews(1, passed=18, failed=2), cards, now=NOW) == []

    def test_three_failures_is_weak_even_at_low_rate(self) -> None:
        cards = [StubCard(1, topic="Grammar")]
        areas = weak_areas(reviews(1, passed=17, failed=3), cards, now=NOW)
        assert len(areas) == 1
        assert areas[0].severity is Severity.LOW

    def test_high_severity(self) -> None:
        cards = [StubCard(1, topic="Vocabulary")]
        areas = weak_areas(reviews(1, passed=2, failed=2), cards, now=NOW)
        assert areas[0].severity is Severity.HIGH

    def test_hard_counts_as_failure(self) -> None:
        entries = [
            ReviewLogEntry(1, NOW, Quality.HARD, 1, 1, 2.5, 2.35, LearningState.REVIEW),
            ReviewLogEntry(1, NOW, Quality.GOOD, 1, 2, 2.5, 2.5, LearningState.REVIEW),
        ]
        areas = weak_areas(entries, [StubCard(1, topic="Tajweed")], now=NOW)
        assert areas[0].failure_rate == 0.5

    def test_old_reviews_ignored(self) -> None:
        cards = [StubCard(1, topic="Grammar")]
        old = reviews(1, passed=0, failed=5, at=NOW - timedelta(days=45))
        assert weak_areas(old, cards, now=NOW) == []
        assert len(weak_areas(old, cards, window_days=60, now=NOW)) == 1

    def test_sorted_by_failure_rate(self) -> None:
        cards = [StubCard(1, topic="A"), StubCard(2, topic="B"), StubCard(3, topic="C")]
        entries = (
            reviews(1, passed=6, failed=4)
            + reviews(2, passed=1, failed=3)
            + reviews(3, passed=0, failed=0)
        )
        areas = weak_areas(entries, cards, now=NOW)
        assert [a.topic for a in areas] == ["B", "A"]

    def test_aggregates_per_topic(self) -> None:
        cards = [StubCard(1, topic="Fiqh"), StubCard(2, topic="Fiqh")]
        entries = (
            reviews(1, passed=1, failed=2, at=NOW - timedelta(days=3), response_time=4.0)
            + reviews(2, passed=0, failed=1, at=NOW - timedelta(days=1), response_time=8.0)
        )
        (fiqh,) = weak_areas(entries, cards, now=NOW)
        assert fiqh.review_count == 4
        assert fiqh.card_count == 2
        assert fiqh.average_response_time == 5.0
        assert fiqh.last_review_date == NOW - timedelta(days=1)

    def test_cards_without_topic_or_unknown_are_skipped(self) -> None:
        cards = [StubCard(1, topic=None)]
        entries = reviews(1, passed=0, failed=5) + reviews(99, passed=0, failed=5)
        assert weak_areas(entries, cards, now=NOW) == []

    def test_custom_topic_key(self) -> None:
        cards = [StubCard(1, source_page=12), StubCard(2, source_page=80)]
        entries = reviews(1, passed=0, failed=3) + reviews(2, passed=5, failed=0)
        areas = weak_areas(
            entries,
            cards,
            now=NOW,
            topic_of=lambda c: f"Chapter {c.source_page // 50 + 1}",
        )
        assert [a.topic for a in areas] == ["Chapter 1"]


# --- Recommendations ---


class TestRecommendations:
    def test_overdue(self) -> None:
        card = StubCard(1, due=NOW - timedelta(days=2))
        rec = recommend_card(card, [], now=NOW)
        assert rec.priority is ReviewPriority.HIGH
        assert rec.reason == "Overdue"

    def test_overdue_and_struggling(self) -> None:
        card = StubCard(1, due=NOW - timedelta(days=2))
        rec = recommend_card(card, reviews(1, passed=1, failed=1), now=NOW)
        assert rec.priority is ReviewPriority.CRITICAL
        assert rec.failure_rate == 0.5

    def test_due_today(self) -> None:
        card = StubCard(1, due=NOW - timedelta(hours=2))
        rec = recommend_card(card, reviews(1, passed=3, failed=0), now=NOW)
        assert rec.priority is ReviewPriority.NORMAL

    def test_due_and_struggling(self) -> None:
        card = StubCard(1, due=NOW)
        rec = recommend_card(card, reviews(1, passed=1, failed=1), now=NOW)
        assert rec.priority is ReviewPriority.HIGH

    def test_not_due_but_challenging(self) -> None:
        card = StubCard(1)
        rec = recommend_card(card, reviews(1, passed=1, failed=2), now=NOW)
        assert rec.priority is ReviewPriority.OPTIONAL

    def test_not_due_and_fine(self) -> None:
        card = StubCard(1)
        assert recommend_card(card, reviews(1, passed=3, failed=2), now=NOW) is None

    def test_only_last_week_counts(self) -> None:
        card = StubCard(1)
        old = reviews(1, passed=0, failed=4, at=NOW - timedelta(days=10))
        assert recommend_card(card, old, now=NOW) is None

    def test_sorted_and_limited(self) -> None:
        cards = [
            StubCard(1, due=NOW),
            StubCard(2, due=NOW - timedelta(days=3)),
            StubCard(3),
            StubCard(4, due=NOW - timedelta(days=3)),
        ]
        entries = reviews(4, passed=0, failed=2)
        recs = recommend_cards(cards, entries, now=NOW)
        assert [r.card_id for r in recs] == [4, 2, 1]
        assert len(recommend_cards(cards, entries, now=NOW, limit=2)) == 2


# --- Focus areas, reading, plan ---


class TestStudyPlan:
    def test_focus_areas(self) -> None:
        focus = focus_areas([area("A", 0.75), area("B", 0.25)])
        assert focus[0].topic == "A"
        assert focus[0].reviews_needed == 7
        assert abs(focus[0].retention_rate - 0.25) < 1e-9
        assert focus[1].reviews_needed == 3

    def test_focus_areas_top_five(self) -> None:
        areas = [area(str(i), 0.5) for i in range(8)]
        assert len(focus_areas(areas)) == 5

    def test_reading_suggestions(self) -> None:
        cards = [
            StubCard(1, topic="Seerah", source_page=10),
            StubCard(2, topic="Seerah", source_page=15),
            StubCard(3, topic="Seerah", source_page=12),
            StubCard(4, topic="Hadith", source_page=40),
            StubCard(5, topic="Aqeedah"),
        ]
        suggestions = reading_suggestions(
            [area("Seerah", 0.6), area("Hadith", 0.4), area("Aqeedah", 0.3)], cards
        )
        assert [s.topic for s in suggestions] == ["Seerah", "Hadith"]
        assert (suggestions[0].first_page, suggestions[0].last_page) == (10, 15)
        assert suggestions[0].estimated_minutes == 12
        assert suggestions[0].page_range == "Pages 10-15"
        assert suggestions[1].estimated_minutes == 5

    def test_plan_duration(self) -> None:
        cards = [StubCard(i, due=NOW) for i in range(1, 11)]
        plan = build_study_plan(cards, [], now=NOW)
        assert len(plan.recommendations) == 10
        assert plan.estimated_duration == timedelta(minutes=5)
        assert plan.formatted_duration == "5m"
        assert plan.generated_at == NOW

    def test_plan_duration_capped(self) -> None:
        cards = [
            StubCard(1, topic="Tafsir", source_page=1),
            StubCard(2, topic="Tafsir", source_page=100),
        ]
        entries = reviews(1, passed=0, failed=3) + reviews(2, passed=0, failed=3)
        plan = build_study_plan(cards, entries, now=NOW)
        assert plan.reading_suggestions[0].estimated_minutes == 200
        assert plan.estimated_duration == timedelta(minutes=75)
        assert plan.formatted_duration == "1h 15m"

    def test_empty_plan(self) -> None:
        plan = build_study_plan([], [], now=NOW)
        assert plan.recommendations == []
        assert plan.weak_areas == []
        assert plan.focus_areas == []
        assert plan.reading_suggestions == []
        assert plan.formatted_duration == "0m"
