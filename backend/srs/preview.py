"""Interval previews shown on the rating buttons ("1m", "10m", "1d", "4d")."""

from datetime import datetime

from backend.srs.sm2 import CardState, LearningState, Quality, SchedulerConfig, SM2Scheduler


def format_interval(state: LearningState, interval: int) -> str:
    """Format an interval compactly. Units follow the state the card lands in.

    Hours, months and years use integer division, so "90m" shows as "1h".
    """
    if state.uses_minutes:
        if interval < 60:
            return f"{interval}m"
        return f"{interval // 60}h"

    if interval == 1:
        return "1d"
    if interval < 30:
        return f"{interval}d"
    if interval < 365:
        return f"{interval // 30}mo"
    return f"{interval // 365}y"


def interval_previews(
    card: CardState,
    config: SchedulerConfig | None = None,
    now: datetime | None = None,
) -> dict[Quality, str]:
    """Preview the next interval for every quality without changing the card."""
    scheduler = SM2Scheduler(config)
    previews: dict[Quality, str] = {}
    for quality in Quality:
        outcome = scheduler.review(card, quality, now=now)
        previews[quality] = format_interval(outcome.state, outcome.interval)
    return previews
