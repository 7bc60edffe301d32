"""
Due-date scheduling for Leitner boxes
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from .models import WordProgress
from .utils import ensure_aware, utc_now

logger = logging.getLogger(__name__)

# Days until the next review, indexed by mastery level
REVIEW_INTERVALS_DAYS = (1, 3, 7, 14, 30, 90)


def get_interval_days(level: int) -> int:
    """Review interval for a level, clamped to the last table entry"""
    if level < 0:
        raise ValueError(f"Mastery level must be non-negative, got {level}")
    return REVIEW_INTERVALS_DAYS[min(level, len(REVIEW_INTERVALS_DAYS) - 1)]


def next_due_date(level: int, last_reviewed: datetime) -> datetime:
    """Calculate when a word at the given level should be reviewed again"""
    return ensure_aware(last_reviewed) + timedelta(days=get_interval_days(level))


def is_due(progress: WordProgress | None, now: datetime | None = None) -> bool:
    """New words are always due; others once their interval has elapsed"""
    if progress is None:
        return True

    now = ensure_aware(now) if now else utc_now()
    return now >= next_due_date(progress.mastery_level, progress.last_practiced)


def filter_due(
    candidate_ids: Iterable[int],
    progress_by_word_id: Mapping[int, WordProgress],
    now: datetime | None = None,
) -> list[int]:
    """Keep the candidates that are due, preserving candidate order"""
    now = ensure_aware(now) if now else utc_now()
    return [
        word_id
        for word_id in candidate_ids
        if is_due(progress_by_word_id.get(word_id), now)
    ]


def sort_by_priority(
    word_ids: Iterable[int],
    progress_by_word_id: Mapping[int, WordProgress],
) -> list[int]:
    """
    Order words for review.

    Words without progress come first, then lower mastery levels, then
    words practiced longest ago. Ties keep their input order.
    """

    def priority(word_id: int):
        progress = progress_by_word_id.get(word_id)
        if progress is None:
            return (0, 0, 0.0)
        return (1, progress.mastery_level, progress.last_practiced.timestamp())

    return sorted(word_ids, key=priority)


def get_due_words(
    candidate_ids: Iterable[int],
    progress_by_word_id: Mapping[int, WordProgress],
    now: datetime | None = None,
    limit: int | None = None,
) -> list[int]:
    """Due words ranked by review priority"""
    due = filter_due(candidate_ids, progress_by_word_id, now)
    ranked = sort_by_priority(due, progress_by_word_id)

    logger.debug(f"Found {len(ranked)} due words")

    if limit is not None:
        return ranked[:limit]
    return ranked
