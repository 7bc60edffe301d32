"""
Utility functions for the progress engine
"""

from datetime import UTC, datetime
from typing import Any

MIN_RATING = 1
MAX_RATING = 4


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_timestamp(value: Any) -> datetime:
    """Parse a stored timestamp (datetime or ISO string) into an aware datetime"""
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str):
        return ensure_aware(datetime.fromisoformat(value))
    raise ValueError(f"Invalid timestamp: {value!r}")


def format_progress_stats(stats: dict[str, Any]) -> str:
    """Format user progress statistics"""
    total_words = stats.get("total_words_studied", 0)
    mastered = stats.get("mastered_words", 0)
    in_progress = stats.get("words_in_progress", 0)
    accuracy = stats.get("accuracy", 0)
    streak = stats.get("current_streak", 0)

    result = "📊 Progress:\n\n"
    result += f"📚 Words studied: {total_words}\n"
    result += f"🏆 Mastered: {mastered}\n"
    result += f"🔄 In progress: {in_progress}\n"
    result += f"✅ Accuracy: {accuracy}%\n"
    result += f"🔥 Streak: {streak}\n"

    boxes = stats.get("box_distribution")
    if boxes:
        result += "📦 Boxes: " + " ".join(
            f"{level}:{count}" for level, count in sorted(boxes.items())
        )

    return result.strip()


def validate_rating(rating: int | str | None) -> int | None:
    """Difficulty rating from 1 (again) to 4 (easy), None when invalid"""
    if isinstance(rating, bool):
        return None

    try:
        rating_int = int(rating)
    except (ValueError, TypeError):
        return None

    if MIN_RATING <= rating_int <= MAX_RATING:
        return rating_int
    return None


def calculate_success_rate(correct: int, total: int) -> float:
    """Calculate success rate as percentage"""
    if total == 0:
        return 0.0
    return (correct / total) * 100.0

