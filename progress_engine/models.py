"""
Domain models for word progress, review outcomes and learning sessions
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from .utils import calculate_success_rate, parse_timestamp, utc_now

MIN_LEVEL = 0
MAX_LEVEL = 5


def validate_level(level: int) -> int:
    """Reject mastery levels outside [MIN_LEVEL, MAX_LEVEL]"""
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValueError(f"Mastery level must be an integer, got {level!r}")
    if level < MIN_LEVEL or level > MAX_LEVEL:
        raise ValueError(
            f"Mastery level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level}"
        )
    return level


class DifficultyRating(IntEnum):
    """Self-reported difficulty of a review"""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


@dataclass
class WordProgress:
    """Progress of one user on one word"""

    word_id: int
    correct_count: int = 0
    wrong_count: int = 0
    mastery_level: int = 0
    last_practiced: datetime = field(default_factory=utc_now)
    user_id: str | None = None

    def __post_init__(self):
        if self.correct_count < 0 or self.wrong_count < 0:
            raise ValueError(
                f"Counts must be non-negative for word {self.word_id}: "
                f"correct={self.correct_count}, wrong={self.wrong_count}"
            )
        validate_level(self.mastery_level)
        self.last_practiced = parse_timestamp(self.last_practiced)

    @property
    def total_attempts(self) -> int:
        return self.correct_count + self.wrong_count

    def to_record(self) -> dict[str, Any]:
        """Fields sent to the durable store"""
        return {
            "user_id": self.user_id,
            "word_id": self.word_id,
            "correct_count": self.correct_count,
            "wrong_count": self.wrong_count,
            "mastery_level": self.mastery_level,
            "last_practiced": self.last_practiced.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "WordProgress":
        """Build from a store row"""
        return cls(
            word_id=int(record["word_id"]),
            correct_count=int(record.get("correct_count") or 0),
            wrong_count=int(record.get("wrong_count") or 0),
            mastery_level=int(record.get("mastery_level") or 0),
            last_practiced=record["last_practiced"],
            user_id=record.get("user_id"),
        )


@dataclass(frozen=True)
class ReviewOutcome:
    """A single answer given by the learner"""

    word_id: int
    correct: bool
    response_time_ms: int | None = None
    difficulty_rating: DifficultyRating | None = None


@dataclass
class LearningSession:
    """Aggregate of the reviews made between session start and end"""

    id: str
    user_id: str
    direction: str
    started_at: datetime
    ended_at: datetime | None = None
    words_studied: int = 0
    correct_answers: int = 0

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def accuracy(self) -> float:
        return calculate_success_rate(self.correct_answers, self.words_studied)

    def start_fields(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "learning_direction": self.direction,
            "started_at": self.started_at.isoformat(),
        }

    def end_fields(self) -> dict[str, Any]:
        fields = self.start_fields()
        fields.update(
            {
                "ended_at": self.ended_at.isoformat() if self.ended_at else None,
                "words_studied": self.words_studied,
                "correct_answers": self.correct_answers,
            }
        )
        return fields


class QueueItemKind(str, Enum):
    """Kinds of mutations buffered while offline"""

    PROGRESS_UPSERT = "progress-upsert"
    SESSION_UPSERT = "session-upsert"


@dataclass
class OfflineQueueItem:
    """A mutation waiting to reach the durable store"""

    kind: QueueItemKind
    payload: dict[str, Any]
    enqueued_at: datetime = field(default_factory=utc_now)
    key: tuple | None = None


@dataclass
class ProgressStats:
    """Aggregate statistics derived from a progress snapshot"""

    total_words_studied: int = 0
    total_attempts: int = 0
    correct_answers: int = 0
    accuracy: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    mastered_words: int = 0
    words_in_progress: int = 0
    box_distribution: dict[int, int] = field(
        default_factory=lambda: dict.fromkeys(range(MIN_LEVEL, MAX_LEVEL + 1), 0)
    )

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_words_studied": self.total_words_studied,
            "total_attempts": self.total_attempts,
            "correct_answers": self.correct_answers,
            "accuracy": self.accuracy,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "mastered_words": self.mastered_words,
            "words_in_progress": self.words_in_progress,
            "box_distribution": dict(self.box_distribution),
        }
