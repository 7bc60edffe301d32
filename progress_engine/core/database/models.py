"""
Database row models for the progress store
"""

from datetime import datetime
from typing import TypedDict


class ProgressRecord(TypedDict):
    """User progress row"""
    id: int
    user_id: str
    word_id: int
    correct_count: int
    wrong_count: int
    mastery_level: int
    last_practiced: datetime
    created_at: datetime
    updated_at: datetime


class SessionRecord(TypedDict):
    """Learning session row"""
    id: str
    user_id: str
    learning_direction: str
    started_at: datetime
    ended_at: datetime | None
    words_studied: int
    correct_answers: int
    created_at: datetime


class ReviewHistoryRecord(TypedDict):
    """Review history row"""
    id: int
    user_id: str
    word_id: int
    correct: bool
    response_time_ms: int | None
    difficulty_rating: int | None
    previous_level: int
    new_level: int
    review_date: datetime
