"""
Leitner-style mastery transitions
"""

from .models import MAX_LEVEL, MIN_LEVEL, validate_level

PROMOTION_STEP = 1
DEMOTION_STEP = 2


class MasteryEngine:
    """Moves a word between Leitner boxes after each answer"""

    def __init__(
        self,
        promotion_step: int = PROMOTION_STEP,
        demotion_step: int = DEMOTION_STEP,
    ):
        self.promotion_step = promotion_step
        self.demotion_step = demotion_step

    def next_level(self, current_level: int, correct: bool) -> int:
        """
        Calculate the mastery level after an answer

        Args:
            current_level: Level before the answer, in [0, 5]
            correct: Whether the answer was correct

        Returns:
            New level, in [0, 5]
        """
        validate_level(current_level)

        if correct:
            return min(current_level + self.promotion_step, MAX_LEVEL)
        return max(current_level - self.demotion_step, MIN_LEVEL)


def legacy_mastery_level(correct_count: int, wrong_count: int) -> int:
    """
    Level computed by the retired success-rate formula.

    Only used to reinterpret rows written before the incremental engine;
    new writes always go through MasteryEngine.next_level.
    """
    if correct_count < 0 or wrong_count < 0:
        raise ValueError(
            f"Counts must be non-negative, got correct={correct_count}, wrong={wrong_count}"
        )

    total_attempts = correct_count + wrong_count
    success_rate = correct_count / total_attempts if total_attempts > 0 else 0.0

    if success_rate >= 0.9 and total_attempts >= 5:
        return 5
    if success_rate >= 0.8 and total_attempts >= 4:
        return 4
    if success_rate >= 0.7 and total_attempts >= 3:
        return 3
    if success_rate >= 0.6 and total_attempts >= 2:
        return 2
    if total_attempts >= 1:
        return 1
    return 0


# Global instance
_mastery_engine = None


def get_mastery_engine() -> MasteryEngine:
    """Get global mastery engine instance"""
    global _mastery_engine
    if _mastery_engine is None:
        _mastery_engine = MasteryEngine()
    return _mastery_engine


def next_level(current_level: int, correct: bool) -> int:
    """Convenience function to calculate the next mastery level"""
    return get_mastery_engine().next_level(current_level, correct)
