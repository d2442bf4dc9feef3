"""Boss quiz session as an immutable state machine.

Each transition returns a new BossQuizState; nothing here touches the database.
The session passes when score >= ceil(total * 0.7). Lives only decide when the
session ends: the advance() after the last life is lost finishes it early.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from unibits.errors import ConfigurationError, InvalidStateError

MAX_LIVES = 3
PASSING_RATIO_NUMERATOR = 7
PASSING_RATIO_DENOMINATOR = 10

BOSS_XP_REWARD = 500
BOSS_BASE_COINS = 50
PERFECT_RUN_BONUS_COINS = 50


def passing_score(total_questions: int) -> int:
    """ceil(total * 0.7) in integer arithmetic."""
    return -(-total_questions * PASSING_RATIO_NUMERATOR // PASSING_RATIO_DENOMINATOR)


@dataclass(frozen=True)
class BossQuestion:
    question_id: int
    correct_answer: int


@dataclass(frozen=True)
class BossQuizState:
    """Snapshot of a boss fight. Create with BossQuizState.start()."""

    questions: tuple[BossQuestion, ...]
    question_index: int = 0
    score: int = 0
    lives: int = MAX_LIVES
    answered: bool = False
    finished: bool = False

    @classmethod
    def start(cls, questions: Iterable[BossQuestion]) -> BossQuizState:
        questions = tuple(questions)
        if not questions:
            raise ConfigurationError("Boss quiz has no questions configured")
        return cls(questions=questions)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def passing_score(self) -> int:
        return passing_score(self.total_questions)

    @property
    def current_question(self) -> BossQuestion:
        return self.questions[self.question_index]

    @property
    def passed(self) -> bool:
        return self.finished and self.score >= self.passing_score

    @property
    def is_perfect(self) -> bool:
        return self.finished and self.score == self.total_questions and self.lives == MAX_LIVES

    def answer(self, choice_index: int) -> BossQuizState:
        if self.finished:
            raise InvalidStateError("Boss quiz is already finished")
        if self.answered:
            raise InvalidStateError("Question already answered, call advance() first")
        if choice_index == self.current_question.correct_answer:
            return replace(self, answered=True, score=self.score + 1)
        return replace(self, answered=True, lives=self.lives - 1)

    def advance(self) -> BossQuizState:
        if self.finished:
            raise InvalidStateError("Boss quiz is already finished")
        if not self.answered:
            raise InvalidStateError("Answer the current question before advancing")
        if self.lives == 0 or self.question_index == self.total_questions - 1:
            return replace(self, finished=True)
        return replace(self, question_index=self.question_index + 1, answered=False)

    def retry(self) -> BossQuizState:
        """Restart with the same questions. Only allowed after a failed run."""
        if not self.finished or self.passed:
            raise InvalidStateError("Retry is only allowed after a failed boss quiz")
        return BossQuizState.start(self.questions)

    def coin_reward(self) -> int:
        """Coins for a passed run: flat base plus the perfect-run bonus."""
        if not self.passed:
            return 0
        return BOSS_BASE_COINS + (PERFECT_RUN_BONUS_COINS if self.is_perfect else 0)


def replay(questions: Sequence[BossQuestion], choices: Sequence[int]) -> BossQuizState:
    """Run a full answer sequence through a fresh session.

    Raises InvalidStateError if answers continue after the session finished or
    stop before it finished.
    """
    state = BossQuizState.start(questions)
    for position, choice in enumerate(choices):
        if state.finished:
            raise InvalidStateError(
                "Too many answers: the boss quiz already finished",
                answers_used=position,
            )
        state = state.answer(choice).advance()
    if not state.finished:
        raise InvalidStateError(
            "Too few answers to finish the boss quiz",
            answers_given=len(choices),
        )
    return state
