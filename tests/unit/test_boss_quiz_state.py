"""Unit tests for the boss quiz state machine."""

from __future__ import annotations

import pytest

from unibits.errors import ConfigurationError, InvalidStateError
from unibits.learning.boss_quiz import (
    BOSS_BASE_COINS,
    MAX_LIVES,
    PERFECT_RUN_BONUS_COINS,
    BossQuestion,
    BossQuizState,
    passing_score,
    replay,
)


def _questions(n: int) -> list[BossQuestion]:
    """n questions whose correct answer is always option 0."""
    return [BossQuestion(question_id=i + 1, correct_answer=0) for i in range(n)]


RIGHT = 0
WRONG = 1


class TestPassingScore:
    def test_ten_questions(self):
        assert passing_score(10) == 7

    def test_rounds_up(self):
        assert passing_score(3) == 3  # ceil(2.1)
        assert passing_score(5) == 4  # ceil(3.5)
        assert passing_score(1) == 1

    def test_exact_multiple(self):
        assert passing_score(20) == 14


class TestStart:
    def test_initial_state(self):
        state = BossQuizState.start(_questions(4))
        assert state.question_index == 0
        assert state.score == 0
        assert state.lives == MAX_LIVES
        assert not state.answered
        assert not state.finished

    def test_empty_question_set_rejected(self):
        with pytest.raises(ConfigurationError):
            BossQuizState.start([])


class TestTransitions:
    def test_correct_answer_scores(self):
        state = BossQuizState.start(_questions(3)).answer(RIGHT)
        assert state.score == 1
        assert state.lives == MAX_LIVES
        assert state.answered

    def test_wrong_answer_costs_a_life(self):
        state = BossQuizState.start(_questions(3)).answer(WRONG)
        assert state.score == 0
        assert state.lives == MAX_LIVES - 1

    def test_states_are_immutable(self):
        start = BossQuizState.start(_questions(3))
        start.answer(RIGHT)
        assert start.score == 0
        assert not start.answered

    def test_cannot_answer_twice(self):
        state = BossQuizState.start(_questions(3)).answer(RIGHT)
        with pytest.raises(InvalidStateError):
            state.answer(RIGHT)

    def test_cannot_advance_before_answering(self):
        with pytest.raises(InvalidStateError):
            BossQuizState.start(_questions(3)).advance()

    def test_advance_moves_to_next_question(self):
        state = BossQuizState.start(_questions(3)).answer(RIGHT).advance()
        assert state.question_index == 1
        assert not state.answered
        assert not state.finished

    def test_last_question_finishes(self):
        state = BossQuizState.start(_questions(1)).answer(RIGHT).advance()
        assert state.finished
        assert state.passed

    def test_losing_all_lives_finishes_early(self):
        state = BossQuizState.start(_questions(10))
        for _ in range(3):
            state = state.answer(WRONG).advance()
        assert state.finished
        assert state.question_index == 2
        assert state.lives == 0
        assert not state.passed

    def test_no_answers_after_finish(self):
        state = BossQuizState.start(_questions(1)).answer(RIGHT).advance()
        with pytest.raises(InvalidStateError):
            state.answer(RIGHT)
        with pytest.raises(InvalidStateError):
            state.advance()


class TestOutcome:
    def test_seven_of_ten_passes(self):
        state = replay(_questions(10), [RIGHT] * 7 + [WRONG] * 3)
        assert state.finished
        assert state.score == 7
        assert state.passed

    def test_pass_on_last_question_with_no_lives_left(self):
        """Running out of lives on the final question still counts the score."""
        state = replay(_questions(10), [RIGHT] * 7 + [WRONG] * 3)
        assert state.lives == 0
        assert state.passed
        assert not state.is_perfect

    def test_six_of_ten_fails(self):
        # Third miss lands on question 9 and ends the fight
        state = replay(_questions(10), [RIGHT] * 6 + [WRONG] * 3)
        assert state.finished
        assert state.score == 6
        assert not state.passed

    def test_two_misses_still_pass(self):
        state = replay(_questions(10), [RIGHT] * 6 + [WRONG] + [RIGHT] * 2 + [WRONG])
        assert state.score == 8
        assert state.lives == 1
        assert state.passed

    def test_early_exit_below_threshold_fails(self):
        state = replay(_questions(10), [WRONG, RIGHT, WRONG, RIGHT, WRONG])
        assert state.finished
        assert state.score == 2
        assert not state.passed
        assert state.coin_reward() == 0

    def test_perfect_run(self):
        state = replay(_questions(5), [RIGHT] * 5)
        assert state.is_perfect
        assert state.coin_reward() == BOSS_BASE_COINS + PERFECT_RUN_BONUS_COINS

    def test_passed_but_not_perfect(self):
        state = replay(_questions(5), [RIGHT, WRONG, RIGHT, RIGHT, RIGHT])
        assert state.passed
        assert not state.is_perfect
        assert state.coin_reward() == BOSS_BASE_COINS


class TestRetry:
    def test_retry_after_failure_resets(self):
        failed = replay(_questions(4), [WRONG, WRONG, WRONG])
        fresh = failed.retry()
        assert fresh == BossQuizState.start(_questions(4))

    def test_retry_after_pass_rejected(self):
        passed = replay(_questions(2), [RIGHT, RIGHT])
        with pytest.raises(InvalidStateError, match="Retry"):
            passed.retry()

    def test_retry_mid_fight_rejected(self):
        with pytest.raises(InvalidStateError):
            BossQuizState.start(_questions(2)).retry()


class TestReplay:
    def test_too_many_answers(self):
        with pytest.raises(InvalidStateError, match="Too many"):
            replay(_questions(10), [WRONG, WRONG, WRONG, RIGHT])

    def test_too_few_answers(self):
        with pytest.raises(InvalidStateError, match="Too few"):
            replay(_questions(3), [RIGHT, RIGHT])
