"""
SM-2 scheduling with a learning-phase sub-state-machine.

Pure functions only: every call takes a state plus an explicit instant and
returns a new state. Nothing here reads the clock or touches storage.

States a card moves through:

    Fresh --lapse--> Learning(0) --lapse--> Learning(1) ... (saturates)
    Learning(n) --success--> Graduated(rep=1) --success--> Graduated(rep=2) ...
    any --lapse--> Learning(0)      any --stop--> Stopped

A stopped card resumes from its frozen repetition/interval/ef on the next
graded review.
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from .constants import (
    DEFAULT_EF,
    FIRST_INTERVAL,
    LEARNING_STEPS,
    MIN_EF,
    MINUTES_PER_DAY,
    PASSING_QUALITY,
    SECOND_INTERVAL,
)
from .models import CardState, GradedReview, RatingEntry, ReviewOutcome, StopReview


def round_half_up(x: float) -> int:
    """Round to the nearest integer, ties upward (JavaScript ``Math.round``)."""
    return math.floor(x + 0.5)


def round_ef(x: float) -> float:
    """
    Round to two decimals the way ``Number.prototype.toFixed(2)`` does.

    The exact binary value of ``x`` is rounded with ties away from zero, so
    histories written by the editor plugin reproduce byte for byte.
    """
    return float(Decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def next_ef(ef: float, quality: int) -> float:
    """SM-2 easiness update, floored at 1.3 and rounded to two decimals."""
    miss = 5 - quality
    updated = ef + (0.1 - miss * (0.08 + miss * 0.02))
    return round_ef(max(updated, MIN_EF))


def initial_state(now: datetime) -> CardState:
    """State for an item seen for the first time."""
    return CardState(
        repetition=0,
        interval=0,
        ef=DEFAULT_EF,
        last_review_date=now,
        next_review_date=None,
        active=True,
        is_learning=False,
        learning_step=None,
        rating_history=(),
    )


def new_card_state(now: datetime) -> CardState:
    """State for a freshly registered card, first due after the first learning step."""
    return replace(initial_state(now), next_review_date=now + timedelta(minutes=LEARNING_STEPS[0]))


def reset_state(now: datetime) -> CardState:
    """Wipe a card's scheduling progress."""
    return new_card_state(now)


def append_rating(state: CardState, entry: RatingEntry) -> CardState:
    return replace(state, rating_history=state.rating_history + (entry,))


def transition(
    state: CardState,
    quality: int,
    review_time: datetime,
    stop: bool = False,
) -> CardState:
    """
    Compute the state that follows a review.

    Args:
        state: Current scheduling state.
        quality: Rating in 0..5. Not validated here; ignored when ``stop``.
        review_time: Instant of the review.
        stop: Take the card out of scheduling instead of grading it.

    Returns:
        The next CardState. The input is never modified.
    """
    if stop:
        return replace(
            state,
            last_review_date=review_time,
            next_review_date=None,
            active=False,
        )

    if quality < PASSING_QUALITY:
        new_state = _lapse(state, review_time)
    else:
        new_state = _success(state, quality, review_time)

    return append_rating(
        new_state,
        RatingEntry(timestamp=review_time, ef=new_state.ef, rating=int(quality)),
    )


def apply_outcome(state: CardState, outcome: ReviewOutcome, review_time: datetime) -> CardState:
    """Dispatch a tagged review outcome to :func:`transition`."""
    if isinstance(outcome, StopReview):
        return transition(state, 0, review_time, stop=True)
    if isinstance(outcome, GradedReview):
        return transition(state, int(outcome.quality), review_time)
    raise TypeError(f"Unknown review outcome: {outcome!r}")


def _lapse(state: CardState, review_time: datetime) -> CardState:
    # A learning card stored without a step restarts at the first step.
    if not state.is_learning or state.learning_step is None:
        step = 0
    else:
        step = min(state.learning_step + 1, len(LEARNING_STEPS) - 1)

    step_minutes = LEARNING_STEPS[step]
    return replace(
        state,
        is_learning=True,
        learning_step=step,
        repetition=0,
        # Sub-day steps round to 0; next_review_date drives learning cards.
        interval=round_half_up(step_minutes / MINUTES_PER_DAY),
        last_review_date=review_time,
        next_review_date=review_time + timedelta(minutes=step_minutes),
        active=True,
    )


def _success(state: CardState, quality: int, review_time: datetime) -> CardState:
    if state.is_learning:
        repetition = 1
        interval = FIRST_INTERVAL
    else:
        repetition = state.repetition + 1
        if repetition == 1:
            interval = FIRST_INTERVAL
        elif repetition == 2:
            interval = SECOND_INTERVAL
        else:
            interval = round_half_up(state.interval * state.ef)

    return replace(
        state,
        is_learning=False,
        learning_step=None,
        repetition=repetition,
        interval=interval,
        ef=next_ef(state.ef, quality),
        last_review_date=review_time,
        next_review_date=review_time + timedelta(days=interval),
        active=True,
    )
