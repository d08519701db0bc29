"""
Spaced repetition scheduler (SM-2 variant).

Cards live in two buckets only: new (reviews == 0) and learned (reviews > 0).

Ratings: 'again' (1), 'hard' (2), 'good' (3), 'easy' (4)

Every function here is pure: the caller supplies `now` in epoch
milliseconds and persists the result.
"""
import math
from typing import NamedTuple

# Rating constants
AGAIN = 1
HARD = 2
GOOD = 3
EASY = 4
RATINGS = (AGAIN, HARD, GOOD, EASY)

# SM-2 quality for each passing rating
QUALITY = {HARD: 3, GOOD: 4, EASY: 5}

DEFAULT_EASE = 2.5
MIN_EASE = 1.3
LAPSE_EASE_PENALTY = 0.2

FIRST_INTERVAL = 1
SECOND_INTERVAL = 6

MS_PER_DAY = 86_400_000


class ScheduleResult(NamedTuple):
    interval: int
    ease_factor: float
    reviews: int
    next_review_due: int


def schedule(card, rating, now):
    """
    Given a card (anything with interval, ease_factor and reviews) and a
    rating (1-4), returns the next scheduling state.

    `reviews` is the count before this review; it grows by one whatever
    the rating.
    """
    interval = card.interval
    ease_factor = card.ease_factor
    reviews = card.reviews

    if rating == AGAIN:
        interval = 0
        ease_factor = max(MIN_EASE, ease_factor - LAPSE_EASE_PENALTY)
    else:
        if reviews == 0:
            interval = FIRST_INTERVAL
        elif reviews == 1:
            interval = SECOND_INTERVAL
        else:
            interval = _round_half_up(interval * ease_factor)
        ease_factor = _next_ease(ease_factor, QUALITY[rating])

    return ScheduleResult(
        interval=interval,
        ease_factor=ease_factor,
        reviews=reviews + 1,
        next_review_due=now + interval * MS_PER_DAY,
    )


def _next_ease(ease_factor, quality):
    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floor only
    miss = 5 - quality
    ease_factor = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    return max(MIN_EASE, ease_factor)


def _round_half_up(value):
    # Intervals are never negative, so floor(x + 0.5) rounds halves away from zero
    return int(math.floor(value + 0.5))
