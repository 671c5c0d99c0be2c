"""
Weighted single-winner selection.

Cumulative-weight sampling over an injectable random source: draw r in
[0, total), subtract each weight in order, the first option that drives r to
zero or below wins. Negative weights are clamped to 0 and zero-weight options
are never picked while any option carries positive weight.
"""

import random
from typing import Callable, Optional, Sequence, TypeVar

T = TypeVar("T")


def weighted_select(
    options: Sequence[T],
    weight: Callable[[T], float],
    rng: Optional[random.Random] = None,
) -> T:
    """Pick one option with probability proportional to its weight."""
    if not options:
        raise ValueError("weighted_select requires at least one option")

    rng = rng or random.Random()
    weights = [max(0.0, float(weight(o))) for o in options]
    total = sum(weights)

    if total <= 0:
        return options[-1]

    r = rng.random() * total
    for option, w in zip(options, weights):
        if w <= 0:
            continue
        r -= w
        if r <= 0:
            return option

    # Rounding left a remainder: fall back to the last weighted option
    return next(o for o, w in zip(reversed(options), reversed(weights)) if w > 0)
