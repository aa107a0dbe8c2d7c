"""Uniform and Gaussian random draws used to perturb problems."""

from __future__ import annotations

import math
import random

_DEFAULT_RNG = random.Random()


def rand_double(rng: random.Random | None = None) -> float:
    """Uniform draw from [0, 1)."""
    return (rng if rng is not None else _DEFAULT_RNG).random()


def rand_normal(rng: random.Random | None = None) -> float:
    """Standard normal draw using the Marsaglia polar method."""
    while True:
        x1 = 2.0 * rand_double(rng) - 1.0
        x2 = 2.0 * rand_double(rng) - 1.0
        w = x1 * x1 + x2 * x2
        if 0.0 < w < 1.0:
            break
    return x1 * math.sqrt((-2.0 * math.log(w)) / w)