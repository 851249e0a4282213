from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BonusPolicy:
    """Tuning for the bonus wheel.

    - below `min_spins` since the last bonus: never eligible
    - at or above `max_spins`: always eligible
    - in between: probability `t ** exponent`, t in [0, 1)

    `tiers` are (amount, weight) pairs; weights must sum to 1.
    """

    min_spins: int = 5
    max_spins: int = 20
    exponent: float = 1.8
    tiers: tuple[tuple[int, float], ...] = ((200, 0.35), (400, 0.35), (600, 0.20), (800, 0.10))

    def __post_init__(self) -> None:
        if self.min_spins < 0 or self.max_spins <= self.min_spins:
            raise ValueError("max_spins must be greater than min_spins >= 0")
        if self.exponent < 1:
            raise ValueError("exponent must be >= 1 so the curve stays convex")
        if not self.tiers:
            raise ValueError("at least one reward tier is required")
        if abs(sum(w for _, w in self.tiers) - 1.0) > 1e-9:
            raise ValueError("reward tier weights must sum to 1")


DEFAULT_POLICY = BonusPolicy()


@dataclass(frozen=True, slots=True)
class BonusCheck:
    eligible: bool
    spins_since_last_bonus: int
    total_spins: int


def bonus_probability(elapsed: int, *, policy: BonusPolicy = DEFAULT_POLICY) -> float:
    if elapsed <= policy.min_spins:
        return 0.0
    if elapsed >= policy.max_spins:
        return 1.0
    t = (elapsed - policy.min_spins) / (policy.max_spins - policy.min_spins)
    return t**policy.exponent


def check_eligibility(
    *,
    spin_counter: int,
    last_bonus_at: int,
    policy: BonusPolicy = DEFAULT_POLICY,
    rng: random.Random | None = None,
) -> BonusCheck:
    elapsed = spin_counter - last_bonus_at
    p = bonus_probability(elapsed, policy=policy)
    if p >= 1.0:
        eligible = True
    elif p <= 0.0:
        eligible = False
    else:
        eligible = (rng or random).random() < p
    return BonusCheck(eligible=eligible, spins_since_last_bonus=elapsed, total_spins=spin_counter)


def draw_reward_amount(*, policy: BonusPolicy = DEFAULT_POLICY, rng: random.Random | None = None) -> int:
    """Weighted draw over the reward tiers. Doesn't touch session state."""

    roll = (rng or random).random()
    cumulative = 0.0
    for amount, weight in policy.tiers:
        cumulative += weight
        if roll < cumulative:
            return amount
    # Float rounding can leave roll == cumulative on the last tier.
    return policy.tiers[-1][0]
