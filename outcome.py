"""
Outcome predetermination.

The landing bin is drawn before the ball is dropped; the physics only
steers toward it. Weights decay exponentially with distance from the
center bin, so the low multipliers in the middle come up most often and
the edge jackpots stay rare.
"""

import numpy as np

DECAY_RATE: float = 0.6


def bin_weights(bin_count: int, decay_rate: float = DECAY_RATE) -> np.ndarray:
    """weight[i] = exp(-|i - center| * decay_rate), center = (bin_count - 1) / 2."""
    if bin_count < 1:
        raise ValueError(f"bin_count must be >= 1, got {bin_count}")
    center = (bin_count - 1) / 2.0
    distance = np.abs(np.arange(bin_count, dtype=float) - center)
    return np.exp(-distance * decay_rate)


def bin_probabilities(bin_count: int, decay_rate: float = DECAY_RATE) -> np.ndarray:
    weights = bin_weights(bin_count, decay_rate)
    return weights / weights.sum()


def expected_return(multipliers, decay_rate: float = DECAY_RATE, wager: int = None) -> float:
    """
    Theoretical return-to-player: sum of p_i * multiplier_i.

    With a wager, payouts are truncated to whole units first
    (floor(wager * m) / wager), matching what a ball actually pays.
    """
    mult = np.asarray(multipliers, dtype=float)
    if wager is not None:
        mult = np.floor(wager * mult) / wager
    return float(np.dot(bin_probabilities(len(mult), decay_rate), mult))


class OutcomeSelector:
    """Categorical draw over bin indices from an injected numpy Generator."""

    def __init__(self, rng: np.random.Generator = None, decay_rate: float = DECAY_RATE):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.decay_rate = decay_rate

    def select_bin(self, bin_count: int) -> int:
        probs = bin_probabilities(bin_count, self.decay_rate)
        return int(self.rng.choice(bin_count, p=probs))
