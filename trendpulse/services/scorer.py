from __future__ import annotations

from trendpulse.core.config import ScoreWeights
from trendpulse.domain.models import Signal
from trendpulse.services.metrics import clamp01

DEFAULT_WEIGHTS = ScoreWeights()


def score_of(engagement: float, velocity: float, authority: float, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Blend the three normalized dimensions into one bounded score."""
    return clamp01(
        weights.engagement * clamp01(engagement)
        + weights.velocity * clamp01(velocity)
        + weights.authority * clamp01(authority)
    )


class Scorer:
    """Single blend point every provider funnels through, keeping scores comparable across sources."""

    def __init__(self, weights: ScoreWeights | None = None) -> None:
        self.weights = weights or DEFAULT_WEIGHTS

    def score(self, engagement: float, velocity: float, authority: float) -> float:
        return score_of(engagement, velocity, authority, self.weights)

    def score_signal(self, signal: Signal) -> Signal:
        """Return a scored copy; the input signal is left untouched."""
        return signal.model_copy(update={"score": self.score(signal.engagement, signal.velocity, signal.authority)})
