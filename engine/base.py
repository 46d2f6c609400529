"""
REELSMITH — Base Game Engine

Abstract base for every game math model (slots, scratch cards).
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from engine.rng import SeededRNG

logger = logging.getLogger("reelsmith.sim")


@dataclass
class SimResult:
    """Simulation results for a game math model."""
    game_type: str
    rounds: int
    rtp_theoretical: float
    rtp_measured: float
    avg_multiplier: float
    max_multiplier_hit: float
    hit_rate: float  # fraction of rounds that returned > 0
    std_dev: float
    total_wagered: float
    total_returned: float
    confidence_95: tuple = (0.0, 0.0)
    distribution: dict = field(default_factory=dict)
    feature_rates: dict = field(default_factory=dict)

    @property
    def house_edge(self) -> float:
        return 1.0 - self.rtp_measured

    def to_dict(self) -> dict:
        return {
            "game_type": self.game_type,
            "rounds": self.rounds,
            "rtp_theoretical": round(self.rtp_theoretical, 6),
            "rtp_measured": round(self.rtp_measured, 6),
            "house_edge_measured": round(self.house_edge, 6),
            "avg_multiplier": round(self.avg_multiplier, 4),
            "max_multiplier_hit": round(self.max_multiplier_hit, 2),
            "hit_rate": round(self.hit_rate, 4),
            "std_dev": round(self.std_dev, 4),
            "total_wagered": round(self.total_wagered, 2),
            "total_returned": round(self.total_returned, 2),
            "confidence_95": [round(x, 6) for x in self.confidence_95],
            "distribution": self.distribution,
            "feature_rates": self.feature_rates,
        }


def bucket_for(mult: float) -> str:
    """Payout bucket label for a round multiplier."""
    if mult == 0:
        return "0x"
    if mult < 1:
        return "0-1x"
    if mult < 2:
        return "1-2x"
    if mult < 5:
        return "2-5x"
    if mult < 10:
        return "5-10x"
    if mult < 50:
        return "10-50x"
    if mult < 100:
        return "50-100x"
    return "100x+"


class BaseGameEngine(ABC):
    """Abstract base for all game math models."""

    game_type: str = "base"
    display_name: str = "Base Game"

    def __init__(self):
        self._feature_hits: dict[str, int] = {}

    @abstractmethod
    def generate_config(self, **kwargs):
        """Build a game configuration from parameters."""
        ...

    @abstractmethod
    def compute_rtp(self, config) -> float:
        """Theoretical RTP (fraction of stake returned) for a config."""
        ...

    @abstractmethod
    def simulate_round(self, config, rng: SeededRNG) -> float:
        """Simulate one paid round. Returns total win / stake (0 = loss)."""
        ...

    def _record_feature(self, name: str) -> None:
        self._feature_hits[name] = self._feature_hits.get(name, 0) + 1

    def simulate(self, config, rounds: int = 100_000, seed: int = 42) -> SimResult:
        """Run a Monte Carlo simulation."""
        if rounds <= 0:
            raise ValueError("rounds must be > 0")
        rng = SeededRNG(seed)
        self._feature_hits = {}

        total_returned = 0.0
        sum_sq = 0.0
        wins = 0
        max_mult = 0.0
        buckets: dict[str, int] = {}

        for _ in range(rounds):
            mult = self.simulate_round(config, rng)
            total_returned += mult
            sum_sq += mult * mult
            if mult > 0:
                wins += 1
            if mult > max_mult:
                max_mult = mult
            b = bucket_for(mult)
            buckets[b] = buckets.get(b, 0) + 1

        rtp = total_returned / rounds
        variance = max(0.0, sum_sq / rounds - rtp * rtp)
        std_dev = math.sqrt(variance)
        std_err = std_dev / math.sqrt(rounds)

        logger.info(f"{self.game_type}: {rounds:,} rounds, RTP={rtp * 100:.3f}%, "
                    f"hit={wins / rounds * 100:.2f}%")

        return SimResult(
            game_type=self.game_type,
            rounds=rounds,
            rtp_theoretical=self.compute_rtp(config),
            rtp_measured=rtp,
            avg_multiplier=rtp,
            max_multiplier_hit=max_mult,
            hit_rate=wins / rounds,
            std_dev=std_dev,
            total_wagered=float(rounds),
            total_returned=total_returned,
            confidence_95=(rtp - 1.96 * std_err, rtp + 1.96 * std_err),
            distribution={k: round(v / rounds, 4) for k, v in sorted(buckets.items())},
            feature_rates={k: round(v / rounds, 6) for k, v in sorted(self._feature_hits.items())},
        )

    def get_metadata(self) -> dict:
        """Return game type metadata for the editor."""
        return {
            "game_type": self.game_type,
            "display_name": self.display_name,
        }
