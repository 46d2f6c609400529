"""Reel sets: weighted per-cell draws, or physical strips when configured."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from config.game_schema import SlotGameConfig
from engine.rng import SeededRNG


@dataclass
class ReelSet:
    reels: int
    rows: int
    symbols: list[str]
    weights: list[float]
    strips: list[list[str]] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: SlotGameConfig) -> "ReelSet":
        return cls(
            reels=config.layout.reels,
            rows=config.layout.rows,
            symbols=[s.id for s in config.symbols],
            weights=[s.weight for s in config.symbols],
            strips=[list(s) for s in config.reel_strips],
        )

    def draw(self, rng: SeededRNG, exclude: Iterable[str] = ()) -> str:
        """One weighted symbol, never one of `exclude`."""
        excluded = set(exclude)
        if not excluded:
            return rng.weighted_choice(self.symbols, self.weights)
        pool = [(s, w) for s, w in zip(self.symbols, self.weights) if s not in excluded]
        if not pool:
            raise ValueError(f"every symbol excluded: {sorted(excluded)}")
        syms, weights = zip(*pool)
        return rng.weighted_choice(syms, weights)

    def _strip_window(self, strip: list[str], rng: SeededRNG, excluded: set) -> list[str]:
        stop = rng.randint(0, len(strip) - 1)
        window = [strip[(stop + i) % len(strip)] for i in range(self.rows)]
        if excluded:
            window = [self.draw(rng, excluded) if s in excluded else s for s in window]
        return window

    def spin_grid(self, rng: SeededRNG, exclude: Iterable[str] = ()) -> list[list[str]]:
        """grid[reel][row] for one spin."""
        excluded = set(exclude)
        if self.strips:
            return [self._strip_window(strip, rng, excluded) for strip in self.strips]
        return [[self.draw(rng, excluded) for _ in range(self.rows)] for _ in range(self.reels)]

    def probabilities(self, exclude: Iterable[str] = ()) -> dict[str, float]:
        """Per-cell symbol probabilities in weighted mode."""
        excluded = set(exclude)
        pool = {s: w for s, w in zip(self.symbols, self.weights) if s not in excluded}
        total = sum(pool.values())
        return {s: w / total for s, w in pool.items()} if total > 0 else {}
