"""
REELSMITH — Seeded RNG

Every random decision in the engine (reel stops, wheel slices, pick-grid
shuffles, scratch outcomes) goes through `SeededRNG`, so any spin can be
replayed from its seed.

Seeds can be derived provably-fair style:
    seed = derive_round_seed(server_seed, client_seed, nonce)
    rng = SeededRNG(seed)
The player can recompute HMAC-SHA256(server_seed, client_seed:nonce) once the
server seed is revealed.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Sequence, TypeVar

T = TypeVar("T")

_MASK64 = 0xFFFFFFFFFFFFFFFF


class SeededRNG:
    """Splitmix64 PRNG — fast, deterministic, good distribution."""

    def __init__(self, seed: int = 0):
        self.seed = seed & _MASK64
        self.state = self.seed

    @classmethod
    def from_string(cls, seed: str) -> "SeededRNG":
        """Seed from an arbitrary string (round ids, editor preview seeds)."""
        h = hashlib.sha256(seed.encode()).hexdigest()
        return cls(int(h[:16], 16))

    def _next(self) -> int:
        self.state = (self.state + 0x9E3779B97F4A7C15) & _MASK64
        z = self.state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
        return (z ^ (z >> 31)) & _MASK64

    def next_int(self) -> int:
        """Raw 32-bit value (used for presentation seeds / round ids)."""
        return self._next() >> 32

    def random(self) -> float:
        """Float in [0, 1) from the top 53 bits."""
        return (self._next() >> 11) * (1.0 / (1 << 53))

    def randint(self, lo: int, hi: int) -> int:
        """Integer in [lo, hi] inclusive."""
        return lo + int(self.random() * (hi - lo + 1))

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("choice from empty sequence")
        return items[int(self.random() * len(items))]

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        total = sum(weights)
        if total <= 0:
            raise ValueError("weights must sum to > 0")
        r = self.random() * total
        cumulative = 0.0
        for item, w in zip(items, weights):
            cumulative += w
            if r < cumulative:
                return item
        return items[-1]

    def shuffle(self, items: list) -> list:
        """Fisher-Yates in place; returns the list for chaining."""
        for i in range(len(items) - 1, 0, -1):
            j = int(self.random() * (i + 1))
            items[i], items[j] = items[j], items[i]
        return items

    def sample_indices(self, n: int, k: int) -> list[int]:
        """k distinct indices from range(n)."""
        if k > n:
            raise ValueError(f"cannot sample {k} of {n}")
        pool = list(range(n))
        out = []
        for _ in range(k):
            out.append(pool.pop(int(self.random() * len(pool))))
        return out


def derive_round_seed(server_seed: str, client_seed: str, nonce: int) -> int:
    """HMAC-SHA256(server_seed, client_seed:nonce) → 64-bit seed."""
    digest = hmac.new(
        server_seed.encode(),
        f"{client_seed}:{nonce}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return int(digest[:16], 16)


def server_seed_hash(server_seed: str) -> str:
    """Commitment shared with the player before play starts."""
    return hashlib.sha256(server_seed.encode()).hexdigest()
