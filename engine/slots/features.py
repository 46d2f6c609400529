"""
REELSMITH — Bonus Features

Free spins, the prize wheel and pick-and-click. Each feature reads its own
block of SlotGameConfig and draws every random decision from a SeededRNG,
so a bonus round replays exactly from the spin seed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from config.game_schema import SlotGameConfig, WheelConfig
from engine.errors import PickError
from engine.rng import SeededRNG

logger = logging.getLogger("reelsmith.features")

PICK_MULTIPLIERS = [2, 3, 5]


# ═══════════════════════════════════════════════════════════════
# Triggers
# ═══════════════════════════════════════════════════════════════

def check_feature_triggers(config: SlotGameConfig, scatter_count: int, bonus_count: int,
                           counts: Optional[dict] = None) -> list[str]:
    """Names of the features triggered by a grid.

    `counts` (symbol → occurrences) lets pick-and-click use its own trigger
    symbol when it differs from the wheel's.
    """
    triggered = []
    fs = config.free_spins
    if fs.enabled and scatter_count >= fs.min_trigger_count:
        triggered.append("free_spins")

    wheel = config.wheel
    if wheel.enabled and bonus_count >= wheel.trigger_count:
        triggered.append("wheel")

    pick = config.pick_and_click
    pick_count = bonus_count
    if counts is not None and pick.trigger_symbol != wheel.trigger_symbol:
        pick_count = counts.get(pick.trigger_symbol, 0)
    if pick.enabled and pick_count >= pick.trigger_count:
        triggered.append("pick_and_click")
    return triggered


# ═══════════════════════════════════════════════════════════════
# Free Spins
# ═══════════════════════════════════════════════════════════════

@dataclass
class FreeSpinsState:
    active: bool = False
    remaining: int = 0
    awarded_total: int = 0
    played: int = 0
    total_win: float = 0.0

    def consume(self) -> None:
        """Count one free spin as played; ends the feature on the last one."""
        if not self.active:
            return
        self.remaining = max(0, self.remaining - 1)
        self.played += 1
        if self.remaining == 0:
            self.active = False
            logger.debug(f"Free spins finished: {self.played} played, win={self.total_win:.2f}")

    def reset(self) -> None:
        self.active = False
        self.remaining = 0
        self.awarded_total = 0
        self.played = 0
        self.total_win = 0.0


def award_free_spins(config: SlotGameConfig, count: int, state: FreeSpinsState) -> int:
    """Start or extend free spins for `count` trigger symbols. Returns spins awarded."""
    fs = config.free_spins
    if not fs.enabled or count < fs.min_trigger_count:
        return 0
    if state.active and not fs.retrigger:
        return 0

    spins = fs.spins_for(count)
    if spins <= 0:
        return 0
    if state.active:
        state.remaining += spins
        logger.info(f"Free spins retriggered: +{spins} ({state.remaining} remaining)")
    else:
        state.active = True
        state.remaining = spins
        state.played = 0
        state.total_win = 0.0
        logger.info(f"Free spins triggered: {spins} spins at x{fs.multiplier}")
    state.awarded_total += spins
    return spins


# ═══════════════════════════════════════════════════════════════
# Prize Wheel
# ═══════════════════════════════════════════════════════════════

@dataclass
class WheelSegment:
    kind: str            # prize | levelup | respin
    value: float = 0.0   # × total bet for prize slices
    weight: float = 1.0
    label: str = ""


@dataclass
class WheelResult:
    landed: list[WheelSegment] = field(default_factory=list)
    level: int = 1
    prize: float = 0.0
    capped: bool = False

    @property
    def spins(self) -> int:
        return len(self.landed)

    def to_dict(self) -> dict:
        return {
            "landed": [{"kind": s.kind, "value": s.value, "label": s.label} for s in self.landed],
            "level": self.level,
            "prize": round(self.prize, 6),
            "capped": self.capped,
        }


def build_wheel(cfg: WheelConfig) -> list[WheelSegment]:
    """Slices in wheel order: level-up, respin, then prize slices."""
    segments: list[WheelSegment] = []
    remaining = cfg.segments
    if cfg.level_up and remaining > 2:
        segments.append(WheelSegment(kind="levelup", label="LEVEL UP"))
        remaining -= 1
    if cfg.respin and remaining > 2:
        segments.append(WheelSegment(kind="respin", label="RESPIN"))
        remaining -= 1

    for i in range(remaining):
        # Missing or zero values take the max multiplier
        value = cfg.segment_values[i] if i < len(cfg.segment_values) else 0
        value = value or cfg.max_multiplier
        segments.append(WheelSegment(kind="prize", value=float(value), label=f"{value:g}x"))

    for i, seg in enumerate(segments):
        if i < len(cfg.segment_weights):
            seg.weight = float(cfg.segment_weights[i])
    return segments


def spin_wheel(cfg: WheelConfig, total_bet: float, rng: SeededRNG) -> WheelResult:
    """Spin until a prize slice lands (or the extra-spin cap is hit)."""
    segments = build_wheel(cfg)
    weights = [s.weight for s in segments]
    result = WheelResult()
    extra = 0

    while True:
        seg = rng.weighted_choice(segments, weights)
        result.landed.append(seg)
        if seg.kind == "prize":
            result.prize = seg.value * total_bet * result.level
            break
        if extra >= cfg.max_extra_spins:
            result.capped = True
            logger.warning(f"Wheel stopped after {extra} extra spins without a prize")
            break
        extra += 1
        if seg.kind == "levelup":
            result.level += 1

    logger.debug(f"Wheel: {result.spins} spins, level {result.level}, prize={result.prize:.2f}")
    return result


def wheel_expected_value(cfg: WheelConfig) -> float:
    """Expected wheel prize as a multiple of the total bet, cap included."""
    segments = build_wheel(cfg)
    total = sum(s.weight for s in segments)
    if total <= 0:
        return 0.0
    p_prize = sum(s.weight for s in segments if s.kind == "prize") / total
    if p_prize <= 0:
        return 0.0
    p_level = sum(s.weight for s in segments if s.kind == "levelup") / total
    p_other = 1.0 - p_prize
    mean_value = sum(s.value * s.weight for s in segments if s.kind == "prize") / (p_prize * total)
    level_share = p_level / p_other if p_other > 0 else 0.0

    # k non-prize spins before the prize; each one is a level-up with prob level_share
    ev = 0.0
    for k in range(cfg.max_extra_spins + 1):
        ev += (p_other ** k) * p_prize * (1 + k * level_share) * mean_value
    return ev


# ═══════════════════════════════════════════════════════════════
# Pick-and-Click
# ═══════════════════════════════════════════════════════════════

@dataclass
class PickCell:
    kind: str          # prize | extra_pick | multiplier
    value: float = 0.0


@dataclass
class PickAndClickRound:
    cells: list[list[PickCell]]
    total_bet: float
    picks_remaining: int
    revealed: list[list[bool]] = field(default_factory=list)
    multiplier: float = 1.0
    total_win: float = 0.0
    history: list[PickCell] = field(default_factory=list)

    def __post_init__(self):
        if not self.revealed:
            self.revealed = [[False] * len(row) for row in self.cells]

    @classmethod
    def build(cls, config: SlotGameConfig, total_bet: float, rng: SeededRNG) -> "PickAndClickRound":
        cfg = config.pick_and_click
        rows, cols = cfg.grid_size
        n = rows * cols
        pool = [
            PickCell("prize", float(cfg.prize_values[i]) if i < len(cfg.prize_values) else cfg.max_prize)
            for i in range(n)
        ]

        extra_idx = None
        if cfg.extra_picks:
            extra_idx = rng.randint(0, n - 1)
            pool[extra_idx] = PickCell("extra_pick")
        if cfg.multipliers:
            mult_idx = rng.randint(0, n - 1)
            if mult_idx == extra_idx:
                mult_idx = (mult_idx + 1) % n
            if mult_idx != extra_idx:
                pool[mult_idx] = PickCell("multiplier", float(rng.choice(PICK_MULTIPLIERS)))

        rng.shuffle(pool)
        cells = [pool[r * cols:(r + 1) * cols] for r in range(rows)]
        return cls(cells=cells, total_bet=total_bet, picks_remaining=cfg.picks)

    @property
    def complete(self) -> bool:
        return self.picks_remaining <= 0 or all(all(r) for r in self.revealed)

    def pick(self, row: int, col: int) -> PickCell:
        if self.complete:
            raise PickError("pick-and-click round is complete")
        if not (0 <= row < len(self.cells) and 0 <= col < len(self.cells[row])):
            raise PickError(f"cell ({row}, {col}) is outside the pick grid")
        if self.revealed[row][col]:
            raise PickError(f"cell ({row}, {col}) already revealed")

        self.revealed[row][col] = True
        cell = self.cells[row][col]
        self.history.append(cell)
        if cell.kind == "prize":
            self.total_win += cell.value * self.total_bet * self.multiplier
            self.picks_remaining -= 1
        elif cell.kind == "extra_pick":
            self.picks_remaining += 1
        elif cell.kind == "multiplier":
            self.multiplier *= cell.value
        return cell

    def hidden_cells(self) -> list[tuple[int, int]]:
        return [(r, c) for r, row in enumerate(self.revealed) for c, seen in enumerate(row) if not seen]

    def autoplay(self, rng: SeededRNG) -> float:
        """Pick random hidden cells until the round completes. Returns the total win."""
        while not self.complete:
            row, col = rng.choice(self.hidden_cells())
            self.pick(row, col)
        logger.debug(f"Pick-and-click: {len(self.history)} picks, x{self.multiplier:g}, "
                     f"win={self.total_win:.2f}")
        return self.total_win
