"""
REELSMITH — Scratch Card Math

Outcome first, grid second: a prize tier is drawn (finite-deck weights in
POOL mode, per-ticket probabilities in UNLIMITED mode), then a reveal map
is built that shows exactly that outcome.

  • Losing maps never hold a winning combination.
  • Winning maps hold exactly `count` copies of the prize symbol; in
    SINGLE_WIN mode no other tier can read as won.

Also: RTP, commercial viability checks, RTP rescaling and prize presets.

Usage:
    from engine.scratch import ScratchEngine, apply_preset
    engine = ScratchEngine(seed=7)
    outcome = engine.resolve_round(config)
    print(outcome.tier_id, outcome.reveal_map)
"""

from __future__ import annotations

import logging
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Union

from config.game_schema import ScratchCondition, ScratchConfig, ScratchPrizeTier
from engine.base import BaseGameEngine
from engine.errors import ConfigError
from engine.rng import SeededRNG

logger = logging.getLogger("reelsmith.scratch")

PRESET_DECK_SIZE = 1_000_000

COMMERCIAL_CONSTRAINTS = {
    "MAX_RTP": 0.85,
    "MIN_LOSER_RATE": 0.40,
    "MAX_MONEY_BACK_RATE": 0.15,
}


# ═══════════════════════════════════════════════════════════════
# Presets (weights are tickets per 1,000,000; probabilities in %)
# ═══════════════════════════════════════════════════════════════

def _tier(tier_id, name, symbol, payout, weight, pct):
    return {"id": tier_id, "name": name,
            "condition": {"type": "match_n", "count": 3, "symbol_id": symbol},
            "payout": payout, "weight": weight, "probability_pct": pct}


PRIZE_PRESETS = {
    "CASUAL": {
        "name": "Casual / Low Volatility",
        "description": "Frequent small wins (~49% hit rate). Best for retention.",
        "prizes": [
            _tier("p_c1", "Jackpot", "sym_diamond", 100, 10, 0.001),
            _tier("p_c2", "Big Win", "sym_gold", 20, 1000, 0.1),
            _tier("p_c3", "Medium Win", "sym_silver", 5, 15000, 1.5),
            _tier("p_c4", "Small Win", "sym_bronze", 2, 75000, 7.5),
            _tier("p_c5", "Money Back", "sym_cherry", 1, 400000, 40.0),
        ],
    },
    "BALANCED": {
        "name": "Standard / Balanced",
        "description": "A classic mix. ~34% hit rate with decent prizes.",
        "prizes": [
            _tier("p_b1", "Grand Prize", "sym_diamond", 2500, 5, 0.0005),
            _tier("p_b2", "Major", "sym_ruby", 500, 50, 0.005),
            _tier("p_b3", "Minor", "sym_coin", 100, 1000, 0.1),
            _tier("p_b4", "Mini", "sym_bill", 10, 53000, 5.3),
            _tier("p_b5", "Free Play", "sym_cherries", 1, 290000, 29.0),
        ],
    },
    "HIGH_ROLLER": {
        "name": "High Roller / Volatile",
        "description": "Massive wins, lower hit rate (~22%). Chasing the dream.",
        "prizes": [
            _tier("p_h1", "MEGA JACKPOT", "sym_crown", 50000, 1, 0.0001),
            _tier("p_h2", "Super Win", "sym_bar_gold", 1000, 100, 0.01),
            _tier("p_h3", "Big Win", "sym_seven", 200, 2000, 0.2),
            _tier("p_h4", "Nice Win", "sym_bell", 20, 10000, 1.0),
            _tier("p_h5", "Console", "sym_plum", 1, 210000, 21.0),
        ],
    },
}


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def apply_preset(name: str, deck_size: int = PRESET_DECK_SIZE) -> list[ScratchPrizeTier]:
    """Preset prize table rescaled from 1M tickets to `deck_size`."""
    preset = PRIZE_PRESETS.get(name.upper())
    if preset is None:
        raise ConfigError(f"Unknown prize preset: {name}. Available: {sorted(PRIZE_PRESETS)}")
    ratio = deck_size / PRESET_DECK_SIZE
    prizes = []
    for p in preset["prizes"]:
        data = {k: v for k, v in p.items() if k != "probability_pct"}
        data["weight"] = _round_half_up(p["weight"] * ratio)
        data["probability"] = p["probability_pct"] / 100
        prizes.append(ScratchPrizeTier.model_validate(data))
    return prizes


def preset_symbols(prizes: list[ScratchPrizeTier]) -> list[str]:
    out = []
    for p in prizes:
        s = p.condition.symbol_id
        if s and s not in out:
            out.append(s)
    return out


# ═══════════════════════════════════════════════════════════════
# RTP & Commercial Viability
# ═══════════════════════════════════════════════════════════════

def calculate_rtp(prizes: list[ScratchPrizeTier], deck_size: Optional[int] = None,
                  ticket_price: float = 1.0) -> float:
    """Finite deck: Σ weight·payout / deck. Without a deck: Σ probability·payout."""
    if not prizes:
        return 0.0
    if deck_size and deck_size > 0:
        total_payout = sum(p.weight * p.payout * ticket_price for p in prizes)
        return total_payout / (deck_size * ticket_price)
    return sum(p.probability * p.payout for p in prizes)


@dataclass
class ViabilityReport:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rtp: float = 0.0
    loser_rate: float = 0.0
    money_back_rate: float = 0.0
    total_payout: float = 0.0
    total_sales: float = 0.0

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "rtp": round(self.rtp, 6),
            "loser_rate": round(self.loser_rate, 6),
            "money_back_rate": round(self.money_back_rate, 6),
            "total_payout": round(self.total_payout, 2),
            "total_sales": round(self.total_sales, 2),
        }


def validate_commercial_viability(config: ScratchConfig) -> ViabilityReport:
    """Hard limits a finite-deck game must respect before it can ship."""
    report = ViabilityReport()
    if config.math_mode != "POOL":
        return report

    deck = config.total_tickets
    price = config.ticket_price
    prizes = config.prizes
    report.total_payout = sum(p.weight * p.payout * price for p in prizes)
    report.total_sales = deck * price
    report.rtp = calculate_rtp(prizes, deck, price)

    winners = sum(p.weight for p in prizes if p.is_win)
    report.loser_rate = max(0, deck - winners) / deck
    money_back = sum(p.weight for p in prizes if p.payout == 1)
    report.money_back_rate = money_back / deck

    c = COMMERCIAL_CONSTRAINTS
    if report.rtp > c["MAX_RTP"]:
        report.errors.append(f"RTP ({report.rtp * 100:.1f}%) exceeds allowed maximum of "
                             f"{c['MAX_RTP'] * 100:.0f}%")
    if report.loser_rate < c["MIN_LOSER_RATE"]:
        report.errors.append(f"Too few losing tickets ({report.loser_rate * 100:.1f}%). "
                             f"Min required: {c['MIN_LOSER_RATE'] * 100:.0f}%")
    if report.money_back_rate > c["MAX_MONEY_BACK_RATE"]:
        report.warnings.append(f"Money-back tickets at {report.money_back_rate * 100:.1f}% "
                               f"(recommended max {c['MAX_MONEY_BACK_RATE'] * 100:.0f}%)")
    if report.total_payout > report.total_sales:
        report.errors.append("Guaranteed loss: total payouts exceed total sales")
    if winners > deck:
        report.errors.append(f"Configuration impossible: {winners:,} winners for {deck:,} tickets")

    report.is_valid = not report.errors
    if not report.is_valid:
        logger.warning(f"Scratch config not viable: {'; '.join(report.errors)}")
    return report


def scale_to_target_rtp(prizes: list[ScratchPrizeTier], deck_size: int,
                        target_pct: float) -> list[ScratchPrizeTier]:
    """Rescale every tier's weight so the deck RTP lands near `target_pct`."""
    current = calculate_rtp(prizes, deck_size)
    if current <= 0:
        logger.warning("Cannot rescale a prize table with zero RTP")
        return [p.model_copy() for p in prizes]
    ratio = (target_pct / 100) / current
    return [p.model_copy(update={"weight": max(1, _round_half_up(p.weight * ratio))}) for p in prizes]


# ═══════════════════════════════════════════════════════════════
# Reveal Maps
# ═══════════════════════════════════════════════════════════════

def _condition_symbols(cond: ScratchCondition, config: ScratchConfig) -> list[str]:
    return [cond.symbol_id] if cond.symbol_id else list(config.win_symbols)


def tier_matches(tier: ScratchPrizeTier, counts: Counter, config: ScratchConfig) -> bool:
    cond = tier.condition
    need = 1 if cond.type == "find_target" else cond.count
    return any(counts.get(s, 0) >= need for s in _condition_symbols(cond, config))


def evaluate_reveal_map(reveal_map: list[str], config: ScratchConfig) -> list[str]:
    """Ids of every winning tier the map shows."""
    counts = Counter(reveal_map)
    return [t.id for t in config.prizes if t.is_win and tier_matches(t, counts, config)]


def _symbol_caps(config: ScratchConfig, tiers: list[ScratchPrizeTier]) -> dict[str, int]:
    """Max copies per symbol so none of `tiers` (nor a plain match) can read as won."""
    caps = {s: config.match_count - 1 for s in list(config.lose_symbols) + list(config.win_symbols)}
    for t in tiers:
        cond = t.condition
        limit = 0 if cond.type == "find_target" else cond.count - 1
        for s in _condition_symbols(cond, config):
            caps[s] = min(caps.get(s, limit), limit)
    return caps


# ═══════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════

@dataclass
class ScratchOutcome:
    round_id: str
    tier_id: str
    is_win: bool
    final_prize: float          # × ticket price
    reveal_map: list[str]
    presentation_seed: int

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "tier_id": self.tier_id,
            "is_win": self.is_win,
            "final_prize": self.final_prize,
            "reveal_map": self.reveal_map,
            "presentation_seed": self.presentation_seed,
        }


LOSING_TIER = ScratchPrizeTier(id="lose_pool", name="No Win", payout=0.0)


class ScratchEngine(BaseGameEngine):
    game_type = "scratch"
    display_name = "Scratch Card"

    def __init__(self, seed: Union[int, str, None] = None):
        super().__init__()
        if seed is None:
            seed = time.time_ns()
        self.rng = SeededRNG.from_string(seed) if isinstance(seed, str) else SeededRNG(seed)

    # ── BaseGameEngine ──

    def generate_config(self, preset: str = "BALANCED", deck_size: int = PRESET_DECK_SIZE,
                        **kw) -> ScratchConfig:
        prizes = apply_preset(preset, deck_size)
        data = {"total_tickets": deck_size, "prizes": prizes, **kw}
        data.setdefault("win_symbols", preset_symbols(prizes))
        return ScratchConfig.model_validate(data)

    def compute_rtp(self, config: ScratchConfig) -> float:
        if config.math_mode == "POOL":
            return calculate_rtp(config.prizes, config.total_tickets, config.ticket_price)
        return calculate_rtp(config.prizes)

    def simulate_round(self, config: ScratchConfig, rng: SeededRNG) -> float:
        tier = self._pick_tier(config, rng)
        if tier.is_win:
            self._record_feature(tier.id)
        return tier.payout

    # ── Outcome ──

    def _pick_tier(self, config: ScratchConfig, rng: SeededRNG) -> ScratchPrizeTier:
        roll = rng.random()
        accumulated = 0.0
        for tier in config.prizes:
            if config.math_mode == "POOL":
                p = tier.weight / config.total_tickets
            else:
                p = tier.probability
            accumulated += p
            if roll < accumulated:
                return tier
        return LOSING_TIER

    def determine_outcome(self, config: ScratchConfig) -> ScratchPrizeTier:
        """Draw a prize tier; the remainder of the deck is the losing outcome."""
        return self._pick_tier(config, self.rng)

    def resolve_round(self, config: ScratchConfig) -> ScratchOutcome:
        tier = self.determine_outcome(config)
        if tier.is_win:
            reveal_map = self.generate_winning_grid(config, tier)
        else:
            reveal_map = self.generate_losing_grid(config)
        outcome = ScratchOutcome(
            round_id=f"rnd_{self.rng.next_int():08x}",
            tier_id=tier.id,
            is_win=tier.is_win,
            final_prize=tier.payout,
            reveal_map=reveal_map,
            presentation_seed=self.rng.next_int(),
        )
        logger.debug(f"Scratch round {outcome.round_id}: {tier.id} ({tier.payout}x)")
        return outcome

    # ── Grids ──

    def _fill(self, grid: list, caps: dict[str, int], exclude: str = None) -> list[str]:
        """Fill empty cells with capped random symbols."""
        remaining = {s: c for s, c in caps.items() if c > 0 and s != exclude}
        empty = [i for i, v in enumerate(grid) if v is None]
        if sum(remaining.values()) < len(empty):
            raise ConfigError(
                f"Cannot fill {len(empty)} cells without creating extra matches; "
                f"add more symbols or lower the grid size")
        for i in empty:
            sym = self.rng.choice(sorted(remaining))
            grid[i] = sym
            remaining[sym] -= 1
            if remaining[sym] == 0:
                del remaining[sym]
        return grid

    def generate_losing_grid(self, config: ScratchConfig) -> list[str]:
        caps = _symbol_caps(config, [t for t in config.prizes if t.is_win])
        return self._fill([None] * config.grid_size, caps)

    def generate_winning_grid(self, config: ScratchConfig, tier: ScratchPrizeTier) -> list[str]:
        cond = tier.condition
        size = config.grid_size
        prize_symbol = cond.symbol_id or self.rng.choice(config.win_symbols)
        count = 1 if cond.type == "find_target" else cond.count
        if count > size:
            raise ConfigError(f"Tier '{tier.id}' needs {count} symbols on a {size}-cell grid")

        grid: list = [None] * size
        for pos in self.rng.sample_indices(size, count):
            grid[pos] = prize_symbol

        if config.win_logic == "SINGLE_WIN":
            others = [t for t in config.prizes if t.is_win and t.id != tier.id]
            caps = _symbol_caps(config, others)
        else:
            caps = {s: size for s in list(config.lose_symbols) + list(config.win_symbols)}
        return self._fill(grid, caps, exclude=prize_symbol)
