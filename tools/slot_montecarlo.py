"""
REELSMITH — Slot RTP Math & Monte Carlo Validator

Exact base-game math for a SlotGameConfig plus a full-session simulator
that plays every paid spin through the same SlotMachine the editor uses
(free spins, wheel, pick-and-click and cascades included).

Exact math assumes reels are independent. In weighted mode every cell is an
independent draw; in strip mode each reel contributes its strip window, and
since a payline reads one cell per reel the line math stays exact there too.

Usage:
    from tools.slot_montecarlo import SlotMonteCarlo, rtp_breakdown
    print(rtp_breakdown(config))

    mc = SlotMonteCarlo()
    result = mc.run(config, n_spins=200_000, seed=42)
    print(result.summary())
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from math import comb, prod
from typing import Iterable, Optional

from config.game_schema import PayMechanism, SlotGameConfig
from config.settings import SimConfig
from engine.base import bucket_for
from engine.rng import SeededRNG
from engine.slots.features import wheel_expected_value
from engine.slots.paytable import Paytable
from engine.slots.reels import ReelSet
from engine.slots.spin import SlotMachine

logger = logging.getLogger("reelsmith.sim")


# ═══════════════════════════════════════════════════════════════
# Per-reel Probabilities
# ═══════════════════════════════════════════════════════════════

def cell_probabilities(config: SlotGameConfig, exclude: Iterable[str] = ()) -> list[dict[str, float]]:
    """Marginal symbol probabilities of one cell, per reel."""
    reels = ReelSet.from_config(config)
    excluded = set(exclude)
    base = reels.probabilities(excluded)
    if not reels.strips:
        return [dict(base) for _ in range(reels.reels)]

    out = []
    for strip in reels.strips:
        n = len(strip)
        probs: dict[str, float] = {}
        for s in strip:
            if s in excluded:
                for t, p in base.items():
                    probs[t] = probs.get(t, 0.0) + p / n
            else:
                probs[s] = probs.get(s, 0.0) + 1.0 / n
        out.append(probs)
    return out


def _strip_windows(strip: list[str], rows: int) -> list[list[str]]:
    return [[strip[(stop + i) % len(strip)] for i in range(rows)] for stop in range(len(strip))]


# ═══════════════════════════════════════════════════════════════
# Line / Ways RTP
# ═══════════════════════════════════════════════════════════════

def theoretical_line_rtp(config: SlotGameConfig, exclude: Iterable[str] = ()) -> Optional[float]:
    """Expected line pay per unit of total bet (lines, ways, or None for clusters).

    Every active line has the same distribution, and the bet per line is
    total / lines, so the result is the expected multiplier of one line.
    """
    if config.mechanism == PayMechanism.WAYS:
        return theoretical_ways_rtp(config, exclude)
    if config.mechanism == PayMechanism.CLUSTER:
        return None

    pt = Paytable(config)
    probs = cell_probabilities(config, exclude)
    n = len(probs)
    wilds = [s for s in config.symbol_ids if pt.is_wild(s)]
    features = [s for s in config.symbol_ids if pt.is_feature(s)]
    pw = [sum(p.get(w, 0.0) for w in wilds) for p in probs]
    pf = [sum(p.get(f, 0.0) for f in features) for p in probs]

    ev = 0.0
    for sym in config.paying_symbols:
        if sym.is_wild:
            continue
        ps = [p.get(sym.id, 0.0) for p in probs]
        for k in range(config.min_match, n + 1):
            pay = pt.line_pay(sym.id, k)
            if pay <= 0:
                continue
            # w leading wilds, then the symbol, then symbol-or-wild up to k
            run = sum(
                prod(pw[:w]) * ps[w] * prod(ps[i] + pw[i] for i in range(w + 1, k))
                for w in range(k)
            )
            tail = 1.0 if k == n else 1.0 - ps[k] - pw[k]
            ev += pay * run * tail

    for wild in wilds:
        for k in range(config.min_match, n + 1):
            pay = pt.line_pay(wild, k)
            if pay <= 0:
                continue
            # An all-wild run only ends on a feature symbol or the last reel
            tail = 1.0 if k == n else pf[k]
            ev += pay * probs[0].get(wild, 0.0) * prod(pw[1:k]) * tail
    return ev


def _window_stats(fixed_hits: int, fixed_anchor: bool, redrawn: int,
                  q: float, pa: float) -> tuple[float, float, float]:
    """Stats for one window: `fixed_hits` known matches plus `redrawn` independent
    cells that match with prob q and are the anchor with prob pa."""
    e_hits = fixed_hits + redrawn * q
    p_zero = (1.0 - q) ** redrawn if fixed_hits == 0 else 0.0
    if fixed_anchor:
        return e_hits, p_zero, e_hits
    # E[hits · 1{no anchor among the redrawn cells}]
    no_anchor = fixed_hits * (1.0 - pa) ** redrawn
    if redrawn:
        no_anchor += redrawn * (q - pa) * (1.0 - pa) ** (redrawn - 1)
    return e_hits, p_zero, e_hits - no_anchor


def _ways_reel_stats(config: SlotGameConfig, reel: int, match: set, anchor: str,
                     probs: dict[str, float], excluded: set,
                     redraw: dict[str, float]) -> tuple[float, float, float]:
    """(E[hits], P(hits == 0), E[hits · 1{anchor on reel}]) for one reel."""
    rows = config.layout.rows
    if not config.reel_strips:
        q = sum(probs.get(s, 0.0) for s in match)
        return _window_stats(0, False, rows, q, probs.get(anchor, 0.0))

    # Excluded strip cells are redrawn from the weighted pool
    q = sum(redraw.get(s, 0.0) for s in match)
    pa = redraw.get(anchor, 0.0)
    windows = _strip_windows(config.reel_strips[reel], rows)
    totals = [0.0, 0.0, 0.0]
    for w in windows:
        kept = [s for s in w if s not in excluded]
        stats = _window_stats(sum(1 for s in kept if s in match), anchor in kept,
                              len(w) - len(kept), q, pa)
        for i, v in enumerate(stats):
            totals[i] += v / len(windows)
    return totals[0], totals[1], totals[2]


def theoretical_ways_rtp(config: SlotGameConfig, exclude: Iterable[str] = ()) -> float:
    """Expected ways pay per unit total bet, excluded strip cells redrawn."""
    pt = Paytable(config)
    excluded = set(exclude)
    probs = cell_probabilities(config, excluded)
    redraw = ReelSet.from_config(config).probabilities(excluded)
    n = len(probs)
    wilds = {s for s in config.symbol_ids if pt.is_wild(s)}

    ev = 0.0
    for sym in config.paying_symbols:
        match = {sym.id} if sym.is_wild else {sym.id} | wilds
        stats = [_ways_reel_stats(config, r, match, sym.id, probs[r], excluded, redraw)
                 for r in range(n)]
        for k in range(config.min_match, n + 1):
            pay = pt.line_pay(sym.id, k)
            if pay <= 0:
                continue
            expected_ways = stats[0][2] * prod(stats[i][0] for i in range(1, k))
            tail = 1.0 if k == n else stats[k][1]
            ev += pay * expected_ways * tail / config.ways_bet_divisor
    return ev


# ═══════════════════════════════════════════════════════════════
# Scatter / Trigger Distributions
# ═══════════════════════════════════════════════════════════════

def scatter_distribution(config: SlotGameConfig, symbol: str,
                         exclude: Iterable[str] = ()) -> dict[int, float]:
    """Exact distribution of how many `symbol` land on the whole grid."""
    excluded = set(exclude)
    rows = config.layout.rows
    probs = cell_probabilities(config, excluded)
    # Excluded strip cells are redrawn from the weighted pool
    redraw_p = ReelSet.from_config(config).probabilities(excluded).get(symbol, 0.0)

    dist = {0: 1.0}
    for r, reel_probs in enumerate(probs):
        if config.reel_strips:
            windows = _strip_windows(config.reel_strips[r], rows)
            reel_dist: dict[int, float] = {}
            for w in windows:
                fixed = sum(1 for s in w if s == symbol and s not in excluded)
                redrawn = sum(1 for s in w if s in excluded)
                for extra in range(redrawn + 1):
                    p = comb(redrawn, extra) * redraw_p ** extra * (1 - redraw_p) ** (redrawn - extra)
                    reel_dist[fixed + extra] = reel_dist.get(fixed + extra, 0.0) + p / len(windows)
        else:
            p = reel_probs.get(symbol, 0.0)
            reel_dist = {c: comb(rows, c) * p ** c * (1 - p) ** (rows - c) for c in range(rows + 1)}

        combined: dict[int, float] = {}
        for a, pa in dist.items():
            for b, pb in reel_dist.items():
                combined[a + b] = combined.get(a + b, 0.0) + pa * pb
        dist = combined
    return {c: p for c, p in sorted(dist.items()) if p > 0}


def feature_trigger_probability(config: SlotGameConfig, symbol: str, threshold: int,
                                exclude: Iterable[str] = ()) -> float:
    dist = scatter_distribution(config, symbol, exclude)
    return sum(p for c, p in dist.items() if c >= threshold)


def theoretical_scatter_rtp(config: SlotGameConfig, exclude: Iterable[str] = ()) -> float:
    fs = config.free_spins
    pt = Paytable(config)
    dist = scatter_distribution(config, fs.trigger_symbol, exclude)
    return sum(p * pt.scatter_pay(fs.trigger_symbol, c)
               for c, p in dist.items() if c >= fs.min_trigger_count)


def rtp_breakdown(config: SlotGameConfig) -> dict:
    """RTP contributions per unit bet.

    Pick-and-click and cascade wins have no closed form here; they only show
    up in simulation. Cluster pays report None for the line component.
    """
    fs = config.free_spins
    lines = theoretical_line_rtp(config)
    scatter = theoretical_scatter_rtp(config)

    def wheel_rtp(exclude=()) -> float:
        if not config.wheel.enabled:
            return 0.0
        p = feature_trigger_probability(config, config.wheel.trigger_symbol,
                                        config.wheel.trigger_count, exclude)
        return p * wheel_expected_value(config.wheel)

    wheel = wheel_rtp()
    free_spins = 0.0
    if fs.enabled and lines is not None:
        fs_exclude = () if fs.retrigger else (fs.trigger_symbol,)
        base_dist = scatter_distribution(config, fs.trigger_symbol)
        initial = sum(p * fs.spins_for(c) for c, p in base_dist.items())
        retrig = 0.0
        if fs.retrigger:
            retrig = sum(p * fs.spins_for(c)
                         for c, p in scatter_distribution(config, fs.trigger_symbol, fs_exclude).items())
        if retrig >= 1.0:
            logger.warning(f"Free spins retrigger rate {retrig:.3f} ≥ 1; feature never ends")
            free_spins = None
        else:
            per_spin = (fs.multiplier * (theoretical_line_rtp(config, fs_exclude)
                                         + theoretical_scatter_rtp(config, fs_exclude))
                        + wheel_rtp(fs_exclude))
            free_spins = initial / (1.0 - retrig) * per_spin

    parts = {"lines": lines, "scatter": scatter, "free_spins": free_spins, "wheel": wheel}
    known = [v for v in parts.values() if v is not None]
    return {
        **{k: (round(v, 8) if v is not None else None) for k, v in parts.items()},
        "base_game": round(lines + scatter, 8) if lines is not None else None,
        "total": round(sum(known), 8),
        "pick_and_click": None,
    }


def theoretical_base_rtp(config: SlotGameConfig) -> Optional[float]:
    lines = theoretical_line_rtp(config)
    return None if lines is None else lines + theoretical_scatter_rtp(config)


# ═══════════════════════════════════════════════════════════════
# Simulation
# ═══════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Results from a full-session slot simulation."""
    game_name: str
    n_spins: int
    bet: float
    theoretical_base_rtp: Optional[float]
    measured_base_rtp: float
    measured_total_rtp: float
    rtp_delta: Optional[float]
    rtp_pass: Optional[bool]
    tolerance: float = 0.01

    hit_frequency: float = 0.0
    std_dev: float = 0.0
    max_win: float = 0.0
    confidence_95: tuple = (0.0, 0.0)
    distribution: dict = field(default_factory=dict)
    feature_rates: dict = field(default_factory=dict)
    free_spins_played: int = 0
    breakdown: dict = field(default_factory=dict)

    duration_seconds: float = 0.0
    spins_per_second: float = 0.0
    seed: int = 0

    def summary(self) -> str:
        if self.rtp_pass is None:
            status = "— no closed form"
        else:
            status = "✅ PASS" if self.rtp_pass else "❌ FAIL"
        theory = (f"{self.theoretical_base_rtp * 100:.4f}%"
                  if self.theoretical_base_rtp is not None else "n/a")
        lines = [
            f"═══ Monte Carlo: {self.game_name} ═══",
            f"  Spins:         {self.n_spins:,} (+{self.free_spins_played:,} free)",
            f"  Base theory:   {theory}",
            f"  Base measured: {self.measured_base_rtp * 100:.4f}%",
            f"  RTP Check:     {status}",
            f"  Total RTP:     {self.measured_total_rtp * 100:.4f}%",
            f"  Std Dev:       {self.std_dev:.4f}",
            f"  Hit Freq:      {self.hit_frequency * 100:.2f}%",
            f"  Max Win:       {self.max_win:.2f}x",
            f"  Speed:         {self.spins_per_second:,.0f} spins/sec",
        ]
        for name, rate in self.feature_rates.items():
            lines.append(f"  {name:<14} 1 in {1 / rate:,.0f}" if rate else f"  {name:<14} never")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "game_name": self.game_name,
            "n_spins": self.n_spins,
            "bet": self.bet,
            "theoretical_base_rtp_pct": (round(self.theoretical_base_rtp * 100, 4)
                                         if self.theoretical_base_rtp is not None else None),
            "measured_base_rtp_pct": round(self.measured_base_rtp * 100, 4),
            "measured_total_rtp_pct": round(self.measured_total_rtp * 100, 4),
            "rtp_delta_pct": round(self.rtp_delta * 100, 4) if self.rtp_delta is not None else None,
            "rtp_pass": self.rtp_pass,
            "tolerance_pct": self.tolerance * 100,
            "volatility": {
                "std_dev": round(self.std_dev, 4),
                "hit_frequency_pct": round(self.hit_frequency * 100, 2),
                "max_win_mult": round(self.max_win, 2),
                "confidence_95": [round(x, 6) for x in self.confidence_95],
            },
            "distribution": self.distribution,
            "feature_rates": self.feature_rates,
            "free_spins_played": self.free_spins_played,
            "breakdown": self.breakdown,
            "performance": {
                "duration_s": round(self.duration_seconds, 2),
                "spins_per_sec": int(self.spins_per_second),
            },
            "seed": self.seed,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def play_round(machine: SlotMachine, bet: float) -> tuple[float, float, list]:
    """One paid spin plus every free spin it leads to.

    Returns (base win, total win, outcomes).
    """
    first = machine.spin(bet)
    outcomes = [first]
    while machine.free_spins.active:
        if len(outcomes) > SimConfig.MAX_SESSION_SPINS:
            logger.warning(f"Free-spin chain cut at {SimConfig.MAX_SESSION_SPINS} spins")
            machine.free_spins.reset()
            break
        outcomes.append(machine.spin())
    return first.evaluation.total_win, sum(o.total_win for o in outcomes), outcomes


class SlotMonteCarlo:
    """Full-session Monte Carlo for one slot config."""

    def run(self, config: SlotGameConfig, n_spins: int = None, seed: int = None,
            tolerance: float = None, bet: float = None) -> SimulationResult:
        n_spins = n_spins or SimConfig.SIMULATION_SPINS
        seed = SimConfig.DEFAULT_SEED if seed is None else seed
        tolerance = SimConfig.RTP_TOLERANCE if tolerance is None else tolerance
        bet = bet or config.bet.default_bet
        if n_spins <= 0:
            raise ValueError("n_spins must be > 0")

        machine = SlotMachine(config, rng=SeededRNG(seed), balance=math.inf)
        t0 = time.time()

        base_total = 0.0
        total = 0.0
        sum_sq = 0.0
        hits = 0
        max_mult = 0.0
        free_played = 0
        buckets: dict[str, int] = {}
        features: dict[str, int] = {}

        for _ in range(n_spins):
            base_win, round_win, outcomes = play_round(machine, bet)
            mult = round_win / bet
            base_total += base_win
            total += mult
            sum_sq += mult * mult
            if mult > 0:
                hits += 1
            max_mult = max(max_mult, mult)
            b = bucket_for(mult)
            buckets[b] = buckets.get(b, 0) + 1
            free_played += len(outcomes) - 1
            for name in outcomes[0].evaluation.features_triggered:
                features[name] = features.get(name, 0) + 1

        duration = time.time() - t0
        measured_base = base_total / (n_spins * bet)
        measured_total = total / n_spins
        std_dev = math.sqrt(max(0.0, sum_sq / n_spins - measured_total ** 2))
        std_err = std_dev / math.sqrt(n_spins)

        theory = theoretical_base_rtp(config)
        # Cascade wins are outside the closed form
        if config.cascades:
            theory = None
        delta = abs(measured_base - theory) if theory is not None else None

        logger.info(f"{config.name}: {n_spins:,} spins, base RTP={measured_base * 100:.3f}%, "
                    f"total RTP={measured_total * 100:.3f}%")

        return SimulationResult(
            game_name=config.name,
            n_spins=n_spins,
            bet=bet,
            theoretical_base_rtp=theory,
            measured_base_rtp=measured_base,
            measured_total_rtp=measured_total,
            rtp_delta=delta,
            rtp_pass=(delta <= tolerance) if delta is not None else None,
            tolerance=tolerance,
            hit_frequency=hits / n_spins,
            std_dev=std_dev,
            max_win=max_mult,
            confidence_95=(measured_total - 1.96 * std_err, measured_total + 1.96 * std_err),
            distribution={k: round(v / n_spins * 100, 2) for k, v in sorted(buckets.items())},
            feature_rates={k: round(v / n_spins, 6) for k, v in sorted(features.items())},
            free_spins_played=free_played,
            breakdown=rtp_breakdown(config),
            duration_seconds=duration,
            spins_per_second=n_spins / duration if duration > 0 else 0,
            seed=seed,
        )
