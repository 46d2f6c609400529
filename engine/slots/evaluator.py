"""
REELSMITH — Win Evaluator

Given a symbol grid (grid[reel][row]) and a game config, determines which
lines win, how much, and which bonus features trigger.

Line rule: walk each payline from reel 0. Feature symbols (scatter, bonus,
holdspin) stop the walk. Leading wilds count toward the run; the first
non-wild fixes the paying symbol and every later cell must match it or be
wild. A run of wilds alone pays as the wild. Runs of at least `min_match`
pay paytable[symbol][count] × (total bet / active lines).

Scatter rule: the free-spin trigger symbol is counted over the whole grid,
independent of paylines, and pays × total bet once the threshold is reached.

Usage:
    from engine.slots.evaluator import WinEvaluator
    evaluator = WinEvaluator(config)
    result = evaluator.evaluate(grid, total_bet=1.0)
    print(result.total_win, result.features_triggered)
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from config.game_schema import PayMechanism, SlotGameConfig, WinThresholds
from engine.errors import GridError
from engine.slots.paylines import resolve_paylines
from engine.slots.paytable import Paytable

logger = logging.getLogger("reelsmith.eval")


# ═══════════════════════════════════════════════════════════════
# Result Structures
# ═══════════════════════════════════════════════════════════════

@dataclass
class LineWin:
    """One paying combination: a line, a scatter, a way group or a cluster."""
    symbol: str
    count: int
    positions: list[tuple[int, int]]    # (reel, row)
    multiplier: float                   # paytable multiplier
    amount: float                       # credited amount
    kind: str = "line"                  # line | scatter | way | cluster
    line: Optional[int] = None          # 1-based payline number
    ways: int = 1

    def to_dict(self) -> dict:
        d = {
            "kind": self.kind,
            "symbol": self.symbol,
            "count": self.count,
            "positions": [list(p) for p in self.positions],
            "multiplier": self.multiplier,
            "amount": round(self.amount, 6),
        }
        if self.line is not None:
            d["line"] = self.line
        if self.kind == "way":
            d["ways"] = self.ways
        return d


@dataclass
class SpinEvaluation:
    grid: list[list[str]]
    total_bet: float
    wins: list[LineWin] = field(default_factory=list)
    scatter_count: int = 0
    bonus_count: int = 0
    features_triggered: list[str] = field(default_factory=list)
    win_tier: str = "small"

    @property
    def total_win(self) -> float:
        return sum(w.amount for w in self.wins)

    @property
    def is_win(self) -> bool:
        return self.total_win > 0

    @property
    def multiplier(self) -> float:
        return self.total_win / self.total_bet if self.total_bet > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "grid": self.grid,
            "total_bet": self.total_bet,
            "total_win": round(self.total_win, 6),
            "multiplier": round(self.multiplier, 4),
            "win_tier": self.win_tier,
            "scatter_count": self.scatter_count,
            "bonus_count": self.bonus_count,
            "features_triggered": list(self.features_triggered),
            "wins": [w.to_dict() for w in self.wins],
        }


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════

def classify_win(total_bet: float, total_win: float, thresholds: WinThresholds = None) -> str:
    """Map a win to small | big | mega | super by multiple of the total bet."""
    if total_win <= 0 or total_bet <= 0:
        return "small"
    t = thresholds or WinThresholds()
    multiple = total_win / total_bet
    if multiple >= t.super_win:
        return "super"
    if multiple >= t.mega_win:
        return "mega"
    if multiple >= t.big_win:
        return "big"
    return "small"


def validate_grid(grid, config: SlotGameConfig) -> None:
    """Raise GridError unless grid is reels × rows of symbol ids."""
    reels, rows = config.layout.reels, config.layout.rows
    if not isinstance(grid, (list, tuple)) or len(grid) != reels:
        raise GridError(f"grid must have {reels} reels, got "
                        f"{len(grid) if isinstance(grid, (list, tuple)) else type(grid).__name__}")
    for i, reel in enumerate(grid):
        if not isinstance(reel, (list, tuple)) or len(reel) != rows:
            raise GridError(f"reel {i} must have {rows} rows")
        for row, sym in enumerate(reel):
            if not isinstance(sym, str) or not sym:
                raise GridError(f"empty or non-string symbol at reel {i}, row {row}")


def count_symbol(grid, symbol: str) -> int:
    return sum(1 for reel in grid for s in reel if s == symbol)


def find_symbol_positions(grid, symbol: str) -> list[tuple[int, int]]:
    return [(r, row) for r, reel in enumerate(grid) for row, s in enumerate(reel) if s == symbol]


# ═══════════════════════════════════════════════════════════════
# Evaluator
# ═══════════════════════════════════════════════════════════════

class WinEvaluator:
    def __init__(self, config: SlotGameConfig):
        self.config = config
        self.paytable = Paytable(config)
        self.paylines = resolve_paylines(config)
        self.min_match = config.min_match

    def update_configuration(self, config: SlotGameConfig) -> None:
        self.__init__(config)
        logger.debug(f"Evaluator reconfigured: {len(config.symbols)} symbols, "
                     f"{len(self.paylines)} paylines")

    # ── Line evaluation ──

    def evaluate_line(self, symbols: list[str]) -> tuple[Optional[str], int]:
        """Leftmost run on one line → (paying symbol, run length)."""
        pt = self.paytable
        paying = None
        count = 0
        for s in symbols:
            if pt.is_feature(s):
                break
            if paying is None:
                count += 1
                if not pt.is_wild(s):
                    paying = s
            elif s == paying or pt.is_wild(s):
                count += 1
            else:
                break
        if paying is None:
            if count >= self.min_match:
                return symbols[0], count
            return None, 0
        return paying, count

    def evaluate_paylines(self, grid, total_bet: float) -> list[LineWin]:
        active = len(self.paylines)
        if active == 0 or not grid:
            return []
        bet_per_line = total_bet / active
        wins = []

        for idx, pattern in enumerate(self.paylines):
            if len(pattern) != len(grid):
                logger.warning(f"Skipping betline {idx + 1}: pattern length {len(pattern)} "
                               f"vs grid of {len(grid)} reels")
                continue
            symbols, positions = [], []
            for reel, row in enumerate(pattern):
                if row < 0 or row >= len(grid[reel]):
                    logger.warning(f"Skipping betline {idx + 1}: missing symbol at reel {reel}, row {row}")
                    symbols = None
                    break
                symbols.append(grid[reel][row])
                positions.append((reel, row))
            if symbols is None:
                continue

            symbol, count = self.evaluate_line(symbols)
            if symbol is None or count < self.min_match:
                continue
            mult = self.paytable.line_pay(symbol, count)
            if mult <= 0:
                continue
            wins.append(LineWin(
                symbol=symbol, count=count, positions=positions[:count],
                multiplier=mult, amount=mult * bet_per_line, kind="line", line=idx + 1,
            ))
        return wins

    # ── Scatter ──

    def evaluate_scatter(self, grid, total_bet: float) -> Optional[LineWin]:
        fs = self.config.free_spins
        positions = find_symbol_positions(grid, fs.trigger_symbol)
        if len(positions) < fs.min_trigger_count:
            return None
        mult = self.paytable.scatter_pay(fs.trigger_symbol, len(positions))
        if mult <= 0:
            return None
        return LineWin(
            symbol=fs.trigger_symbol, count=len(positions), positions=positions,
            multiplier=mult, amount=mult * total_bet, kind="scatter",
        )

    # ── Full grid ──

    def evaluate(self, grid, total_bet: float) -> SpinEvaluation:
        from engine.slots import mechanics
        from engine.slots.features import check_feature_triggers

        cfg = self.config
        if cfg.mechanism == PayMechanism.WAYS:
            wins = mechanics.evaluate_ways(grid, self.paytable, total_bet,
                                           cfg.ways_bet_divisor, self.min_match)
        elif cfg.mechanism == PayMechanism.CLUSTER:
            wins = mechanics.evaluate_clusters(grid, self.paytable, total_bet,
                                               cfg.cluster_min_size, cfg.cluster_pay_factor)
        else:
            wins = self.evaluate_paylines(grid, total_bet)

        scatter = self.evaluate_scatter(grid, total_bet)
        if scatter:
            wins.append(scatter)

        counts = Counter(s for reel in grid for s in reel)
        scatter_count = counts.get(cfg.free_spins.trigger_symbol, 0)
        bonus_count = counts.get(cfg.wheel.trigger_symbol, 0)
        result = SpinEvaluation(
            grid=[list(reel) for reel in grid],
            total_bet=total_bet,
            wins=wins,
            scatter_count=scatter_count,
            bonus_count=bonus_count,
            features_triggered=check_feature_triggers(cfg, scatter_count, bonus_count, counts=counts),
        )
        result.win_tier = classify_win(total_bet, result.total_win, cfg.win_thresholds)

        if result.wins:
            logger.debug(f"{len(result.wins)} wins, total={result.total_win:.2f}, "
                         f"tier={result.win_tier}")
        return result
