"""
REELSMITH — Alternative Pay Mechanics

Ways-to-win, cluster pays and the cascade (tumble) refill used by both.
Grids are grid[reel][row]; row 0 is the top of a reel.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from engine.slots.evaluator import LineWin
from engine.slots.paytable import Paytable

logger = logging.getLogger("reelsmith.eval")


# ═══════════════════════════════════════════════════════════════
# Ways to Win
# ═══════════════════════════════════════════════════════════════

def evaluate_ways(grid, paytable: Paytable, total_bet: float,
                  divisor: float = 20.0, min_match: int = 3) -> list[LineWin]:
    """Left-to-right ways. A symbol on reel 0 pays when it (or a wild) shows on
    each following reel; ways = product of hits per reel."""
    wins: list[LineWin] = []
    if not grid:
        return wins

    starts = []
    for s in grid[0]:
        if s not in starts and not paytable.is_feature(s):
            starts.append(s)

    for sym in starts:
        wild_start = paytable.is_wild(sym)
        ways = 1
        reels = 0
        positions: list[tuple[int, int]] = []
        for r, reel in enumerate(grid):
            hits = [row for row, s in enumerate(reel)
                    if s == sym or (not wild_start and paytable.is_wild(s))]
            if not hits:
                break
            reels += 1
            ways *= len(hits)
            positions.extend((r, row) for row in hits)

        if reels < min_match:
            continue
        mult = paytable.line_pay(sym, reels)
        if mult <= 0:
            continue
        wins.append(LineWin(
            symbol=sym, count=reels, positions=positions, multiplier=mult,
            amount=mult * ways * total_bet / divisor, kind="way", ways=ways,
        ))
    return wins


# ═══════════════════════════════════════════════════════════════
# Cluster Pays
# ═══════════════════════════════════════════════════════════════

def _flood(grid, start: tuple[int, int], sym: str, paytable: Paytable) -> list[tuple[int, int]]:
    """4-neighbour BFS from `start` over cells equal to `sym` or wild."""
    n_reels = len(grid)
    seen = {start}
    queue = deque([start])
    cluster = []
    while queue:
        r, row = queue.popleft()
        cluster.append((r, row))
        for nr, nrow in ((r - 1, row), (r + 1, row), (r, row - 1), (r, row + 1)):
            if 0 <= nr < n_reels and 0 <= nrow < len(grid[nr]) and (nr, nrow) not in seen:
                cell = grid[nr][nrow]
                if cell == sym or paytable.is_wild(cell):
                    seen.add((nr, nrow))
                    queue.append((nr, nrow))
    return cluster


def evaluate_clusters(grid, paytable: Paytable, total_bet: float,
                      min_size: int = 5, factor: float = 0.05) -> list[LineWin]:
    """Connected groups of one symbol (wilds join any group) of at least `min_size`."""
    wins: list[LineWin] = []
    claimed: set[tuple[int, int]] = set()

    for r, reel in enumerate(grid):
        for row, sym in enumerate(reel):
            if (r, row) in claimed or paytable.is_wild(sym) or paytable.is_feature(sym):
                continue
            cluster = _flood(grid, (r, row), sym, paytable)
            # Wild cells may be shared between clusters; symbol cells may not
            claimed.update(p for p in cluster if not paytable.is_wild(grid[p[0]][p[1]]))
            size = len(cluster)
            if size < min_size:
                continue

            mult = paytable.max_count_pay(sym, size)
            amount = mult * total_bet if mult > 0 else size * factor * total_bet
            if amount <= 0:
                continue
            wins.append(LineWin(
                symbol=sym, count=size, positions=sorted(cluster),
                multiplier=mult if mult > 0 else size * factor,
                amount=amount, kind="cluster",
            ))
    return wins


# ═══════════════════════════════════════════════════════════════
# Cascades
# ═══════════════════════════════════════════════════════════════

def cascade(grid, positions, refill: Callable[[int], str]) -> list[list[str]]:
    """Clear `positions`, let survivors fall to the bottom of each reel and
    fill the gaps from the top with `refill(reel_index)`."""
    cleared = set(map(tuple, positions))
    out = []
    for r, reel in enumerate(grid):
        survivors = [s for row, s in enumerate(reel) if (r, row) not in cleared]
        missing = len(reel) - len(survivors)
        out.append([refill(r) for _ in range(missing)] + survivors)
    return out


def run_cascades(evaluator, grid, total_bet: float, refill: Callable[[int], str],
                 max_cascades: int = 10):
    """Evaluate, clear winning cells, refill, repeat while the grid keeps paying.

    Returns (evaluations, final_grid). Scatter wins are paid on the first
    evaluation only and their symbols are not cleared.
    """
    evaluations = [evaluator.evaluate(grid, total_bet)]
    steps = 0
    while steps < max_cascades:
        last = evaluations[-1]
        clear = {p for w in last.wins if w.kind != "scatter" for p in w.positions}
        if not clear:
            break
        grid = cascade(grid, clear, refill)
        steps += 1
        nxt = evaluator.evaluate(grid, total_bet)
        nxt.wins = [w for w in nxt.wins if w.kind != "scatter"]
        nxt.features_triggered = []
        evaluations.append(nxt)

    if steps:
        logger.debug(f"{steps} cascades, total={sum(e.total_win for e in evaluations):.2f}")
    return evaluations, grid
