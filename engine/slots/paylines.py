"""Payline patterns: one 0-based row index per reel, one list per line."""

from __future__ import annotations

import itertools
import logging
from typing import List, Optional

logger = logging.getLogger("reelsmith.eval")


# Standard 20-line layout for a 5x3 grid
STANDARD_LINES_5X3: List[List[int]] = [
    [1, 1, 1, 1, 1],  # middle row
    [0, 0, 0, 0, 0],  # top row
    [2, 2, 2, 2, 2],  # bottom row
    [0, 1, 2, 1, 0],  # V
    [2, 1, 0, 1, 2],  # inverted V
    [1, 0, 0, 0, 1],
    [1, 2, 2, 2, 1],
    [0, 0, 1, 2, 2],
    [2, 2, 1, 0, 0],
    [1, 2, 1, 0, 1],
    [1, 0, 1, 2, 1],
    [0, 1, 0, 1, 0],
    [2, 1, 2, 1, 2],
    [0, 1, 1, 1, 0],
    [2, 1, 1, 1, 2],
    [1, 1, 0, 1, 1],
    [1, 1, 2, 1, 1],
    [0, 0, 2, 0, 0],
    [2, 2, 0, 2, 2],
    [0, 2, 2, 2, 0],
]


def _shaped_patterns(reels: int, rows: int) -> List[List[int]]:
    """Recognisable shapes first: straight rows, diagonals, zigzags, V shapes."""
    last = rows - 1
    mid = rows // 2
    shapes: List[List[int]] = [[mid] * reels]
    if rows >= 2:
        shapes.append([0] * reels)
        shapes.append([last] * reels)
    shapes.extend([r] * reels for r in range(rows))

    if rows >= 3:
        shapes.append([min(i, reels - 1 - i, last) for i in range(reels)])
        shapes.append([last - s for s in shapes[-1]])
        span = max(reels - 1, 1)
        shapes.append([min(last, i * last // span) for i in range(reels)])
        shapes.append([max(0, last - i * last // span) for i in range(reels)])
    if rows >= 2:
        shapes.append([0 if i % 2 == 0 else 1 for i in range(reels)])
        shapes.append([last if i % 2 == 0 else last - 1 for i in range(reels)])
        shapes.append([mid if i % 2 == 0 else (mid + 1) % rows for i in range(reels)])
    return shapes


def generate_paylines(count: int, reels: int, rows: int) -> List[List[int]]:
    """Deterministic paylines for any grid size.

    5x3 grids start with the standard table; other sizes start with shaped
    patterns. An exhaustive fill follows, so the result only runs short when
    rows**reels < count.
    """
    if count <= 0 or reels <= 0 or rows <= 0:
        return []
    lines: List[List[int]] = []
    seen = set()

    def _add(pattern: List[int]) -> bool:
        key = tuple(pattern)
        if key not in seen:
            seen.add(key)
            lines.append(list(pattern))
        return len(lines) >= count

    seeds = STANDARD_LINES_5X3 if (reels, rows) == (5, 3) else _shaped_patterns(reels, rows)
    for shape in seeds:
        if _add(shape):
            return lines
    for combo in itertools.product(range(rows), repeat=reels):
        if _add(list(combo)):
            break
    return lines


def validate_payline(pattern: List[int], reels: int, rows: int) -> Optional[str]:
    """Return an error message, or None when the pattern fits the grid."""
    if not isinstance(pattern, (list, tuple)):
        return "pattern is not a list"
    if len(pattern) != reels:
        return f"pattern length {len(pattern)} vs expected {reels} reels"
    for reel, row in enumerate(pattern):
        if not isinstance(row, int) or row < 0 or row >= rows:
            return f"invalid row {row} for reel {reel} (valid range: 0-{rows - 1})"
    return None


def resolve_paylines(config) -> List[List[int]]:
    """Configured patterns when they all fit the layout, generated ones otherwise."""
    reels, rows = config.layout.reels, config.layout.rows
    count = config.paylines.count
    patterns = config.paylines.patterns

    if patterns:
        errors = [validate_payline(p, reels, rows) for p in patterns]
        if not any(errors):
            return [list(p) for p in patterns[:count]]
        bad = next(i for i, e in enumerate(errors) if e)
        logger.warning(f"Payline {bad + 1}: {errors[bad]}; regenerating {count} lines "
                       f"for {reels}x{rows} grid")

    return generate_paylines(count, reels, rows)


def payline_positions(pattern: List[int]) -> List[tuple]:
    """[(reel, row), ...] for a pattern."""
    return [(reel, row) for reel, row in enumerate(pattern)]
