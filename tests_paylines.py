#!/usr/bin/env python3
"""
Tests for payline generation and resolution

Validates:
1. 5x3 grids get the standard 20-line table, first in larger sets too
2. Other grid sizes get unique, in-range generated lines
3. Generation runs short only when rows**reels < count
4. validate_payline reports length and row problems
5. resolve_paylines keeps good patterns, truncates to count, regenerates bad ones
6. payline_positions maps a pattern to (reel, row) cells
"""

import logging
import sys
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import SlotGameConfig, default_symbols
from engine.slots.paylines import (
    STANDARD_LINES_5X3, generate_paylines, payline_positions, resolve_paylines, validate_payline,
)


def _config(reels, rows, count, patterns=None):
    return SlotGameConfig.model_validate({
        "layout": {"reels": reels, "rows": rows},
        "symbols": [s.model_dump() for s in default_symbols()],
        "paylines": {"count": count, "patterns": patterns or []},
    })


def test_standard_5x3_table():
    """20 lines on 5x3 are the standard table, in order."""
    lines = generate_paylines(20, 5, 3)
    assert lines == [list(p) for p in STANDARD_LINES_5X3]
    assert generate_paylines(5, 5, 3) == lines[:5]
    assert len({tuple(p) for p in STANDARD_LINES_5X3}) == 20, "standard lines must be unique"

    more = generate_paylines(50, 5, 3)
    assert more[:20] == lines, "larger 5x3 sets keep the standard lines first"
    assert len({tuple(p) for p in more}) == 50
    print("✅ 5x3: standard 20-line table")


def test_generated_lines_unique_and_in_range():
    """6x4 / 30 lines: unique patterns, every row index valid."""
    for reels, rows, count in [(6, 4, 30), (3, 3, 5), (8, 8, 100), (5, 3, 50)]:
        lines = generate_paylines(count, reels, rows)
        assert len(lines) == count, f"{reels}x{rows}: expected {count}, got {len(lines)}"
        assert len({tuple(p) for p in lines}) == count, f"{reels}x{rows}: duplicate lines"
        for p in lines:
            assert validate_payline(p, reels, rows) is None, f"{reels}x{rows}: bad line {p}"
    print("✅ Generated lines are unique and fit the grid")


def test_first_generated_line_is_middle_row():
    lines = generate_paylines(10, 6, 5)
    assert lines[0] == [2] * 6
    print("✅ Generated set starts with the middle row")


def test_generation_limited_by_combinations():
    """A 3x1 grid only has one possible line; 3x2 has 8."""
    assert generate_paylines(5, 3, 1) == [[0, 0, 0]]
    assert len(generate_paylines(20, 3, 2)) == 8
    assert generate_paylines(0, 5, 3) == []
    print("✅ Generation stops at rows**reels")


def test_validate_payline_messages():
    assert validate_payline([1, 1, 1, 1, 1], 5, 3) is None
    assert "length" in validate_payline([1, 1, 1], 5, 3)
    assert "invalid row 3" in validate_payline([0, 1, 2, 3, 0], 5, 3)
    assert "invalid row -1" in validate_payline([0, -1, 0, 0, 0], 5, 3)
    assert validate_payline("11111", 5, 3) == "pattern is not a list"
    print("✅ validate_payline: length and row errors")


def test_resolve_keeps_and_truncates_patterns():
    patterns = [[0, 0, 0, 0, 0], [2, 2, 2, 2, 2], [1, 1, 1, 1, 1]]
    assert resolve_paylines(_config(5, 3, 3, patterns)) == patterns
    assert resolve_paylines(_config(5, 3, 2, patterns)) == patterns[:2]
    print("✅ resolve_paylines: configured patterns kept, truncated to count")


def test_resolve_regenerates_bad_patterns():
    """One pattern outside the grid → whole set regenerated for the layout."""
    cfg = _config(5, 3, 3, [[0, 0, 0, 0, 0], [0, 0, 0, 0, 9]])
    assert resolve_paylines(cfg) == [list(p) for p in STANDARD_LINES_5X3[:3]]

    cfg = _config(6, 4, 12)
    lines = resolve_paylines(cfg)
    assert len(lines) == 12 and all(len(p) == 6 for p in lines)
    print("✅ resolve_paylines: bad patterns regenerated")


def test_payline_positions():
    assert payline_positions([0, 1, 2]) == [(0, 0), (1, 1), (2, 2)]
    print("✅ payline_positions")


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    tests = [
        test_standard_5x3_table,
        test_generated_lines_unique_and_in_range,
        test_first_generated_line_is_middle_row,
        test_generation_limited_by_combinations,
        test_validate_payline_messages,
        test_resolve_keeps_and_truncates_patterns,
        test_resolve_regenerates_bad_patterns,
        test_payline_positions,
    ]

    print(f"\n{'='*60}")
    print(f"Payline Tests — {len(tests)} tests")
    print(f"{'='*60}\n")

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"❌ {test.__name__}: {e}")
            failed += 1
        print()

    print(f"{'='*60}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    print(f"{'='*60}")

    sys.exit(0 if failed == 0 else 1)
