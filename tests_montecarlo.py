#!/usr/bin/env python3
"""
Tests for slot RTP math and the Monte Carlo validator

Validates:
1. Exact line RTP on tiny configs (plain, wild, strip, ways, strip ways with exclusion)
2. Scatter count distribution matches the binomial closed form
3. rtp_breakdown components add up, and report None where there is no closed form
4. Free-spin RTP (trigger-symbol exclusion included) agrees with simulation
5. SlotMonteCarlo passes its own RTP check and serialises to JSON
6. SlotEngine registry integration
"""

import json
import logging
import sys
from math import comb
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import SlotGameConfig, default_game_config
from engine import get_game_engine
from engine.rng import SeededRNG
from engine.slots.mechanics import evaluate_ways
from engine.slots.paytable import Paytable
from engine.slots.reels import ReelSet
from tools.slot_montecarlo import (
    SlotMonteCarlo, feature_trigger_probability, rtp_breakdown, scatter_distribution,
    theoretical_base_rtp, theoretical_line_rtp, theoretical_ways_rtp,
)

A8 = {"id": "A", "kind": "high", "weight": 1, "payouts": {3: 8}}
B = {"id": "B", "kind": "low", "weight": 1}


def tiny(symbols, **overrides) -> SlotGameConfig:
    """3 reels × 1 row, a single straight line, no free spins."""
    return SlotGameConfig.model_validate({
        "name": "Tiny",
        "layout": {"reels": 3, "rows": 1},
        "symbols": symbols,
        "paylines": {"count": 1, "patterns": [[0, 0, 0]]},
        "free_spins": {"enabled": False},
        **overrides,
    })


def _close(a, b, tol=1e-9):
    return abs(a - b) < tol


# ── Exact Math ──

def test_line_rtp_plain():
    """P(AAA) = 1/8, pays 8 → RTP 100%."""
    assert _close(theoretical_line_rtp(tiny([A8, B])), 1.0)
    print("✅ Plain line RTP")


def test_line_rtp_with_wild():
    """A/W 50:50 — 7 of 8 combos pay A (8), WWW pays the wild (16)."""
    wild = {"id": "W", "kind": "wild", "weight": 1, "payouts": {3: 16}}
    assert _close(theoretical_line_rtp(tiny([A8, wild])), 7.0 + 2.0)
    print("✅ Wild-substituted line RTP")


def test_line_rtp_strips():
    cfg = tiny([A8, B], reel_strips=[["A", "B"]] * 3)
    assert _close(theoretical_line_rtp(cfg), 1.0)
    cfg = tiny([A8, B], reel_strips=[["A", "B", "B", "B"]] * 3)
    assert _close(theoretical_line_rtp(cfg), 8 / 64)
    print("✅ Strip-mode line RTP")


def test_ways_rtp():
    cfg = tiny([A8, B], mechanism="ways", ways_bet_divisor=1)
    assert _close(theoretical_line_rtp(cfg), 1.0)
    # Two rows: E[ways] = E[hits]^3 = 1 → 8 × 1 / 20
    cfg = tiny([A8, B], mechanism="ways", layout={"reels": 3, "rows": 2})
    assert _close(theoretical_line_rtp(cfg), 8 * 1.0 / 20)
    print("✅ Ways RTP")


def test_ways_rtp_strips_redraw_excluded():
    """Excluded strip cells are redrawn from the weighted pool, not read as misses."""
    scatter = {"id": "S", "kind": "scatter", "weight": 1}
    strips = [["A", "S", "B"]] * 3
    # Each reel shows A with 1/3 + 1/3 × 1/2 = 1/2 → 8 × 1/8
    cfg = tiny([A8, B, scatter], mechanism="ways", ways_bet_divisor=1, reel_strips=strips)
    assert _close(theoretical_ways_rtp(cfg, ("S",)), 1.0)

    # Windows [A,S] [S,B] [B,A]: E[A hits] = (1.5 + 0.5 + 1) / 3 = 1 per reel
    cfg = tiny([A8, B, scatter], mechanism="ways", ways_bet_divisor=1, reel_strips=strips,
               layout={"reels": 3, "rows": 2})
    theory = theoretical_ways_rtp(cfg, ("S",))
    assert _close(theory, 8.0)

    reels, pt, rng = ReelSet.from_config(cfg), Paytable(cfg), SeededRNG(21)
    n = 40_000
    paid = sum(
        sum(w.amount for w in evaluate_ways(reels.spin_grid(rng, exclude=("S",)), pt, 1.0, divisor=1))
        for _ in range(n)
    )
    assert abs(paid / n - theory) < 0.25, f"measured {paid / n:.3f} vs theory {theory:.3f}"
    print(f"✅ Strip ways RTP with exclusion: {theory:.3f} ≈ {paid / n:.3f}")


def test_cluster_has_no_closed_form():
    cfg = tiny([A8, B], mechanism="cluster")
    assert theoretical_line_rtp(cfg) is None
    assert theoretical_base_rtp(cfg) is None
    breakdown = rtp_breakdown(cfg)
    assert breakdown["lines"] is None and breakdown["base_game"] is None
    assert breakdown["total"] == breakdown["scatter"] + breakdown["wheel"]
    print("✅ Cluster pays reported as simulation-only")


def test_scatter_distribution_binomial():
    cfg = default_game_config()
    dist = scatter_distribution(cfg, "scatter")
    p = 1 / 52
    assert _close(sum(dist.values()), 1.0)
    for c in (0, 1, 3, 5):
        assert _close(dist[c], comb(15, c) * p ** c * (1 - p) ** (15 - c), 1e-12)
    trigger = feature_trigger_probability(cfg, "scatter", 3)
    assert _close(trigger, sum(v for c, v in dist.items() if c >= 3))
    print(f"✅ Scatter distribution (trigger 1 in {1 / trigger:,.0f})")


def test_breakdown_adds_up():
    cfg = default_game_config()
    b = rtp_breakdown(cfg)
    assert set(b) == {"lines", "scatter", "free_spins", "wheel", "base_game", "total", "pick_and_click"}
    assert b["pick_and_click"] is None
    assert b["wheel"] == 0.0
    assert _close(b["base_game"], b["lines"] + b["scatter"], 1e-7)
    assert _close(b["total"], b["lines"] + b["scatter"] + b["free_spins"], 1e-7)
    assert b["free_spins"] > 0
    assert get_game_engine("slot").compute_rtp(cfg) == b["total"]
    print(f"✅ Default game RTP {b['total'] * 100:.2f}%")


def test_wheel_component():
    bonus = {"id": "bonus", "kind": "bonus", "weight": 2}
    cfg = tiny([A8, B, bonus], wheel={"enabled": True, "trigger_count": 3, "segments": 4,
                                      "segment_values": [1, 2, 3, 4]})
    # bonus on every reel: (2/4)^3
    assert _close(rtp_breakdown(cfg)["wheel"], 0.125 * 2.5, 1e-7)
    print("✅ Wheel RTP component")


def test_runaway_retrigger():
    scatter = {"id": "S", "kind": "scatter", "weight": 10}
    cfg = tiny([A8, B, scatter], free_spins={"enabled": True, "trigger_symbol": "S",
                                             "min_trigger_count": 1, "spins_awarded": [5]})
    b = rtp_breakdown(cfg)
    assert b["free_spins"] is None
    assert _close(b["total"], b["lines"] + b["scatter"], 1e-7)
    print("✅ Never-ending free spins reported as None")


# ── Simulation ──

def test_monte_carlo_plain_passes():
    result = SlotMonteCarlo().run(tiny([A8, B]), n_spins=20_000, seed=7, tolerance=0.1)
    assert _close(result.theoretical_base_rtp, 1.0)
    assert result.rtp_pass, result.summary()
    assert abs(result.hit_frequency - 0.125) < 0.01
    assert result.max_win == 8
    assert result.free_spins_played == 0

    data = json.loads(result.to_json())
    assert data["n_spins"] == 20_000 and data["rtp_pass"] is True
    assert data["theoretical_base_rtp_pct"] == 100.0
    assert "RTP Check" in result.summary()
    print(f"✅ Monte Carlo plain: {result.measured_base_rtp * 100:.2f}%")


def test_free_spins_rtp_matches_simulation():
    """Free spins without retrigger: the trigger symbol is removed from free-spin reels."""
    a = {**A8, "weight": 2}
    scatter = {"id": "S", "kind": "scatter", "weight": 1}
    cfg = tiny([a, B, scatter], free_spins={"enabled": True, "trigger_symbol": "S",
                                            "min_trigger_count": 1, "spins_awarded": [1, 2, 3],
                                            "retrigger": False})
    b = rtp_breakdown(cfg)
    # E[spins] = 0.75 and each free spin returns 8 × (2/3)^3
    assert _close(b["free_spins"], 0.75 * 8 * (2 / 3) ** 3, 1e-7)

    result = SlotMonteCarlo().run(cfg, n_spins=50_000, seed=11, tolerance=0.1)
    assert result.free_spins_played > 0
    assert result.feature_rates["free_spins"] > 0.5
    assert abs(result.measured_total_rtp - b["total"]) < 0.1, \
        f"measured {result.measured_total_rtp:.4f} vs theory {b['total']:.4f}"
    print(f"✅ Free spins: theory {b['total']:.4f} ≈ measured {result.measured_total_rtp:.4f}")


def test_cascades_skip_rtp_check():
    cfg = tiny([A8, B], cascades=True)
    result = SlotMonteCarlo().run(cfg, n_spins=2_000, seed=1)
    assert result.theoretical_base_rtp is None
    assert result.rtp_pass is None
    assert "no closed form" in result.summary()
    print("✅ Cascade games skip the closed-form check")


def test_slot_engine_simulate():
    engine = get_game_engine("slot")
    cfg = engine.generate_config(name="Engine Test")
    assert cfg.name == "Engine Test" and len(cfg.symbols) == 9
    result = engine.simulate(cfg, rounds=3_000, seed=5)
    assert result.game_type == "slot" and result.rounds == 3_000
    assert result.rtp_theoretical == rtp_breakdown(cfg)["total"]
    assert 0 < result.hit_rate < 1
    assert abs(sum(result.distribution.values()) - 1.0) < 0.01
    meta = engine.get_metadata()
    assert meta["game_type"] == "slot" and "ways" in meta["mechanisms"]
    print(f"✅ SlotEngine simulate: {result.rtp_measured * 100:.2f}%")


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    tests = [
        test_line_rtp_plain,
        test_line_rtp_with_wild,
        test_line_rtp_strips,
        test_ways_rtp,
        test_ways_rtp_strips_redraw_excluded,
        test_cluster_has_no_closed_form,
        test_scatter_distribution_binomial,
        test_breakdown_adds_up,
        test_wheel_component,
        test_runaway_retrigger,
        test_monte_carlo_plain_passes,
        test_free_spins_rtp_matches_simulation,
        test_cascades_skip_rtp_check,
        test_slot_engine_simulate,
    ]

    print(f"\n{'='*60}")
    print(f"Monte Carlo Tests — {len(tests)} tests")
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
