#!/usr/bin/env python3
"""
Tests for scratch-card math

Validates:
1. Presets rescale from 1M tickets with half-up rounding
2. calculate_rtp for finite decks and per-ticket probabilities
3. Commercial viability: RTP cap, loser floor, money-back warning
4. scale_to_target_rtp halves / keeps weights as expected
5. Losing reveal maps never show a winning tier
6. Winning maps show exactly the prize combination (SINGLE_WIN)
7. find_target tiers, infeasible grids, reproducible rounds
8. Engine registry + Monte Carlo agreement with the theoretical RTP
"""

import logging
import sys
from collections import Counter
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import (
    ScratchCondition, ScratchConfig, ScratchPrizeTier, load_scratch_config,
)
from engine import get_game_engine
from engine.errors import ConfigError
from engine.scratch import (
    ScratchEngine, apply_preset, calculate_rtp, evaluate_reveal_map,
    scale_to_target_rtp, validate_commercial_viability,
)


def _casual(seed=1, **kw):
    engine = ScratchEngine(seed=seed)
    return engine, engine.generate_config(preset="CASUAL", **kw)


def _expect_config_error(fn, *args):
    try:
        fn(*args)
    except ConfigError:
        return
    assert False, f"{fn.__name__} should raise ConfigError"


# ── Presets & RTP ──

def test_preset_rescaling():
    prizes = {p.id: p for p in apply_preset("balanced", 100_000)}
    assert prizes["p_b1"].weight == 1, "0.5 rounds half-up to 1"
    assert prizes["p_b4"].weight == 5300
    assert abs(prizes["p_b4"].probability - 0.053) < 1e-12
    assert prizes["p_b1"].condition.symbol_id == "sym_diamond"
    _expect_config_error(apply_preset, "NOPE")
    print("✅ Preset rescaling")


def test_calculate_rtp():
    casual = apply_preset("CASUAL")
    assert abs(calculate_rtp(casual, 1_000_000) - 0.646) < 1e-12
    assert abs(calculate_rtp(apply_preset("BALANCED"), 1_000_000) - 0.9575) < 1e-12
    assert abs(calculate_rtp(apply_preset("HIGH_ROLLER"), 1_000_000) - 0.96) < 1e-12
    # Without a deck size the per-ticket probabilities are used
    assert abs(calculate_rtp(casual) - 0.646) < 1e-9
    assert calculate_rtp([]) == 0.0
    print("✅ calculate_rtp")


def test_viability():
    _, casual = _casual()
    report = validate_commercial_viability(casual)
    assert report.is_valid, report.errors
    assert len(report.warnings) == 1 and "Money-back" in report.warnings[0]
    assert abs(report.loser_rate - 0.50899) < 1e-9

    balanced = ScratchEngine(seed=1).generate_config(preset="BALANCED")
    report = validate_commercial_viability(balanced)
    assert not report.is_valid
    assert any("RTP" in e for e in report.errors)

    crowded = casual.model_copy(update={"total_tickets": 400_000})
    report = validate_commercial_viability(crowded)
    assert any("impossible" in e for e in report.errors)
    assert any("Guaranteed loss" in e for e in report.errors)

    unlimited = casual.model_copy(update={"math_mode": "UNLIMITED"})
    assert validate_commercial_viability(unlimited).is_valid
    print("✅ Commercial viability")


def test_scale_to_target_rtp():
    casual = apply_preset("CASUAL")
    halved = scale_to_target_rtp(casual, 1_000_000, 32.3)
    assert [p.weight for p in halved] == [5, 500, 7500, 37500, 200000]
    assert abs(calculate_rtp(halved, 1_000_000) - 0.323) < 1e-12
    assert [p.weight for p in casual][0] == 10, "input is not modified"

    tiny = scale_to_target_rtp(casual, 1_000_000, 0.01)
    assert all(p.weight >= 1 for p in tiny)
    print("✅ scale_to_target_rtp")


# ── Reveal Maps ──

def test_losing_maps_show_no_win():
    engine, config = _casual()
    for _ in range(300):
        grid = engine.generate_losing_grid(config)
        assert len(grid) == 9 and None not in grid
        assert max(Counter(grid).values()) < config.match_count
        assert evaluate_reveal_map(grid, config) == []
    print("✅ Losing maps: no tier reads as won")


def test_winning_maps_single_win():
    engine, config = _casual()
    for tier in config.prizes:
        for _ in range(50):
            grid = engine.generate_winning_grid(config, tier)
            counts = Counter(grid)
            assert counts[tier.condition.symbol_id] == 3
            assert evaluate_reveal_map(grid, config) == [tier.id]
    print("✅ Winning maps: exactly one tier, exactly 3 prize symbols")


def test_winning_maps_multi_win():
    engine, config = _casual(win_logic="MULTI_WIN")
    tier = config.prizes[2]
    for _ in range(50):
        grid = engine.generate_winning_grid(config, tier)
        assert Counter(grid)[tier.condition.symbol_id] == 3
        assert tier.id in evaluate_reveal_map(grid, config)
    print("✅ MULTI_WIN maps keep the prize combination")


def test_find_target():
    tier = ScratchPrizeTier(id="t_star", name="Star",
                            condition=ScratchCondition(type="find_target", symbol_id="sym_star"),
                            payout=5, weight=100_000)
    config = ScratchConfig(prizes=[tier])
    engine = ScratchEngine(seed="find")
    win = engine.generate_winning_grid(config, tier)
    assert win.count("sym_star") == 1
    assert evaluate_reveal_map(win, config) == ["t_star"]
    for _ in range(100):
        assert "sym_star" not in engine.generate_losing_grid(config)
    print("✅ find_target tiers")


def test_infeasible_grids_raise():
    config = ScratchConfig(
        win_symbols=["a"], lose_symbols=["b"],
        prizes=[ScratchPrizeTier(id="t_a", condition=ScratchCondition(count=3, symbol_id="a"),
                                 payout=2, weight=10)],
    )
    engine = ScratchEngine(seed=3)
    _expect_config_error(engine.generate_losing_grid, config)

    too_many = ScratchPrizeTier(id="t_big", condition=ScratchCondition(count=10, symbol_id="a"),
                                payout=5, weight=1)
    _expect_config_error(engine.generate_winning_grid, config, too_many)
    print("✅ Infeasible grids raise ConfigError")


# ── Rounds ──

def test_rounds_reproducible():
    _, config = _casual()
    assert ScratchEngine(seed=42).resolve_round(config).to_dict() == \
        ScratchEngine(seed=42).resolve_round(config).to_dict()
    e1, e2 = ScratchEngine(seed="s"), ScratchEngine(seed="s")
    for _ in range(20):
        assert e1.resolve_round(config).to_dict() == e2.resolve_round(config).to_dict()
    print("✅ Rounds reproducible from the seed")


def test_round_consistency():
    engine, config = _casual(seed=7)
    by_id = {p.id: p for p in config.prizes}
    for _ in range(500):
        outcome = engine.resolve_round(config)
        assert outcome.round_id.startswith("rnd_")
        shown = evaluate_reveal_map(outcome.reveal_map, config)
        if outcome.is_win:
            assert shown == [outcome.tier_id]
            assert outcome.final_prize == by_id[outcome.tier_id].payout
        else:
            assert outcome.tier_id == "lose_pool" and shown == []
            assert outcome.final_prize == 0
    print("✅ Outcomes match their reveal maps")


def test_unlimited_mode_uses_probabilities():
    tier = ScratchPrizeTier(id="t1", condition=ScratchCondition(symbol_id="sym_gold"),
                            payout=2, weight=0, probability=0.5)
    config = ScratchConfig(math_mode="UNLIMITED", prizes=[tier])
    engine = ScratchEngine(seed=11)
    wins = sum(engine.resolve_round(config).is_win for _ in range(4000))
    assert 1800 < wins < 2200, wins
    print("✅ UNLIMITED mode draws by probability")


def test_engine_simulation():
    engine = get_game_engine("scratch")
    config = engine.generate_config(preset="CASUAL")
    assert abs(engine.compute_rtp(config) - 0.646) < 1e-12
    result = engine.simulate(config, rounds=100_000, seed=3)
    assert abs(result.rtp_measured - 0.646) < 0.02, result.rtp_measured
    assert abs(result.hit_rate - 0.49101) < 0.01
    assert "p_c5" in result.feature_rates
    print(f"✅ Scratch simulation RTP {result.rtp_measured:.4f}")


def test_load_scratch_config_fallback():
    assert load_scratch_config("{broken").prizes == []
    cfg = load_scratch_config({"rows": 4, "columns": 4})
    assert cfg.grid_size == 16
    _expect_config_error(load_scratch_config, {"rows": 0}, True)
    print("✅ load_scratch_config")


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    tests = [
        test_preset_rescaling,
        test_calculate_rtp,
        test_viability,
        test_scale_to_target_rtp,
        test_losing_maps_show_no_win,
        test_winning_maps_single_win,
        test_winning_maps_multi_win,
        test_find_target,
        test_infeasible_grids_raise,
        test_rounds_reproducible,
        test_round_consistency,
        test_unlimited_mode_uses_probabilities,
        test_engine_simulation,
        test_load_scratch_config_fallback,
    ]

    print(f"\n{'='*60}")
    print(f"Scratch Card Tests — {len(tests)} tests")
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
