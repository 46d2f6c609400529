#!/usr/bin/env python3
"""
Tests for bonus features

Validates:
1. check_feature_triggers honours enabled flags, thresholds and trigger symbols
2. award_free_spins starts, retriggers, and refuses retriggers when disabled
3. build_wheel lays out level-up / respin / prize slices and weights
4. spin_wheel multiplies prizes by the level and stops at the extra-spin cap
5. wheel_expected_value matches hand-computed values; bad weights fail config validation
6. Pick-and-click: prizes, extra picks, multipliers and pick errors
7. Pick grids are reproducible from the seed
"""

import logging
import sys
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import SlotGameConfig, WheelConfig, default_game_config, load_game_config
from engine.errors import ConfigError, PickError
from engine.rng import SeededRNG
from engine.slots.features import (
    FreeSpinsState, PickAndClickRound, PickCell, award_free_spins, build_wheel,
    check_feature_triggers, spin_wheel, wheel_expected_value,
)


class ScriptedRNG(SeededRNG):
    """Wheel RNG that lands on scripted slice indices."""

    def __init__(self, script):
        super().__init__(0)
        self.script = list(script)

    def weighted_choice(self, items, weights):
        return items[self.script.pop(0)]


def _config(**overrides) -> SlotGameConfig:
    data = default_game_config().model_dump()
    data.update(overrides)
    return SlotGameConfig.model_validate(data)


# ── Triggers ──

def test_triggers_respect_enabled_flags():
    cfg = default_game_config()
    assert check_feature_triggers(cfg, 3, 3) == ["free_spins"]
    assert check_feature_triggers(cfg, 2, 5) == []

    cfg = _config(wheel={"enabled": True}, pick_and_click={"enabled": True, "trigger_count": 4})
    assert check_feature_triggers(cfg, 0, 3) == ["wheel"]
    assert check_feature_triggers(cfg, 3, 4) == ["free_spins", "wheel", "pick_and_click"]
    print("✅ Triggers: enabled flags and thresholds")


def test_pick_uses_its_own_trigger_symbol():
    cfg = _config(wheel={"enabled": True},
                  pick_and_click={"enabled": True, "trigger_symbol": "scatter"})
    counts = {"bonus": 0, "scatter": 3}
    assert check_feature_triggers(cfg, 3, 0, counts=counts) == ["free_spins", "pick_and_click"]
    print("✅ Pick-and-click counts its own trigger symbol")


# ── Free Spins ──

def test_award_and_retrigger():
    cfg = default_game_config()
    state = FreeSpinsState()
    assert award_free_spins(cfg, 2, state) == 0
    assert not state.active

    assert award_free_spins(cfg, 4, state) == 15
    assert state.active and state.remaining == 15

    state.consume()
    assert award_free_spins(cfg, 5, state) == 20
    assert state.remaining == 34
    assert state.awarded_total == 35
    assert state.played == 1
    print("✅ Free spins: award + retrigger")


def test_retrigger_disabled():
    cfg = _config(free_spins={"retrigger": False})
    state = FreeSpinsState()
    assert award_free_spins(cfg, 3, state) == 10
    assert award_free_spins(cfg, 3, state) == 0
    assert state.remaining == 10
    print("✅ Free spins: no retrigger when disabled")


def test_consume_ends_feature():
    state = FreeSpinsState(active=True, remaining=2)
    state.consume()
    assert state.active
    state.consume()
    assert not state.active and state.remaining == 0 and state.played == 2
    state.consume()
    assert state.played == 2, "consume on an inactive feature is a no-op"
    print("✅ Free spins: consume ends the feature")


# ── Wheel ──

def test_build_wheel_layout():
    cfg = WheelConfig(segments=8, segment_values=[1, 2], level_up=True, respin=True,
                      segment_weights=[5, 5, 10])
    segs = build_wheel(cfg)
    assert len(segs) == 8
    assert [s.kind for s in segs[:3]] == ["levelup", "respin", "prize"]
    assert [s.value for s in segs[2:]] == [1, 2, 50, 50, 50, 50]
    assert [s.weight for s in segs[:4]] == [5, 5, 10, 1]
    assert segs[2].label == "1x"

    small = build_wheel(WheelConfig(segments=2, level_up=True, respin=True))
    assert [s.kind for s in small] == ["prize", "prize"], "tiny wheels keep prize slices only"
    print("✅ Wheel layout")


def test_spin_wheel_levels_and_respins():
    cfg = WheelConfig(segments=4, segment_values=[5, 10], level_up=True, respin=True)
    # levelup → respin → first prize slice (5x)
    result = spin_wheel(cfg, 2.0, ScriptedRNG([0, 1, 2]))
    assert [s.kind for s in result.landed] == ["levelup", "respin", "prize"]
    assert result.level == 2
    assert result.prize == 5 * 2.0 * 2
    assert result.spins == 3 and not result.capped
    assert result.to_dict()["prize"] == 20.0
    print("✅ Wheel: level-up multiplies, respin spins again")


def test_spin_wheel_cap():
    cfg = WheelConfig(segments=4, level_up=True, max_extra_spins=2)
    result = spin_wheel(cfg, 1.0, ScriptedRNG([0, 0, 0, 0]))
    assert result.capped
    assert result.prize == 0
    assert result.spins == 3
    assert result.level == 3
    print("✅ Wheel: extra spins capped")


def test_wheel_expected_value():
    flat = WheelConfig(segments=4, segment_values=[1, 2, 3, 4])
    assert abs(wheel_expected_value(flat) - 2.5) < 1e-12

    # 1/3 level-up, 2/3 prize worth 2x; uncapped EV = 2 × (1 + E[level-ups]) = 3
    levels = WheelConfig(segments=3, segment_values=[2, 2], level_up=True, max_extra_spins=200)
    assert abs(wheel_expected_value(levels) - 3.0) < 1e-9

    capped = WheelConfig(segments=3, segment_values=[2, 2], level_up=True, max_extra_spins=0)
    assert abs(wheel_expected_value(capped) - 4 / 3) < 1e-12
    print("✅ Wheel expected value")


def test_wheel_ev_matches_spins():
    cfg = WheelConfig(segments=6, segment_values=[1, 2, 5, 10], level_up=True, respin=True)
    rng = SeededRNG(99)
    n = 40_000
    mean = sum(spin_wheel(cfg, 1.0, rng).prize for _ in range(n)) / n
    ev = wheel_expected_value(cfg)
    assert abs(mean - ev) / ev < 0.05, f"simulated {mean:.3f} vs EV {ev:.3f}"
    print(f"✅ Wheel EV {ev:.3f} ≈ simulated {mean:.3f}")


def test_zero_segment_value_pays_max_multiplier():
    cfg = WheelConfig(segments=4, segment_values=[0, 5, 0], max_multiplier=25)
    assert [s.value for s in build_wheel(cfg)] == [25, 5, 25, 25]
    assert abs(wheel_expected_value(cfg) - 20.0) < 1e-12
    print("✅ Wheel: zero slices take the max multiplier")


def test_bad_wheel_weights_fall_back():
    """Negative or all-zero weights are config errors, not spin-time crashes."""
    for weights in ([0] * 8, [1, 1, 1, -2]):
        data = {"wheel": {"enabled": True, "segment_weights": weights}}
        assert not load_game_config(data).wheel.enabled, weights
        try:
            load_game_config(data, strict=True)
        except ConfigError:
            pass
        else:
            assert False, f"weights {weights} should be rejected"

    try:
        WheelConfig(segment_values=[1, -1])
    except ValueError:
        pass
    else:
        assert False, "negative slice values should be rejected"

    # Zero weights are fine while some slice can still land
    partial = WheelConfig(segments=4, segment_weights=[0, 0])
    assert [s.weight for s in build_wheel(partial)] == [0, 0, 1, 1]
    print("✅ Wheel weights validated")


# ── Pick-and-Click ──

def _manual_round():
    cells = [
        [PickCell("prize", 10), PickCell("extra_pick")],
        [PickCell("multiplier", 2), PickCell("prize", 5)],
    ]
    return PickAndClickRound(cells=cells, total_bet=1.0, picks_remaining=1)


def test_pick_rules():
    rnd = _manual_round()
    assert rnd.pick(0, 1).kind == "extra_pick"
    assert rnd.picks_remaining == 2
    assert rnd.pick(1, 0).kind == "multiplier"
    assert rnd.picks_remaining == 2 and rnd.multiplier == 2
    rnd.pick(1, 1)
    assert rnd.total_win == 10 and rnd.picks_remaining == 1
    rnd.pick(0, 0)
    assert rnd.total_win == 30
    assert rnd.complete
    assert [c.kind for c in rnd.history] == ["extra_pick", "multiplier", "prize", "prize"]
    print("✅ Pick rules: prizes × multiplier, extra picks")


def test_pick_errors():
    rnd = _manual_round()
    for bad in [(2, 0), (0, -1)]:
        try:
            rnd.pick(*bad)
            assert False, f"pick{bad} should fail"
        except PickError:
            pass
    rnd.pick(0, 1)
    try:
        rnd.pick(0, 1)
        assert False, "double pick should fail"
    except PickError:
        pass
    rnd.pick(0, 0)
    rnd.pick(1, 1)
    assert rnd.complete
    try:
        rnd.pick(1, 0)
        assert False, "pick after completion should fail"
    except PickError:
        pass
    print("✅ Pick errors")


def test_pick_grid_build():
    cfg = _config(pick_and_click={"enabled": True, "grid_size": (3, 3), "picks": 3,
                                  "prize_values": [1, 2, 3, 4, 5, 6, 7, 8, 9],
                                  "extra_picks": True, "multipliers": True})
    rnd = PickAndClickRound.build(cfg, 2.0, SeededRNG(5))
    flat = [c for row in rnd.cells for c in row]
    assert len(rnd.cells) == 3 and all(len(r) == 3 for r in rnd.cells)
    kinds = [c.kind for c in flat]
    assert kinds.count("extra_pick") == 1
    assert kinds.count("multiplier") == 1
    assert kinds.count("prize") == 7
    mult = next(c for c in flat if c.kind == "multiplier")
    assert mult.value in (2, 3, 5)

    again = PickAndClickRound.build(cfg, 2.0, SeededRNG(5))
    assert [(c.kind, c.value) for row in again.cells for c in row] == [(c.kind, c.value) for c in flat]
    print("✅ Pick grid build: one extra pick, one multiplier, reproducible")


def test_pick_single_cell_grid():
    cfg = _config(pick_and_click={"enabled": True, "grid_size": (1, 1), "picks": 1,
                                  "extra_picks": True, "multipliers": True})
    rnd = PickAndClickRound.build(cfg, 1.0, SeededRNG(1))
    assert rnd.cells[0][0].kind == "extra_pick"
    assert rnd.autoplay(SeededRNG(1)) == 0
    assert rnd.complete
    print("✅ 1x1 pick grid keeps the extra pick only")


def test_pick_autoplay_uses_all_picks():
    cfg = _config(pick_and_click={"enabled": True, "picks": 3, "max_prize": 4})
    rnd = PickAndClickRound.build(cfg, 1.5, SeededRNG(8))
    win = rnd.autoplay(SeededRNG(8))
    assert rnd.complete
    assert len(rnd.history) == 3
    assert win == 3 * 4 * 1.5
    print("✅ Pick autoplay")


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    tests = [
        test_triggers_respect_enabled_flags,
        test_pick_uses_its_own_trigger_symbol,
        test_award_and_retrigger,
        test_retrigger_disabled,
        test_consume_ends_feature,
        test_build_wheel_layout,
        test_spin_wheel_levels_and_respins,
        test_spin_wheel_cap,
        test_wheel_expected_value,
        test_wheel_ev_matches_spins,
        test_zero_segment_value_pays_max_multiplier,
        test_bad_wheel_weights_fall_back,
        test_pick_rules,
        test_pick_errors,
        test_pick_grid_build,
        test_pick_single_cell_grid,
        test_pick_autoplay_uses_all_picks,
    ]

    print(f"\n{'='*60}")
    print(f"Feature Tests — {len(tests)} tests")
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
