#!/usr/bin/env python3
"""
REELSMITH — Unit & Integration Test Suite

Run: python tests.py
     python tests.py -v                 # verbose
     python tests.py TestWinEvaluator   # run specific class

Test categories:
  TestGameConfig      — schema validation, defaults, malformed-config fallback
  TestSeededRNG       — determinism, weighted draws, provably-fair seeds
  TestPaytable        — exact / clamped lookups, unknown symbols
  TestWinEvaluator    — line runs, wilds, feature breaks, scatter, tiers
  TestMechanics       — ways, clusters, cascades
  TestSlotMachine     — bets, balance, queued grids, free spins, sessions
  TestCLI             — reelsmith command exit codes
"""

import json
import logging
import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import (
    BetConfig, FreeSpinsConfig, SlotGameConfig, WinThresholds,
    default_game_config, default_symbols, load_game_config,
)
from engine.errors import ConfigError, GridError, SpinError
from engine.rng import SeededRNG, derive_round_seed, server_seed_hash


NO_WIN = ["low_1", "low_2", "low_1", "low_2", "low_1"]


def one_line_config(**overrides) -> SlotGameConfig:
    """Default symbols on a 5x3 grid with a single middle-row payline."""
    data = {
        "name": "One Line",
        "symbols": [s.model_dump() for s in default_symbols()],
        "paylines": {"count": 1, "patterns": [[1, 1, 1, 1, 1]]},
    }
    data.update(overrides)
    return SlotGameConfig.model_validate(data)


def middle_grid(middle, top="medium_1", bottom="medium_2"):
    """grid[reel][row] with `middle` on row 1."""
    tops = top if isinstance(top, list) else [top] * 5
    return [[tops[r], middle[r], bottom] for r in range(5)]


# ============================================================
# Config
# ============================================================

class TestGameConfig(unittest.TestCase):

    def test_default_config_shape(self):
        """Default game is 5x3 with 20 standard lines and 9 symbols."""
        cfg = default_game_config()
        self.assertEqual(cfg.layout.reels, 5)
        self.assertEqual(cfg.layout.rows, 3)
        self.assertEqual(len(cfg.paylines.patterns), 20)
        self.assertEqual(len(cfg.symbols), 9)
        self.assertEqual(cfg.symbol("wild").payouts[5], 1000)

    def test_missing_symbols_get_defaults(self):
        """A config without symbols falls back to the default symbol set."""
        cfg = load_game_config({"name": "Bare"})
        self.assertEqual(cfg.name, "Bare")
        self.assertIn("high_1", cfg.symbol_ids)

    def test_malformed_config_falls_back(self):
        """Invalid JSON and unreadable paths return the defaults, not an exception."""
        with self.assertLogs("reelsmith.config", level="WARNING"):
            cfg = load_game_config("{not json")
        self.assertEqual(cfg.name, default_game_config().name)

        with self.assertLogs("reelsmith.config", level="WARNING"):
            cfg = load_game_config(str(PROJECT_ROOT / "does_not_exist.json"))
        self.assertEqual(len(cfg.symbols), 9)

    def test_strict_mode_raises(self):
        """strict=True surfaces validation problems as ConfigError."""
        dupes = {"symbols": [{"id": "a"}, {"id": "a"}]}
        with self.assertRaises(ConfigError):
            load_game_config(dupes, strict=True)
        with self.assertRaises(ValueError):
            load_game_config({"layout": {"reels": 2}}, strict=True)

    def test_feature_only_symbol_set_rejected(self):
        """At least one non-feature symbol is required."""
        with self.assertRaises(ConfigError):
            load_game_config({"symbols": [{"id": "scatter", "kind": "scatter"}]}, strict=True)

    def test_bet_limits_validated(self):
        with self.assertRaises(ValueError):
            BetConfig(min_bet=5, max_bet=1, default_bet=2)

    def test_free_spins_tiers_clamp(self):
        """Extra trigger symbols beyond the table use the last tier."""
        fs = FreeSpinsConfig()
        self.assertEqual(fs.spins_for(2), 0)
        self.assertEqual(fs.spins_for(3), 10)
        self.assertEqual(fs.spins_for(4), 15)
        self.assertEqual(fs.spins_for(5), 20)
        self.assertEqual(fs.spins_for(9), 20)

    def test_json_round_trip(self):
        cfg = one_line_config(name="Round Trip")
        again = load_game_config(cfg.model_dump_json(), strict=True)
        self.assertEqual(again.name, "Round Trip")
        self.assertEqual(again.paylines.patterns, [[1, 1, 1, 1, 1]])


# ============================================================
# RNG
# ============================================================

class TestSeededRNG(unittest.TestCase):

    def test_same_seed_same_sequence(self):
        a, b = SeededRNG(123), SeededRNG(123)
        self.assertEqual([a.random() for _ in range(20)], [b.random() for _ in range(20)])

    def test_string_seeds(self):
        self.assertEqual(SeededRNG.from_string("round-1").random(),
                         SeededRNG.from_string("round-1").random())
        self.assertNotEqual(SeededRNG.from_string("round-1").random(),
                            SeededRNG.from_string("round-2").random())

    def test_ranges(self):
        rng = SeededRNG(9)
        for _ in range(1000):
            x = rng.random()
            self.assertTrue(0.0 <= x < 1.0)
            self.assertIn(rng.randint(2, 4), (2, 3, 4))

    def test_weighted_choice(self):
        rng = SeededRNG(1)
        picks = [rng.weighted_choice(["a", "b"], [0, 1]) for _ in range(200)]
        self.assertEqual(set(picks), {"b"})
        with self.assertRaises(ValueError):
            rng.weighted_choice(["a"], [0])

    def test_shuffle_and_sample(self):
        rng = SeededRNG(5)
        items = list(range(20))
        self.assertEqual(sorted(rng.shuffle(items)), list(range(20)))
        sample = rng.sample_indices(10, 4)
        self.assertEqual(len(set(sample)), 4)
        with self.assertRaises(ValueError):
            rng.sample_indices(3, 4)

    def test_provably_fair_seed(self):
        s1 = derive_round_seed("server", "client", 1)
        self.assertEqual(s1, derive_round_seed("server", "client", 1))
        self.assertNotEqual(s1, derive_round_seed("server", "client", 2))
        self.assertEqual(len(server_seed_hash("server")), 64)

    def test_largest_output_stays_below_one(self):
        """A raw output of 2**64 - 1 still maps into [0, 1) and valid indices."""
        def unshift(y, k):
            x = y
            for _ in range(64 // k + 1):
                x = y ^ (x >> k)
            return x

        mask, mod = (1 << 64) - 1, 1 << 64
        z = unshift(mask, 31)
        z = unshift((z * pow(0x94D049BB133111EB, -1, mod)) & mask, 27)
        z = unshift((z * pow(0xBF58476D1CE4E5B9, -1, mod)) & mask, 30)
        preimage = (z - 0x9E3779B97F4A7C15) & mask

        def rng_at_max():
            rng = SeededRNG(0)
            rng.state = preimage
            return rng

        self.assertEqual(rng_at_max()._next(), mask)
        self.assertLess(rng_at_max().random(), 1.0)
        self.assertEqual(rng_at_max().randint(0, 4), 4)
        self.assertEqual(rng_at_max().choice(["a", "b"]), "b")
        self.assertEqual(sorted(rng_at_max().shuffle([1, 2, 3])), [1, 2, 3])


# ============================================================
# Paytable
# ============================================================

class TestPaytable(unittest.TestCase):

    def setUp(self):
        from engine.slots.paytable import Paytable
        self.pt = Paytable(default_game_config())

    def test_exact_line_pay(self):
        self.assertEqual(self.pt.line_pay("high_1", 3), 25)
        self.assertEqual(self.pt.line_pay("high_1", 5), 500)
        self.assertEqual(self.pt.line_pay("high_1", 2), 0)

    def test_clamped_lookups(self):
        """Counts above the table use the largest configured count."""
        self.assertEqual(self.pt.max_count_pay("low_1", 9), 50)
        self.assertEqual(self.pt.scatter_pay("scatter", 7), 50)
        self.assertEqual(self.pt.scatter_pay("scatter", 2), 0)

    def test_scatter_falls_back_to_game_table(self):
        """A trigger symbol without its own pays uses config.scatter_payouts."""
        self.assertEqual(self.pt.scatter_pay("bonus", 4), 10)

    def test_unknown_symbol_pays_lowest_tier(self):
        """A symbol missing from the paytable pays like low_1 and warns once."""
        with self.assertLogs("reelsmith.eval", level="WARNING") as logs:
            self.assertEqual(self.pt.line_pay("mystery", 5), 50)
            self.assertEqual(self.pt.line_pay("mystery", 3), 5)
        self.assertEqual(len(logs.records), 1)

    def test_unknown_symbol_grid_pays_every_line(self):
        from engine.slots.evaluator import WinEvaluator
        grid = [["x"] * 3 for _ in range(5)]
        with self.assertLogs("reelsmith.eval", level="WARNING"):
            evaluation = WinEvaluator(default_game_config()).evaluate(grid, 1.0)
        self.assertEqual(len(evaluation.wins), 20)
        self.assertAlmostEqual(evaluation.total_win, 50.0)

    def test_lowest_tier_without_low_1(self):
        from engine.slots.paytable import Paytable
        cfg = SlotGameConfig.model_validate({"symbols": [
            {"id": "A", "kind": "high", "payouts": {3: 20}},
            {"id": "B", "kind": "low", "payouts": {3: 2}},
        ]})
        with self.assertLogs("reelsmith.eval", level="WARNING"):
            self.assertEqual(Paytable(cfg).line_pay("Z", 3), 2)

    def test_kinds(self):
        self.assertTrue(self.pt.is_wild("wild"))
        self.assertTrue(self.pt.is_feature("scatter"))
        self.assertTrue(self.pt.is_feature("bonus"))
        self.assertFalse(self.pt.is_feature("high_1"))
        self.assertEqual(self.pt.wild_ids, ["wild"])


# ============================================================
# Win Evaluation
# ============================================================

class TestWinEvaluator(unittest.TestCase):

    def setUp(self):
        from engine.slots.evaluator import WinEvaluator
        self.config = one_line_config()
        self.ev = WinEvaluator(self.config)

    def test_five_of_a_kind(self):
        """Five high_1 on the line pay 500 × bet per line."""
        result = self.ev.evaluate(middle_grid(["high_1"] * 5), 1.0)
        self.assertEqual(len(result.wins), 1)
        win = result.wins[0]
        self.assertEqual((win.symbol, win.count, win.line), ("high_1", 5, 1))
        self.assertAlmostEqual(result.total_win, 500.0)
        self.assertEqual(win.positions, [(r, 1) for r in range(5)])

    def test_leading_wilds_take_first_symbol(self):
        self.assertEqual(self.ev.evaluate_line(["wild", "wild", "high_2", "high_2", "low_1"]),
                         ("high_2", 4))
        result = self.ev.evaluate(middle_grid(["wild", "wild", "high_2", "high_2", "low_1"]), 1.0)
        self.assertAlmostEqual(result.total_win, 75.0)

    def test_wild_prefix_pays_substituted_symbol(self):
        """Three wilds then low_1 pay as low_1 ×4, not as wild ×3."""
        self.assertEqual(self.ev.evaluate_line(["wild", "wild", "wild", "low_1", "low_2"]),
                         ("low_1", 4))

    def test_all_wild_run_pays_as_wild(self):
        self.assertEqual(self.ev.evaluate_line(["wild"] * 5), ("wild", 5))
        self.assertEqual(self.ev.evaluate_line(["wild", "wild", "wild", "scatter", "low_1"]),
                         ("wild", 3))
        result = self.ev.evaluate(middle_grid(["wild"] * 5), 2.0)
        self.assertAlmostEqual(result.total_win, 2000.0)

    def test_feature_symbols_break_runs(self):
        self.assertEqual(self.ev.evaluate_line(["high_1", "high_1", "scatter", "high_1", "high_1"]),
                         ("high_1", 2))
        self.assertEqual(self.ev.evaluate_line(["bonus", "high_1", "high_1", "high_1"])[0], None)
        result = self.ev.evaluate(middle_grid(["high_1", "high_1", "bonus", "high_1", "high_1"]), 1.0)
        self.assertEqual(result.wins, [])

    def test_short_runs_do_not_pay(self):
        self.assertEqual(self.ev.evaluate_line(["high_1", "high_1", "low_1", "high_1", "high_1"]),
                         ("high_1", 2))
        self.assertEqual(self.ev.evaluate(middle_grid(NO_WIN), 1.0).total_win, 0)

    def test_bet_split_across_lines(self):
        """Each line is paid on total bet / active lines."""
        from engine.slots.evaluator import WinEvaluator
        cfg = one_line_config(paylines={"count": 2, "patterns": [[1] * 5, [0] * 5]})
        grid = middle_grid(["high_1"] * 5, top=["low_1", "low_2", "medium_1", "medium_2", "high_2"])
        result = WinEvaluator(cfg).evaluate(grid, 2.0)
        self.assertEqual([w.line for w in result.wins], [1])
        self.assertAlmostEqual(result.total_win, 500.0)

    def test_line_outside_grid_is_skipped(self):
        self.ev.paylines = [[1, 1, 1, 1, 1], [5, 5, 5, 5, 5]]
        with self.assertLogs("reelsmith.eval", level="WARNING"):
            wins = self.ev.evaluate_paylines(middle_grid(["high_1"] * 5), 1.0)
        self.assertEqual(len(wins), 1)
        self.assertAlmostEqual(wins[0].amount, 250.0)

    def test_scatter_pays_anywhere(self):
        """Three scatters off the payline pay 2 × total bet and trigger free spins."""
        top = ["scatter", "medium_1", "scatter", "medium_1", "scatter"]
        result = self.ev.evaluate(middle_grid(NO_WIN, top=top), 1.0)
        self.assertEqual(result.scatter_count, 3)
        self.assertEqual(result.features_triggered, ["free_spins"])
        self.assertEqual(len(result.wins), 1)
        self.assertEqual(result.wins[0].kind, "scatter")
        self.assertAlmostEqual(result.total_win, 2.0)

    def test_two_scatters_pay_nothing(self):
        top = ["scatter", "medium_1", "scatter", "medium_1", "medium_1"]
        result = self.ev.evaluate(middle_grid(NO_WIN, top=top), 1.0)
        self.assertEqual(result.total_win, 0)
        self.assertEqual(result.features_triggered, [])

    def test_bonus_triggers_only_enabled_features(self):
        from engine.slots.evaluator import WinEvaluator
        top = ["bonus", "medium_1", "bonus", "medium_1", "bonus"]
        grid = middle_grid(NO_WIN, top=top)
        self.assertEqual(self.ev.evaluate(grid, 1.0).features_triggered, [])

        cfg = one_line_config(wheel={"enabled": True}, pick_and_click={"enabled": True})
        result = WinEvaluator(cfg).evaluate(grid, 1.0)
        self.assertEqual(result.bonus_count, 3)
        self.assertEqual(result.features_triggered, ["wheel", "pick_and_click"])

    def test_win_tiers(self):
        from engine.slots.evaluator import classify_win
        t = WinThresholds()
        self.assertEqual(classify_win(1.0, 0, t), "small")
        self.assertEqual(classify_win(1.0, 4.99, t), "small")
        self.assertEqual(classify_win(1.0, 5, t), "big")
        self.assertEqual(classify_win(2.0, 50, t), "mega")
        self.assertEqual(classify_win(1.0, 100, t), "super")

    def test_validate_grid(self):
        from engine.slots.evaluator import validate_grid
        validate_grid(middle_grid(NO_WIN), self.config)
        with self.assertRaises(GridError):
            validate_grid(middle_grid(NO_WIN)[:4], self.config)
        ragged = middle_grid(NO_WIN)
        ragged[2] = ragged[2][:2]
        with self.assertRaises(ValueError):
            validate_grid(ragged, self.config)

    def test_to_dict(self):
        d = self.ev.evaluate(middle_grid(["high_1"] * 5), 1.0).to_dict()
        self.assertEqual(d["total_win"], 500.0)
        self.assertEqual(d["win_tier"], "super")
        self.assertEqual(d["wins"][0]["line"], 1)


# ============================================================
# Ways / Cluster / Cascade
# ============================================================

def _mini_symbols(a_pays=None):
    return [
        {"id": "A", "kind": "high", "payouts": a_pays or {}},
        {"id": "B", "kind": "low"},
        {"id": "W", "kind": "wild"},
    ]


class TestMechanics(unittest.TestCase):

    def test_ways(self):
        """Ways multiply hits per reel; wilds count toward every symbol."""
        from engine.slots.evaluator import WinEvaluator
        cfg = SlotGameConfig.model_validate({
            "layout": {"reels": 3, "rows": 2}, "mechanism": "ways",
            "symbols": _mini_symbols({3: 10}), "free_spins": {"enabled": False},
        })
        grid = [["A", "B"], ["A", "W"], ["A", "A"]]
        result = WinEvaluator(cfg).evaluate(grid, 1.0)
        self.assertEqual(len(result.wins), 1)
        win = result.wins[0]
        self.assertEqual((win.symbol, win.count, win.ways), ("A", 3, 4))
        self.assertAlmostEqual(win.amount, 10 * 4 / 20)

    def test_clusters_share_wilds(self):
        from engine.slots.evaluator import WinEvaluator
        cfg = SlotGameConfig.model_validate({
            "layout": {"reels": 3, "rows": 3}, "mechanism": "cluster",
            "symbols": _mini_symbols(), "free_spins": {"enabled": False},
        })
        grid = [["A", "A", "B"], ["A", "W", "B"], ["A", "B", "B"]]
        result = WinEvaluator(cfg).evaluate(grid, 1.0)
        self.assertEqual(sorted(w.symbol for w in result.wins), ["A", "B"])
        for w in result.wins:
            self.assertEqual(w.count, 5)
            self.assertIn((1, 1), w.positions)
            self.assertAlmostEqual(w.amount, 5 * 0.05)

    def test_cluster_paytable(self):
        from engine.slots.evaluator import WinEvaluator
        cfg = SlotGameConfig.model_validate({
            "layout": {"reels": 3, "rows": 3}, "mechanism": "cluster",
            "symbols": _mini_symbols({5: 3}), "free_spins": {"enabled": False},
        })
        grid = [["A", "A", "B"], ["A", "A", "W"], ["A", "B", "W"]]
        wins = WinEvaluator(cfg).evaluate(grid, 2.0).wins
        a = [w for w in wins if w.symbol == "A"][0]
        self.assertEqual(a.count, 7)
        self.assertAlmostEqual(a.amount, 6.0)

    def test_cascade_drop_and_refill(self):
        from engine.slots.mechanics import cascade
        grid = [["x", "y", "z"], ["p", "q", "r"], ["a", "b", "c"]]
        out = cascade(grid, {(0, 0), (0, 2), (2, 1)}, lambda reel: "N")
        self.assertEqual(out[0], ["N", "N", "y"])
        self.assertEqual(out[1], ["p", "q", "r"])
        self.assertEqual(out[2], ["N", "a", "c"])

    def test_cascades_in_spin(self):
        """A cleared winning line refills and stops when nothing pays."""
        from engine.slots.spin import SlotMachine
        cfg = SlotGameConfig.model_validate({
            "layout": {"reels": 3, "rows": 1}, "cascades": True,
            "symbols": [{"id": "A", "weight": 1e-9, "payouts": {3: 5}}, {"id": "B", "weight": 1e9}],
            "paylines": {"count": 1, "patterns": [[0, 0, 0]]},
            "free_spins": {"enabled": False},
        })
        machine = SlotMachine(cfg, SeededRNG(3), balance=100)
        machine.queue_grid([["A"], ["A"], ["A"]])
        outcome = machine.spin(1.0)
        self.assertAlmostEqual(outcome.line_win, 5.0)
        self.assertEqual(outcome.cascades, 1)
        self.assertEqual(outcome.final_grid, [["B"], ["B"], ["B"]])
        self.assertAlmostEqual(machine.balance, 104.0)


# ============================================================
# Slot Session
# ============================================================

class TestSlotMachine(unittest.TestCase):

    def setUp(self):
        from engine.slots.spin import SlotMachine
        self.config = one_line_config(free_spins={"multiplier": 2.0})
        self.machine = SlotMachine(self.config, SeededRNG(11), balance=1000.0)

    def test_can_spin_reasons(self):
        from engine.slots.spin import SlotMachine
        self.assertEqual(self.machine.can_spin(0), (False, "Invalid bet amount"))
        self.assertEqual(self.machine.can_spin(0.1), (False, "Bet outside table limits"))
        self.assertEqual(self.machine.can_spin(500), (False, "Bet outside table limits"))
        poor = SlotMachine(self.config, SeededRNG(1), balance=1.0)
        self.assertEqual(poor.can_spin(5.0), (False, "Insufficient balance"))
        with self.assertRaises(SpinError) as ctx:
            poor.spin(5.0)
        self.assertEqual(ctx.exception.reason, "Insufficient balance")

    def test_win_credited(self):
        self.machine.queue_grid(middle_grid(["high_1"] * 5))
        outcome = self.machine.spin(1.0)
        self.assertAlmostEqual(outcome.total_win, 500.0)
        self.assertAlmostEqual(self.machine.balance, 1499.0)
        self.assertEqual(outcome.win_tier, "super")

    def test_queue_rejects_bad_grid(self):
        with self.assertRaises(GridError):
            self.machine.queue_grid([["high_1"]])

    def test_free_spins_flow(self):
        """Scatter trigger awards spins; free spins cost nothing and pay × multiplier."""
        top = ["scatter", "medium_1", "scatter", "medium_1", "scatter"]
        self.machine.queue_grid(middle_grid(NO_WIN, top=top))
        first = self.machine.spin(1.0)
        self.assertEqual(first.free_spins_awarded, 10)
        self.assertTrue(self.machine.free_spins.active)
        self.assertAlmostEqual(self.machine.balance, 1000 - 1 + 2)

        self.machine.queue_grid(middle_grid(["high_1"] * 5))
        free = self.machine.spin()
        self.assertTrue(free.free_spin)
        self.assertEqual(free.bet, 1.0)
        self.assertAlmostEqual(free.total_win, 1000.0)
        self.assertEqual(free.free_spins_remaining, 9)
        self.assertAlmostEqual(self.machine.balance, 2001.0)

        # free spins are always allowed, whatever the balance
        self.machine.balance = 0
        self.assertEqual(self.machine.can_spin(1.0), (True, ""))

    def test_free_spins_run_out(self):
        top = ["scatter", "medium_1", "scatter", "medium_1", "scatter"]
        self.machine.queue_grid(middle_grid(NO_WIN, top=top))
        self.machine.spin(1.0)
        balance = self.machine.balance
        for _ in range(10):
            self.machine.queue_grid(middle_grid(NO_WIN))
            self.machine.spin()
        self.assertFalse(self.machine.free_spins.active)
        self.assertEqual(self.machine.balance, balance)
        self.machine.queue_grid(middle_grid(NO_WIN))
        self.assertFalse(self.machine.spin(1.0).free_spin)

    def test_no_retrigger(self):
        from engine.slots.spin import SlotMachine
        cfg = one_line_config(free_spins={"retrigger": False})
        machine = SlotMachine(cfg, SeededRNG(2), balance=100)
        top = ["scatter", "medium_1", "scatter", "medium_1", "scatter"]
        machine.queue_grid(middle_grid(NO_WIN, top=top))
        machine.spin(1.0)
        machine.queue_grid(middle_grid(NO_WIN, top=top))
        again = machine.spin()
        self.assertEqual(again.free_spins_awarded, 0)
        self.assertEqual(machine.free_spins.remaining, 9)

    def test_random_free_spins_exclude_scatter_without_retrigger(self):
        from engine.slots.spin import SlotMachine
        cfg = one_line_config(free_spins={"retrigger": False})
        machine = SlotMachine(cfg, SeededRNG(4), balance=100)
        machine.free_spins.active = True
        machine.free_spins.remaining = 50
        for _ in range(50):
            grid = machine.spin().evaluation.grid
            self.assertNotIn("scatter", [s for reel in grid for s in reel])

    def test_bonus_rounds_credited(self):
        """Wheel and pick-and-click resolve inside spin(); free spins don't multiply them."""
        from engine.slots.spin import SlotMachine
        cfg = one_line_config(
            free_spins={"multiplier": 3.0},
            wheel={"enabled": True, "segments": 4, "segment_values": [2, 2, 2, 2]},
            pick_and_click={"enabled": True, "grid_size": [2, 2], "picks": 2,
                            "prize_values": [3, 3, 3, 3]},
        )
        machine = SlotMachine(cfg, SeededRNG(12), balance=100.0)
        bonus_top = ["bonus", "bonus", "bonus", "medium_1", "medium_1"]

        machine.queue_grid(middle_grid(NO_WIN, top=bonus_top))
        outcome = machine.spin(1.0)
        self.assertIn("wheel", outcome.evaluation.features_triggered)
        self.assertIn("pick_and_click", outcome.evaluation.features_triggered)
        self.assertAlmostEqual(outcome.wheel_win, 2.0)
        self.assertAlmostEqual(outcome.pick_win, 6.0)
        self.assertAlmostEqual(outcome.total_win, 8.0)
        self.assertAlmostEqual(machine.balance, 100.0 - 1.0 + outcome.total_win)

        scatter_top = ["scatter", "medium_1", "scatter", "medium_1", "scatter"]
        machine.queue_grid(middle_grid(NO_WIN, top=scatter_top))
        machine.spin(1.0)
        self.assertTrue(machine.free_spins.active)
        balance = machine.balance

        machine.queue_grid(middle_grid(NO_WIN, top=bonus_top))
        free = machine.spin()
        self.assertTrue(free.free_spin)
        self.assertAlmostEqual(free.wheel_win, 2.0)
        self.assertAlmostEqual(free.pick_win, 6.0)
        self.assertAlmostEqual(machine.balance, balance + free.total_win)

    def test_statistics_and_reset(self):
        from engine.slots.spin import SlotMachine
        machine = SlotMachine(one_line_config(free_spins={"enabled": False}), SeededRNG(6), balance=1000.0)
        for _ in range(5):
            machine.spin(1.0)
        stats = machine.statistics()
        self.assertEqual(stats["spins"], 5)
        self.assertAlmostEqual(stats["total_wagered"], 5.0)
        machine.reset()
        self.assertEqual(machine.balance, 1000.0)
        self.assertEqual(machine.statistics()["spins"], 0)

    def test_play_session_stops_on_balance(self):
        from engine.slots.spin import SlotMachine
        cfg = one_line_config(free_spins={"enabled": False})
        machine = SlotMachine(cfg, SeededRNG(8), balance=0.5)
        for _ in range(3):
            machine.queue_grid(middle_grid(NO_WIN))
        outcomes = machine.play_session(bet=0.2, max_spins=10)
        self.assertEqual(len(outcomes), 2)
        self.assertAlmostEqual(machine.balance, 0.1)

    def test_resolve_spin_reproducible(self):
        from engine.slots.spin import resolve_spin
        cfg = default_game_config()
        a = resolve_spin(cfg, "seed-a", 1.0)
        b = resolve_spin(cfg, "seed-a", 1.0)
        c = resolve_spin(cfg, "seed-b", 1.0)
        self.assertEqual(a.evaluation.grid, b.evaluation.grid)
        self.assertEqual(a.total_win, b.total_win)
        self.assertNotEqual(a.evaluation.grid, c.evaluation.grid)


# ============================================================
# CLI
# ============================================================

class TestCLI(unittest.TestCase):

    def setUp(self):
        from tools.slot_cli import main
        self.main = main

    def test_commands_succeed(self):
        self.assertEqual(self.main(["paylines", "--reels", "6", "--rows", "4", "--count", "10"]), 0)
        self.assertEqual(self.main(["evaluate", "--seed", "cli-test", "--json"]), 0)
        self.assertEqual(self.main(["wheel", "--spins", "2"]), 0)
        self.assertEqual(self.main(["scratch", "--preset", "CASUAL", "--deck", "100000",
                                    "--rounds", "2"]), 0)
        self.assertEqual(self.main(["simulate", "--spins", "300"]), 0)

    def test_evaluate_grid(self):
        grid = json.dumps(middle_grid(["high_1"] * 5))
        self.assertEqual(self.main(["evaluate", "--grid", grid]), 0)

    def test_error_exit_codes(self):
        self.assertEqual(self.main(["evaluate", "--grid", "not json"]), 2)
        self.assertEqual(self.main(["evaluate", "--grid", '[["high_1"]]']), 1)


if __name__ == "__main__":
    logging.disable(logging.INFO)
    unittest.main(verbosity=2)
