"""
REELSMITH — Slot Session

SlotMachine is the spin state machine behind the editor preview: it holds
the balance, debits bets, draws (or replays) grids, evaluates them, runs
cascades and bonus features, and credits wins.

Usage:
    from engine.slots.spin import SlotMachine
    machine = SlotMachine(config, rng=SeededRNG(7))
    outcome = machine.spin(1.0)
    print(outcome.total_win, machine.balance)
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from config.game_schema import SlotGameConfig
from engine.errors import SpinError
from engine.rng import SeededRNG
from engine.slots.evaluator import SpinEvaluation, WinEvaluator, classify_win, validate_grid
from engine.slots.features import (
    FreeSpinsState, PickAndClickRound, WheelResult, award_free_spins, spin_wheel,
)
from engine.slots.mechanics import run_cascades
from engine.slots.reels import ReelSet

logger = logging.getLogger("reelsmith.eval")


@dataclass
class SpinOutcome:
    """Everything one spin produced, already credited to the balance."""
    evaluation: SpinEvaluation
    bet: float
    free_spin: bool = False
    line_win: float = 0.0          # lines/ways/clusters + scatter, after multipliers
    cascade_win: float = 0.0
    cascades: int = 0
    wheel: Optional[WheelResult] = None
    pick_win: float = 0.0
    free_spins_awarded: int = 0
    free_spins_remaining: int = 0
    balance: float = 0.0
    win_tier: str = "small"
    final_grid: list[list[str]] = field(default_factory=list)

    @property
    def wheel_win(self) -> float:
        return self.wheel.prize if self.wheel else 0.0

    @property
    def total_win(self) -> float:
        return self.line_win + self.cascade_win + self.wheel_win + self.pick_win

    def to_dict(self) -> dict:
        return {
            "bet": self.bet,
            "free_spin": self.free_spin,
            "total_win": round(self.total_win, 6),
            "line_win": round(self.line_win, 6),
            "cascade_win": round(self.cascade_win, 6),
            "cascades": self.cascades,
            "wheel": self.wheel.to_dict() if self.wheel else None,
            "pick_win": round(self.pick_win, 6),
            "free_spins_awarded": self.free_spins_awarded,
            "free_spins_remaining": self.free_spins_remaining,
            "balance": round(self.balance, 2),
            "win_tier": self.win_tier,
            "evaluation": self.evaluation.to_dict(),
            "final_grid": self.final_grid,
        }


class SlotMachine:
    def __init__(self, config: SlotGameConfig, rng: SeededRNG = None,
                 balance: Optional[float] = None):
        self.config = config
        self.rng = rng or SeededRNG()
        self.evaluator = WinEvaluator(config)
        self.reels = ReelSet.from_config(config)
        self.starting_balance = config.bet.starting_balance if balance is None else balance
        self.balance = self.starting_balance
        self.free_spins = FreeSpinsState()
        self._queued: deque = deque()
        self._free_spin_bet = config.bet.default_bet
        self._stats = {"spins": 0, "free_spins": 0, "wagered": 0.0, "won": 0.0,
                       "hits": 0, "features": {}, "max_win": 0.0}

    # ── Checks ──

    def can_spin(self, bet: float) -> tuple[bool, str]:
        if self.free_spins.active:
            return True, ""
        if bet is None or bet <= 0:
            return False, "Invalid bet amount"
        limits = self.config.bet
        if bet < limits.min_bet or bet > limits.max_bet:
            return False, "Bet outside table limits"
        if bet > self.balance:
            return False, "Insufficient balance"
        return True, ""

    def queue_grid(self, grid) -> None:
        """Force the next spin's grid (tests, demos, editor previews)."""
        validate_grid(grid, self.config)
        self._queued.append([list(reel) for reel in grid])

    # ── Spin ──

    def _next_grid(self, free_spin: bool) -> list[list[str]]:
        if self._queued:
            return self._queued.popleft()
        fs = self.config.free_spins
        exclude = (fs.trigger_symbol,) if free_spin and not fs.retrigger else ()
        return self.reels.spin_grid(self.rng, exclude=exclude)

    def spin(self, bet: Optional[float] = None) -> SpinOutcome:
        free_spin = self.free_spins.active
        if free_spin:
            bet = self._free_spin_bet
        elif bet is None:
            bet = self.config.bet.default_bet

        ok, reason = self.can_spin(bet)
        if not ok:
            raise SpinError(reason)

        if not free_spin:
            self.balance -= bet
            self._free_spin_bet = bet
            self._stats["wagered"] += bet

        cfg = self.config
        grid = self._next_grid(free_spin)

        if cfg.cascades:
            evaluations, final_grid = run_cascades(
                self.evaluator, grid, bet, lambda _reel: self.reels.draw(self.rng),
                cfg.max_cascades,
            )
        else:
            evaluations, final_grid = [self.evaluator.evaluate(grid, bet)], grid
        evaluation = evaluations[0]

        multiplier = cfg.free_spins.multiplier if free_spin else 1.0
        outcome = SpinOutcome(
            evaluation=evaluation, bet=bet, free_spin=free_spin,
            line_win=evaluation.total_win * multiplier,
            cascade_win=sum(e.total_win for e in evaluations[1:]) * multiplier,
            cascades=len(evaluations) - 1,
            final_grid=[list(r) for r in final_grid],
        )

        # Bonus features
        triggered = evaluation.features_triggered
        if "free_spins" in triggered:
            outcome.free_spins_awarded = award_free_spins(cfg, evaluation.scatter_count, self.free_spins)
        if "wheel" in triggered:
            outcome.wheel = spin_wheel(cfg.wheel, bet, self.rng)
        if "pick_and_click" in triggered:
            outcome.pick_win = PickAndClickRound.build(cfg, bet, self.rng).autoplay(self.rng)
        if free_spin:
            self.free_spins.total_win += outcome.total_win
            self.free_spins.consume()

        outcome.free_spins_remaining = self.free_spins.remaining
        outcome.win_tier = classify_win(bet, outcome.total_win, cfg.win_thresholds)

        self.balance += outcome.total_win
        outcome.balance = self.balance
        self._record(outcome, triggered)
        return outcome

    # ── Session ──

    def _record(self, outcome: SpinOutcome, triggered: list[str]) -> None:
        s = self._stats
        s["spins"] += 1
        if outcome.free_spin:
            s["free_spins"] += 1
        s["won"] += outcome.total_win
        if outcome.total_win > 0:
            s["hits"] += 1
        s["max_win"] = max(s["max_win"], outcome.total_win)
        for name in triggered:
            s["features"][name] = s["features"].get(name, 0) + 1
        if outcome.cascades:
            s["features"]["cascade"] = s["features"].get("cascade", 0) + 1

    def statistics(self) -> dict:
        s = self._stats
        return {
            "spins": s["spins"],
            "free_spins": s["free_spins"],
            "total_wagered": round(s["wagered"], 2),
            "total_won": round(s["won"], 2),
            "rtp": round(s["won"] / s["wagered"], 6) if s["wagered"] else 0.0,
            "hit_rate": round(s["hits"] / s["spins"], 6) if s["spins"] else 0.0,
            "max_win": round(s["max_win"], 2),
            "features": dict(s["features"]),
            "balance": round(self.balance, 2),
        }

    def reset(self, balance: Optional[float] = None) -> None:
        self.balance = self.starting_balance if balance is None else balance
        self.free_spins.reset()
        self._queued.clear()
        self._free_spin_bet = self.config.bet.default_bet
        self._stats = {"spins": 0, "free_spins": 0, "wagered": 0.0, "won": 0.0,
                       "hits": 0, "features": {}, "max_win": 0.0}

    def play_session(self, bet: float, max_spins: int) -> list[SpinOutcome]:
        """Spin until `max_spins` paid spins are played or the balance runs out;
        free spins in progress are always finished."""
        outcomes = []
        paid = 0
        while paid < max_spins or self.free_spins.active:
            if not self.free_spins.active:
                ok, reason = self.can_spin(bet)
                if not ok:
                    logger.info(f"Session stopped after {paid} paid spins: {reason}")
                    break
                paid += 1
            outcomes.append(self.spin(bet))
        return outcomes


def resolve_spin(config: SlotGameConfig, seed: str, bet: Optional[float] = None) -> SpinOutcome:
    """One reproducible spin from a string seed, on a fresh funded machine."""
    bet = config.bet.default_bet if bet is None else bet
    machine = SlotMachine(config, rng=SeededRNG.from_string(seed), balance=max(bet, config.bet.starting_balance))
    return machine.spin(bet)
