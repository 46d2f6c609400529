"""Slot math: paylines, paytable, win evaluation, features and the spin loop."""

from engine.slots.evaluator import LineWin, SpinEvaluation, WinEvaluator, classify_win, validate_grid
from engine.slots.spin import SlotMachine, SpinOutcome, resolve_spin

__all__ = [
    "LineWin", "SpinEvaluation", "WinEvaluator", "classify_win", "validate_grid",
    "SlotMachine", "SpinOutcome", "resolve_spin",
]
