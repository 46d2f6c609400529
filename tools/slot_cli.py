#!/usr/bin/env python3
"""
REELSMITH — Math CLI

Usage:
    python -m tools.slot_cli evaluate --grid '[["wild","high_1","low_1"], ...]'
    python -m tools.slot_cli evaluate --config my_game.json --seed round-42
    python -m tools.slot_cli simulate --config my_game.json --spins 500000 --save
    python -m tools.slot_cli paylines --reels 6 --rows 4 --count 30
    python -m tools.slot_cli dump-config --config my_game.json
    python -m tools.slot_cli scratch --preset CASUAL --rounds 5
    python -m tools.slot_cli wheel --config my_game.json --spins 10
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.game_schema import (
    default_game_config, load_game_config, load_scratch_config,
)
from config.settings import OUTPUT_DIR, SimConfig, configure_logging
from engine.errors import ReelsmithError
from engine.rng import SeededRNG
from engine.scratch import (
    PRIZE_PRESETS, ScratchEngine, calculate_rtp, validate_commercial_viability,
)
from engine.slots.evaluator import WinEvaluator, validate_grid
from engine.slots.features import build_wheel, spin_wheel, wheel_expected_value
from engine.slots.paylines import generate_paylines, resolve_paylines
from engine.slots.spin import resolve_spin
from tools.slot_montecarlo import SlotMonteCarlo

console = Console()


def _load(path):
    return load_game_config(path) if path else default_game_config()


def _grid_table(grid, highlight=()) -> Table:
    table = Table(show_header=True, header_style="bold")
    for r in range(len(grid)):
        table.add_column(f"R{r + 1}", justify="center")
    rows = len(grid[0]) if grid else 0
    for row in range(rows):
        cells = []
        for r in range(len(grid)):
            sym = grid[r][row]
            cells.append(f"[bold yellow]{sym}[/bold yellow]" if (r, row) in highlight else sym)
        table.add_row(*cells)
    return table


# ═══════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════

def cmd_evaluate(args):
    config = _load(args.config)
    bet = args.bet or config.bet.default_bet

    if args.grid:
        grid = json.loads(args.grid)
        validate_grid(grid, config)
        evaluation = WinEvaluator(config).evaluate(grid, bet)
        payload = evaluation.to_dict()
    else:
        outcome = resolve_spin(config, args.seed, bet)
        evaluation = outcome.evaluation
        payload = outcome.to_dict()

    if args.json:
        console.print_json(json.dumps(payload))
        return

    winning = {p for w in evaluation.wins for p in w.positions}
    console.print(_grid_table(evaluation.grid, winning))

    if evaluation.wins:
        table = Table(title="Wins")
        table.add_column("Kind", style="cyan")
        table.add_column("Line", justify="right")
        table.add_column("Symbol")
        table.add_column("Count", justify="right")
        table.add_column("Pay", justify="right")
        table.add_column("Amount", justify="right", style="green")
        for w in evaluation.wins:
            table.add_row(w.kind, str(w.line or "-"), w.symbol, str(w.count),
                          f"{w.multiplier:g}x", f"{w.amount:.2f}")
        console.print(table)

    features = ", ".join(evaluation.features_triggered) or "none"
    console.print(Panel(
        f"Bet: {bet:.2f}   Win: [bold green]{evaluation.total_win:.2f}[/bold green]   "
        f"Tier: {evaluation.win_tier}\nScatters: {evaluation.scatter_count}   "
        f"Bonus: {evaluation.bonus_count}   Features: {features}",
        title=config.name,
    ))


def cmd_simulate(args):
    config = _load(args.config)
    console.print(f"[cyan]Running {args.spins:,}-spin simulation of {config.name}...[/cyan]")
    result = SlotMonteCarlo().run(config, n_spins=args.spins, seed=args.seed,
                                  tolerance=args.tolerance, bet=args.bet)

    style = "green" if result.rtp_pass else "yellow" if result.rtp_pass is None else "red"
    console.print(Panel(result.summary(), border_style=style))

    table = Table(title="Theoretical RTP breakdown")
    table.add_column("Component", style="cyan")
    table.add_column("RTP", justify="right")
    for name, value in result.breakdown.items():
        table.add_row(name, f"{value * 100:.4f}%" if value is not None else "simulated only")
    console.print(table)

    if args.save:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        path = OUTPUT_DIR / f"simulation_{args.seed}.json"
        path.write_text(result.to_json(), encoding="utf-8")
        console.print(f"[green]✅ Report saved: {path}[/green]")


def cmd_paylines(args):
    if args.config:
        config = _load(args.config)
        lines = resolve_paylines(config)
        rows = config.layout.rows
    else:
        lines = generate_paylines(args.count, args.reels, args.rows)
        rows = args.rows

    table = Table(title=f"{len(lines)} paylines")
    table.add_column("#", justify="right")
    table.add_column("Rows")
    table.add_column("Shape")
    for i, pattern in enumerate(lines, 1):
        shape = "".join("‾-_"[min(2, r * 2 // max(rows - 1, 1))] if rows > 1 else "-" for r in pattern)
        table.add_row(str(i), str(pattern), shape)
    console.print(table)


def cmd_dump_config(args):
    config = _load(args.config)
    console.print_json(config.model_dump_json(indent=2))


def cmd_scratch(args):
    if args.config:
        config = load_scratch_config(args.config)
    else:
        engine = ScratchEngine()
        config = engine.generate_config(preset=args.preset, deck_size=args.deck)

    report = validate_commercial_viability(config)
    rtp = calculate_rtp(config.prizes, config.total_tickets if config.math_mode == "POOL" else None,
                        config.ticket_price)

    table = Table(title=f"Prize table ({config.math_mode}, {config.total_tickets:,} tickets)")
    table.add_column("Tier", style="cyan")
    table.add_column("Symbol")
    table.add_column("Payout", justify="right")
    table.add_column("Tickets", justify="right")
    table.add_column("Odds", justify="right")
    for p in config.prizes:
        odds = f"1 in {config.total_tickets / p.weight:,.0f}" if p.weight else "-"
        table.add_row(p.name or p.id, p.condition.symbol_id or "any", f"{p.payout:g}x",
                      f"{p.weight:,}", odds)
    console.print(table)

    lines = [f"RTP: {rtp * 100:.2f}%   Losers: {report.loser_rate * 100:.1f}%   "
             f"Money-back: {report.money_back_rate * 100:.1f}%"]
    lines += [f"[red]✗ {e}[/red]" for e in report.errors]
    lines += [f"[yellow]⚠ {w}[/yellow]" for w in report.warnings]
    console.print(Panel("\n".join(lines), title="Commercial viability",
                        border_style="green" if report.is_valid else "red"))

    engine = ScratchEngine(seed=args.seed)
    for _ in range(args.rounds):
        outcome = engine.resolve_round(config)
        cells = outcome.reveal_map
        grid = [cells[r * config.columns:(r + 1) * config.columns] for r in range(config.rows)]
        label = f"[green]{outcome.tier_id} {outcome.final_prize:g}x[/green]" if outcome.is_win else "no win"
        console.print(f"{outcome.round_id}: {label}")
        for row in grid:
            console.print("   " + "  ".join(f"{s:<14}" for s in row))


def cmd_wheel(args):
    config = _load(args.config)
    cfg = config.wheel
    bet = args.bet or config.bet.default_bet

    table = Table(title="Wheel segments")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Weight", justify="right")
    for i, seg in enumerate(build_wheel(cfg), 1):
        table.add_row(str(i), seg.kind, f"{seg.value:g}x" if seg.kind == "prize" else "-", f"{seg.weight:g}")
    console.print(table)
    console.print(f"Expected prize: [bold]{wheel_expected_value(cfg):.4f}x[/bold] bet")

    rng = SeededRNG.from_string(args.seed)
    for i in range(args.spins):
        result = spin_wheel(cfg, bet, rng)
        trail = " → ".join(s.label for s in result.landed)
        console.print(f"  {i + 1:>3}. {trail}  level {result.level}  prize {result.prize:.2f}")


# ═══════════════════════════════════════════════════════════════
# Entry Point
# ═══════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Slot and scratch-card math tools")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING...")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("evaluate", help="Evaluate one grid or one seeded spin")
    p.add_argument("--config", type=str)
    p.add_argument("--grid", type=str, help="JSON grid, grid[reel][row]")
    p.add_argument("--seed", type=str, default="preview")
    p.add_argument("--bet", type=float)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_evaluate)

    p = sub.add_parser("simulate", help="Monte Carlo RTP validation")
    p.add_argument("--config", type=str)
    p.add_argument("--spins", type=int, default=SimConfig.SIMULATION_SPINS)
    p.add_argument("--seed", type=int, default=SimConfig.DEFAULT_SEED)
    p.add_argument("--tolerance", type=float, default=SimConfig.RTP_TOLERANCE)
    p.add_argument("--bet", type=float)
    p.add_argument("--save", action="store_true", help="Write the JSON report to OUTPUT_DIR")
    p.set_defaults(func=cmd_simulate)

    p = sub.add_parser("paylines", help="Show generated or configured paylines")
    p.add_argument("--config", type=str)
    p.add_argument("--reels", type=int, default=5)
    p.add_argument("--rows", type=int, default=3)
    p.add_argument("--count", type=int, default=20)
    p.set_defaults(func=cmd_paylines)

    p = sub.add_parser("dump-config", help="Print the validated config as JSON")
    p.add_argument("--config", type=str)
    p.set_defaults(func=cmd_dump_config)

    p = sub.add_parser("scratch", help="Scratch-card prize table, viability and sample rounds")
    p.add_argument("--config", type=str)
    p.add_argument("--preset", choices=sorted(PRIZE_PRESETS), default="BALANCED")
    p.add_argument("--deck", type=int, default=1_000_000)
    p.add_argument("--rounds", type=int, default=3)
    p.add_argument("--seed", type=str, default="scratch-preview")
    p.set_defaults(func=cmd_scratch)

    p = sub.add_parser("wheel", help="Wheel layout, expected value and sample spins")
    p.add_argument("--config", type=str)
    p.add_argument("--bet", type=float)
    p.add_argument("--spins", type=int, default=5)
    p.add_argument("--seed", type=str, default="wheel-preview")
    p.set_defaults(func=cmd_wheel)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        args.func(args)
    except ReelsmithError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    except json.JSONDecodeError as e:
        console.print(f"[red]❌ Invalid JSON: {e}[/red]")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
