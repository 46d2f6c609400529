"""
REELSMITH — Game Configuration Schema

Universal config schema that the slot evaluator, the bonus features and the
scratch-card math all read from. The editor hands us a JSON blob; everything
downstream works off the validated models below.

Usage:
    from config.game_schema import load_game_config, default_game_config
    config = load_game_config("my_game.json")          # falls back to defaults
    config = load_game_config(raw_dict, strict=True)    # raises ConfigError
    json_str = config.model_dump_json(indent=2)
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from engine.errors import ConfigError

logger = logging.getLogger("reelsmith.config")


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class SymbolKind(str, Enum):
    WILD     = "wild"
    SCATTER  = "scatter"
    BONUS    = "bonus"
    HOLDSPIN = "holdspin"
    HIGH     = "high"
    MEDIUM   = "medium"
    LOW      = "low"


# Symbols that never pay on a line and break a line run
FEATURE_KINDS = frozenset({SymbolKind.SCATTER, SymbolKind.BONUS, SymbolKind.HOLDSPIN})


class PayMechanism(str, Enum):
    BETLINES = "betlines"
    WAYS     = "ways"
    CLUSTER  = "cluster"


# ═══════════════════════════════════════════════════════════════
# Slot Sub-Models
# ═══════════════════════════════════════════════════════════════

class SymbolDef(BaseModel):
    """One reel symbol. `payouts` maps match count → multiplier of the line bet."""
    id: str
    name: str = ""
    kind: SymbolKind = SymbolKind.LOW
    weight: float = Field(1.0, gt=0)
    payouts: dict[int, float] = Field(default_factory=dict)

    @property
    def is_wild(self) -> bool:
        return self.kind == SymbolKind.WILD

    @property
    def is_feature(self) -> bool:
        return self.kind in FEATURE_KINDS

    @field_validator("payouts")
    @classmethod
    def _non_negative_pays(cls, v):
        for count, mult in v.items():
            if count < 1 or mult < 0:
                raise ValueError(f"invalid payout entry {count}: {mult}")
        return v


class LayoutConfig(BaseModel):
    reels: int = Field(5, ge=3, le=8)
    rows: int = Field(3, ge=1, le=8)


class PaylineConfig(BaseModel):
    """Active line budget + 0-based row index per reel for each line."""
    count: int = Field(20, ge=1, le=100)
    patterns: list[list[int]] = Field(default_factory=list)


class FreeSpinsConfig(BaseModel):
    enabled: bool = True
    trigger_symbol: str = "scatter"
    min_trigger_count: int = Field(3, ge=1)
    spins_awarded: list[int] = Field(default_factory=lambda: [10, 15, 20])
    multiplier: float = Field(1.0, gt=0)
    retrigger: bool = True

    def spins_for(self, count: int) -> int:
        """Spins for `count` trigger symbols; extra symbols clamp to the last tier."""
        if count < self.min_trigger_count or not self.spins_awarded:
            return 0
        idx = min(count - self.min_trigger_count, len(self.spins_awarded) - 1)
        return self.spins_awarded[idx]


class WheelConfig(BaseModel):
    enabled: bool = False
    trigger_symbol: str = "bonus"
    trigger_count: int = Field(3, ge=1)
    segments: int = Field(8, ge=2, le=32)
    segment_values: list[float] = Field(default_factory=list)   # × total bet
    segment_weights: list[float] = Field(default_factory=list)  # uniform when empty
    max_multiplier: float = Field(50.0, ge=0)
    level_up: bool = False
    respin: bool = False
    max_extra_spins: int = Field(10, ge=0)

    @field_validator("segment_values", "segment_weights")
    @classmethod
    def _non_negative(cls, v, info):
        if any(x < 0 for x in v):
            raise ValueError(f"{info.field_name} must not be negative")
        return v

    @model_validator(mode="after")
    def _some_weight(self):
        # Slices past the end of segment_weights keep weight 1
        given = self.segment_weights[:self.segments]
        if sum(given) + (self.segments - len(given)) <= 0:
            raise ValueError("wheel segment weights must sum to > 0")
        return self


class PickAndClickConfig(BaseModel):
    enabled: bool = False
    trigger_symbol: str = "bonus"
    trigger_count: int = Field(3, ge=1)
    grid_size: tuple[int, int] = (3, 3)                         # rows, cols
    picks: int = Field(3, ge=1)
    max_prize: float = Field(100.0, ge=0)
    prize_values: list[float] = Field(default_factory=list)     # × total bet
    extra_picks: bool = False
    multipliers: bool = False

    @field_validator("grid_size")
    @classmethod
    def _positive_grid(cls, v):
        if v[0] < 1 or v[1] < 1:
            raise ValueError("pick-and-click grid must be at least 1x1")
        return v


class BetConfig(BaseModel):
    min_bet: float = 0.20
    max_bet: float = 100.0
    default_bet: float = 1.0
    bet_levels: list[float] = Field(
        default_factory=lambda: [0.20, 0.40, 0.60, 0.80, 1.00, 2.00, 5.00, 10.00, 20.00, 50.00, 100.00]
    )
    starting_balance: float = 1000.0

    @model_validator(mode="after")
    def _default_within_limits(self):
        if self.min_bet > self.max_bet:
            raise ValueError("min_bet exceeds max_bet")
        if not (self.min_bet <= self.default_bet <= self.max_bet):
            raise ValueError(f"default_bet {self.default_bet} outside [{self.min_bet}, {self.max_bet}]")
        return self


class WinThresholds(BaseModel):
    """Win tier thresholds, as multiples of the total bet."""
    small_win: float = 1
    big_win: float = 5
    mega_win: float = 25
    super_win: float = 100


# ═══════════════════════════════════════════════════════════════
# Slot Game Config
# ═══════════════════════════════════════════════════════════════

class SlotGameConfig(BaseModel):
    name: str = "Default Slot"
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    symbols: list[SymbolDef] = Field(default_factory=list)
    paylines: PaylineConfig = Field(default_factory=PaylineConfig)
    mechanism: PayMechanism = PayMechanism.BETLINES
    min_match: int = Field(3, ge=2)

    # Scatter pays (× total bet) used when the scatter symbol defines none itself
    scatter_payouts: dict[int, float] = Field(default_factory=lambda: {3: 2, 4: 10, 5: 50})

    free_spins: FreeSpinsConfig = Field(default_factory=FreeSpinsConfig)
    wheel: WheelConfig = Field(default_factory=WheelConfig)
    pick_and_click: PickAndClickConfig = Field(default_factory=PickAndClickConfig)
    bet: BetConfig = Field(default_factory=BetConfig)
    win_thresholds: WinThresholds = Field(default_factory=WinThresholds)

    # Optional physical strips (one per reel); weighted cells are used when empty
    reel_strips: list[list[str]] = Field(default_factory=list)

    # Ways / cluster / cascade tuning
    ways_bet_divisor: float = Field(20.0, gt=0)
    cluster_min_size: int = Field(5, ge=2)
    cluster_pay_factor: float = Field(0.05, ge=0)
    cascades: bool = False
    max_cascades: int = Field(10, ge=0)

    @model_validator(mode="after")
    def _check_symbols(self):
        ids = [s.id for s in self.symbols]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"duplicate symbol ids: {dupes}")
        if not any(not s.is_feature for s in self.symbols):
            raise ValueError("at least one paying (non-feature) symbol is required")
        if self.reel_strips:
            if len(self.reel_strips) != self.layout.reels:
                raise ValueError(
                    f"reel_strips has {len(self.reel_strips)} reels, layout expects {self.layout.reels}")
            known = set(ids)
            for i, strip in enumerate(self.reel_strips):
                if not strip:
                    raise ValueError(f"reel strip {i} is empty")
                unknown = sorted(set(strip) - known)
                if unknown:
                    raise ValueError(f"reel strip {i} has unknown symbols: {unknown}")
        if self.free_spins.enabled and self.free_spins.trigger_symbol not in ids:
            logger.warning(f"Free spins trigger symbol '{self.free_spins.trigger_symbol}' "
                           f"not in symbol set; feature can never trigger")
        return self

    @model_validator(mode="after")
    def _check_paylines(self):
        reels, rows = self.layout.reels, self.layout.rows
        for i, pattern in enumerate(self.paylines.patterns):
            if len(pattern) != reels or any(r < 0 or r >= rows for r in pattern):
                logger.warning(f"Payline {i + 1} {pattern} does not fit a {reels}x{rows} grid; "
                               f"patterns will be regenerated")
                break
        return self

    # ── Lookups ──

    def symbol(self, symbol_id: str) -> Optional[SymbolDef]:
        for s in self.symbols:
            if s.id == symbol_id:
                return s
        return None

    @property
    def symbol_ids(self) -> list[str]:
        return [s.id for s in self.symbols]

    @property
    def paying_symbols(self) -> list[SymbolDef]:
        return [s for s in self.symbols if not s.is_feature]


# ═══════════════════════════════════════════════════════════════
# Scratch Card Models
# ═══════════════════════════════════════════════════════════════

class ScratchCondition(BaseModel):
    type: Literal["match_n", "find_target"] = "match_n"
    count: int = Field(3, ge=1)
    symbol_id: Optional[str] = None


class ScratchPrizeTier(BaseModel):
    """Prize tier. `payout` is a multiple of the ticket price.

    POOL mode reads `weight` (tickets in the deck); UNLIMITED reads `probability`.
    """
    id: str
    name: str = ""
    condition: ScratchCondition = Field(default_factory=ScratchCondition)
    payout: float = Field(0.0, ge=0)
    weight: int = Field(0, ge=0)
    probability: float = Field(0.0, ge=0, le=1)

    @property
    def is_win(self) -> bool:
        return self.payout > 0


class ScratchConfig(BaseModel):
    math_mode: Literal["POOL", "UNLIMITED"] = "POOL"
    win_logic: Literal["SINGLE_WIN", "MULTI_WIN"] = "SINGLE_WIN"
    total_tickets: int = Field(1_000_000, gt=0)
    ticket_price: float = Field(1.0, gt=0)
    rows: int = Field(3, ge=1, le=8)
    columns: int = Field(3, ge=1, le=8)
    match_count: int = Field(3, ge=2)
    win_symbols: list[str] = Field(default_factory=lambda: [
        "sym_diamond", "sym_gold", "sym_silver", "sym_bronze", "sym_cherry"])
    lose_symbols: list[str] = Field(default_factory=lambda: [
        "sym_lemon", "sym_plum", "sym_bell"])
    prizes: list[ScratchPrizeTier] = Field(default_factory=list)

    @property
    def grid_size(self) -> int:
        return self.rows * self.columns


# ═══════════════════════════════════════════════════════════════
# Defaults & Loading
# ═══════════════════════════════════════════════════════════════

def _pays(three: float, four: float, five: float) -> dict[int, float]:
    return {3: three, 4: four, 5: five}


def default_symbols() -> list[SymbolDef]:
    """Standard 9-symbol set: wild, scatter, bonus + 6 paying symbols."""
    return [
        SymbolDef(id="wild", name="Wild", kind=SymbolKind.WILD, weight=2, payouts=_pays(50, 200, 1000)),
        SymbolDef(id="scatter", name="Scatter", kind=SymbolKind.SCATTER, weight=1, payouts=_pays(2, 10, 50)),
        SymbolDef(id="bonus", name="Bonus", kind=SymbolKind.BONUS, weight=1),
        SymbolDef(id="high_1", name="Diamond", kind=SymbolKind.HIGH, weight=3, payouts=_pays(25, 100, 500)),
        SymbolDef(id="high_2", name="Gold Bar", kind=SymbolKind.HIGH, weight=4, payouts=_pays(20, 75, 300)),
        SymbolDef(id="medium_1", name="Crown", kind=SymbolKind.MEDIUM, weight=6, payouts=_pays(15, 50, 150)),
        SymbolDef(id="medium_2", name="Ring", kind=SymbolKind.MEDIUM, weight=8, payouts=_pays(10, 30, 100)),
        SymbolDef(id="low_1", name="Ace", kind=SymbolKind.LOW, weight=12, payouts=_pays(5, 15, 50)),
        SymbolDef(id="low_2", name="King", kind=SymbolKind.LOW, weight=15, payouts=_pays(5, 10, 25)),
    ]


def default_game_config() -> SlotGameConfig:
    """Standard 5x3, 20-line game."""
    from engine.slots.paylines import STANDARD_LINES_5X3
    return SlotGameConfig(
        symbols=default_symbols(),
        paylines=PaylineConfig(count=20, patterns=[list(p) for p in STANDARD_LINES_5X3]),
    )


def load_game_config(source: Union[dict, str, Path], strict: bool = False) -> SlotGameConfig:
    """Load a slot config from a dict, a JSON string or a JSON file path.

    Non-strict mode logs the problem and returns `default_game_config()`.
    """
    try:
        if isinstance(source, dict):
            data = source
        elif isinstance(source, str) and source.lstrip().startswith("{"):
            data = json.loads(source)
        else:
            data = json.loads(Path(source).read_text(encoding="utf-8"))
        if not data.get("symbols"):
            data = {**data, "symbols": [s.model_dump() for s in default_symbols()]}
        return SlotGameConfig.model_validate(data)
    except (ValidationError, ValueError, OSError, AttributeError) as e:
        if strict:
            raise ConfigError(f"Invalid game config: {e}") from e
        logger.warning(f"Malformed game config, falling back to defaults: {e}")
        return default_game_config()


def load_scratch_config(source: Union[dict, str, Path], strict: bool = False) -> ScratchConfig:
    """Scratch-card counterpart of `load_game_config`."""
    try:
        if isinstance(source, dict):
            return ScratchConfig.model_validate(source)
        if isinstance(source, str) and source.lstrip().startswith("{"):
            return ScratchConfig.model_validate_json(source)
        return ScratchConfig.model_validate_json(Path(source).read_text(encoding="utf-8"))
    except (ValidationError, ValueError, OSError) as e:
        if strict:
            raise ConfigError(f"Invalid scratch config: {e}") from e
        logger.warning(f"Malformed scratch config, falling back to defaults: {e}")
        return ScratchConfig()
