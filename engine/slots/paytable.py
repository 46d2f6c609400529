"""Symbol → count → multiplier lookups built from a SlotGameConfig."""

from __future__ import annotations

import logging

from config.game_schema import SlotGameConfig, SymbolKind

logger = logging.getLogger("reelsmith.eval")


class Paytable:
    def __init__(self, config: SlotGameConfig):
        self._kinds = {s.id: s.kind for s in config.symbols}
        self._pays = {s.id: dict(s.payouts) for s in config.symbols}
        self._scatter_default = dict(config.scatter_payouts)
        self._fallback = self._lowest_tier(config)
        self._warned: set[str] = set()

    def kind_of(self, symbol: str):
        return self._kinds.get(symbol)

    def is_wild(self, symbol: str) -> bool:
        return self._kinds.get(symbol) == SymbolKind.WILD

    def is_feature(self, symbol: str) -> bool:
        return self._kinds.get(symbol) in (SymbolKind.SCATTER, SymbolKind.BONUS, SymbolKind.HOLDSPIN)

    @property
    def wild_ids(self) -> list[str]:
        return [s for s, k in self._kinds.items() if k == SymbolKind.WILD]

    @staticmethod
    def _lowest_tier(config: SlotGameConfig) -> dict:
        """Pays of low_1, else of the first paying low symbol."""
        lows = [s for s in config.symbols if s.kind == SymbolKind.LOW and s.payouts]
        for s in lows:
            if s.id == "low_1":
                return dict(s.payouts)
        return dict(lows[0].payouts) if lows else {}

    def _table(self, symbol: str) -> dict:
        table = self._pays.get(symbol)
        if table is None:
            if symbol not in self._warned:
                self._warned.add(symbol)
                logger.warning(f"Symbol '{symbol}' not in paytable; paying as the lowest tier")
            return self._fallback
        return table

    def line_pay(self, symbol: str, count: int) -> float:
        """Exact-count lookup (multiplier of the line bet)."""
        return float(self._table(symbol).get(count, 0))

    def max_count_pay(self, symbol: str, count: int) -> float:
        """Pay for the largest configured count ≤ count (cluster / scatter sizes)."""
        table = self._table(symbol)
        keys = [k for k in table if k <= count]
        return float(table[max(keys)]) if keys else 0.0

    def scatter_pay(self, symbol: str, count: int) -> float:
        """Scatter multiplier of the total bet; falls back to the game-wide scatter table."""
        table = self._pays.get(symbol) or self._scatter_default
        keys = [k for k in table if k <= count]
        return float(table[max(keys)]) if keys else 0.0
