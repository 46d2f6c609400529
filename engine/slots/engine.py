"""Slot Machine — line / ways / cluster games with bonus features."""

from typing import Optional

from config.game_schema import SlotGameConfig, default_game_config
from engine.base import BaseGameEngine
from engine.rng import SeededRNG
from engine.slots.spin import SlotMachine
from tools.slot_montecarlo import play_round, rtp_breakdown


class SlotEngine(BaseGameEngine):
    game_type = "slot"
    display_name = "Slot Machine"

    def __init__(self):
        super().__init__()
        self._machine: Optional[SlotMachine] = None

    def generate_config(self, **kw) -> SlotGameConfig:
        base = default_game_config().model_dump()
        base.update(kw)
        return SlotGameConfig.model_validate(base)

    def compute_rtp(self, config: SlotGameConfig) -> float:
        """Closed-form RTP: lines + scatter + free spins + wheel."""
        return rtp_breakdown(config)["total"]

    def _machine_for(self, config: SlotGameConfig, rng: SeededRNG) -> SlotMachine:
        m = self._machine
        if m is None or m.config is not config or m.rng is not rng:
            m = SlotMachine(config, rng=rng, balance=float("inf"))
            self._machine = m
        return m

    def simulate_round(self, config: SlotGameConfig, rng: SeededRNG) -> float:
        bet = config.bet.default_bet
        _, total, outcomes = play_round(self._machine_for(config, rng), bet)
        for name in outcomes[0].evaluation.features_triggered:
            self._record_feature(name)
        return total / bet

    def get_metadata(self) -> dict:
        return {
            **super().get_metadata(),
            "mechanisms": ["betlines", "ways", "cluster"],
            "features": ["free_spins", "wheel", "pick_and_click", "cascade"],
        }
