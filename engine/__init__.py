"""
REELSMITH — Game Math Engine

Deterministic math for slot and scratch-card games.
Each game type exposes: compute_rtp(), simulate(), and generate_config().

Usage:
    from engine import get_game_engine
    engine = get_game_engine("slot")
    config = engine.generate_config()
    results = engine.simulate(config, rounds=100_000)
"""

GAME_TYPES = ["slot", "scratch"]


def get_game_engine(game_type: str):
    """Get the math engine for a game type."""
    # Imported lazily: config.game_schema imports engine.errors at load time
    from engine.slots.engine import SlotEngine
    from engine.scratch import ScratchEngine

    engines = {"slot": SlotEngine, "scratch": ScratchEngine}
    cls = engines.get(game_type.lower())
    if cls is None:
        raise ValueError(f"Unknown game type: {game_type}. Available: {GAME_TYPES}")
    return cls()
