"""
REELSMITH — Engine Exceptions

Config-level problems are logged and fall back to defaults where possible;
these are raised for API misuse and for configs that cannot be honoured.
"""


class ReelsmithError(Exception):
    """Base class for all engine errors."""


class ConfigError(ReelsmithError, ValueError):
    """Game or scratch configuration cannot be used."""


class GridError(ReelsmithError, ValueError):
    """Symbol grid does not match the configured layout."""


class SpinError(ReelsmithError, RuntimeError):
    """A spin was requested that the session cannot accept."""

    def __init__(self, reason: str):
        super().__init__(f"Cannot start spin: {reason}")
        self.reason = reason


class PickError(ReelsmithError, RuntimeError):
    """Invalid pick in a pick-and-click round."""
