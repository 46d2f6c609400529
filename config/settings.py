"""
Reelsmith - Runtime Settings & Logging

All tunables read from the environment (a local .env is loaded first):

  SIMULATION_SPINS   default Monte Carlo spin count
  DEFAULT_SEED       base seed for reproducible runs
  RTP_TOLERANCE      allowed |measured - theoretical| RTP (fraction)
  OUTPUT_DIR         where CLI reports are written
  LOG_LEVEL          root level for the reelsmith.* loggers
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "./output"))


# ============================================================
# Simulation Configuration
# ============================================================

class SimConfig:
    SIMULATION_SPINS = int(os.getenv("SIMULATION_SPINS", "200000"))
    DEFAULT_SEED = int(os.getenv("DEFAULT_SEED", "42"))
    RTP_TOLERANCE = float(os.getenv("RTP_TOLERANCE", "0.01"))  # ±1% for slot sessions

    # Safety cap on chained feature spins inside one simulated session
    MAX_SESSION_SPINS = int(os.getenv("MAX_SESSION_SPINS", "1000"))


# ============================================================
# Logging
# ============================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").upper()
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = None) -> logging.Logger:
    """Attach a single stream handler to the reelsmith logger tree.

    Safe to call repeatedly (CLI entry points and tests both call it).
    """
    logger = logging.getLogger("reelsmith")
    if not logger.handlers:
        _h = logging.StreamHandler()
        _h.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(_h)
    logger.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.WARNING))
    return logger
