"""
Runtime configuration for the arena backend.

Values come from the environment (a .env file is loaded first).
Game balance numbers are NOT here; they live as constants next to the
code that uses them.
"""

import logging
import os

from dotenv import load_dotenv

# Load .env BEFORE anything reads env vars
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger("arena.config").warning(
            "Invalid %s=%r, using default %s", name, raw, default
        )
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


# Dialogue provider: "mock" (offline pools) or "anthropic"
LLM_MODE = os.getenv("LLM_MODE", "mock").lower()
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# External dialogue calls are best-effort; keep them between 2 and 5 seconds
DIALOGUE_TIMEOUT_SECONDS = max(2.0, min(5.0, _env_float("DIALOGUE_TIMEOUT_SECONDS", 4.0)))

STRATEGY_TIMER_SECONDS = _env_float("STRATEGY_TIMER_SECONDS", 30.0)
COACHING_TIMEOUT_SECONDS = _env_float("COACHING_TIMEOUT_SECONDS", 90.0)

ROUND_CAP = max(1, _env_int("ROUND_CAP", 9))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str = None) -> None:
    """Set up root logging once for the server process."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
