"""
Runtime settings and logging setup for the gunnery tools.

Settings come from the environment, with a .env file loaded first:
- GUNNERY_CACHE_DIR: directory for cached downloads (default "cache")
- GUNNERY_LOG_LEVEL: logging level name (default "INFO")
- GUNNERY_SEED: integer seed for reproducible volleys (default unseeded)
- GUNNERY_SHOTS: shots per volley (default 100)
"""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables
load_dotenv()


DEFAULT_CACHE_DIR = "cache"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SHOTS = 100


@dataclass
class Settings:
    """Settings shared by the download cache and the volley scripts."""
    cache_dir: Path
    log_level: str = DEFAULT_LOG_LEVEL
    seed: Optional[int] = None
    shots: int = DEFAULT_SHOTS

    @classmethod
    def from_env(cls) -> Settings:
        """
        Build settings from environment variables.

        Raises:
            ValueError: If GUNNERY_SEED or GUNNERY_SHOTS is not an integer.
        """
        seed = os.getenv("GUNNERY_SEED")
        return cls(
            cache_dir=Path(os.getenv("GUNNERY_CACHE_DIR", DEFAULT_CACHE_DIR)),
            log_level=os.getenv("GUNNERY_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
            seed=int(seed) if seed else None,
            shots=int(os.getenv("GUNNERY_SHOTS", str(DEFAULT_SHOTS))),
        )

    def make_rng(self) -> random.Random:
        """Random source seeded from the settings (unseeded if no seed)."""
        return random.Random(self.seed)


def init_logging(settings: Settings) -> None:
    """Configure console logging at the configured level."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logging.getLogger(__name__).debug("Logging initialized at %s", settings.log_level)
