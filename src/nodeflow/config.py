"""
Runtime settings read from the environment
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .graph import DEFAULT_MAX_STEPS

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class EngineSettings:
    max_steps: int = DEFAULT_MAX_STEPS
    log_level: str = "INFO"
    store_url: str = "sqlite:///nodeflow.db"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineSettings":
        """Load settings, reading a ``.env`` file first when one is present"""
        load_dotenv(dotenv_path)
        raw_steps = os.getenv("NODEFLOW_MAX_STEPS", str(DEFAULT_MAX_STEPS))
        try:
            max_steps = int(raw_steps)
        except ValueError:
            raise ValueError(f"NODEFLOW_MAX_STEPS must be an integer, got {raw_steps!r}")
        if max_steps <= 0:
            raise ValueError(f"NODEFLOW_MAX_STEPS must be positive, got {max_steps}")
        return cls(
            max_steps=max_steps,
            log_level=os.getenv("NODEFLOW_LOG_LEVEL", "INFO").upper(),
            store_url=os.getenv("NODEFLOW_STORE_URL", "sqlite:///nodeflow.db"),
        )


def configure_logging(settings: EngineSettings):
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
