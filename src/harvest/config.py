from dotenv import load_dotenv
from dataclasses import dataclass, field
from typing import List, Optional
from pathlib import Path
import json
import os

from harvest.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_BOOTSTRAP_BUDGET,
    DEFAULT_BOOTSTRAP_TIMEOUT_MS,
    BROWSER_TIER_TIMEOUT_MS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_RUNTIME_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RESULTS_WANTED,
    MAX_CONCURRENCY_CAP,
    RETRY_DELAY_MAX_SECONDS,
    RETRY_DELAY_MIN_SECONDS,
    SESSION_STATE_KEY,
)

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    PROXY_URLS = os.getenv("PROXY_URLS", "")
    PROXY_FILE = os.getenv("PROXY_FILE", "")
    PROXY_ROTATION = os.getenv("PROXY_ROTATION", "sticky")
    STATE_DIR = os.getenv("HARVEST_STATE_DIR", str(Path.home() / ".harvest" / "state"))
    OUTPUT_DIR = os.getenv("HARVEST_OUTPUT_DIR", "runs")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class HarvestConfig:
    """Engine configuration for a harvest run."""
    base_url: str = DEFAULT_BASE_URL
    state_dir: str = settings.STATE_DIR
    state_key: str = SESSION_STATE_KEY
    output_dir: str = settings.OUTPUT_DIR
    max_runtime_seconds: float = DEFAULT_MAX_RUNTIME_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    retry_delay_min: float = RETRY_DELAY_MIN_SECONDS
    retry_delay_max: float = RETRY_DELAY_MAX_SECONDS
    bootstrap_budget: int = DEFAULT_BOOTSTRAP_BUDGET
    bootstrap_timeout_ms: int = DEFAULT_BOOTSTRAP_TIMEOUT_MS
    browser_tier_timeout_ms: int = BROWSER_TIER_TIMEOUT_MS
    browser_type: str = "firefox"
    headless: bool = True
    rotation_policy: str = "midpoint"
    log_level: str = settings.LOG_LEVEL

    @classmethod
    def from_env(cls) -> "HarvestConfig":
        """Load configuration from environment variables.

        Environment variables are prefixed with HARVEST_,
        e.g. HARVEST_BOOTSTRAP_BUDGET=3

        Returns:
            HarvestConfig with values from environment
        """
        config = cls()
        prefix = "HARVEST_"

        for field_name in config.__dataclass_fields__:
            env_value = os.getenv(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue

            field_type = config.__dataclass_fields__[field_name].type
            try:
                if field_type in (int, "int"):
                    setattr(config, field_name, int(env_value))
                elif field_type in (float, "float"):
                    setattr(config, field_name, float(env_value))
                elif field_type in (bool, "bool"):
                    setattr(config, field_name, _as_bool(env_value))
                else:
                    setattr(config, field_name, env_value)
            except ValueError:
                pass  # Keep default if conversion fails

        return config

    @classmethod
    def from_file(cls, path: str) -> "HarvestConfig":
        """Load configuration from a JSON file.

        The file may hold the fields at top level or under a "harvest" key.
        Unknown keys are ignored.

        Args:
            path: Path to JSON configuration file

        Returns:
            HarvestConfig with values from file
        """
        config = cls()
        file_path = Path(path)

        if not file_path.exists():
            return config

        with open(file_path, 'r') as f:
            data = json.load(f)

        section = data.get('harvest', data)

        for field_name in config.__dataclass_fields__:
            if field_name in section:
                setattr(config, field_name, section[field_name])

        return config

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            field_name: getattr(self, field_name)
            for field_name in self.__dataclass_fields__
        }


def _coerce_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class SearchInput:
    """What to harvest: the search the listing pages are built from."""
    specialty: str = "Cardiovascular Disease"
    location: str = "New York, NY"
    start_url: Optional[str] = None
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    collect_details: bool = True
    proxy_urls: List[str] = field(default_factory=list)
    proxy_file: Optional[str] = None

    def __post_init__(self):
        self.results_wanted = max(1, _coerce_int(self.results_wanted, DEFAULT_RESULTS_WANTED))
        self.max_pages = max(1, _coerce_int(self.max_pages, DEFAULT_MAX_PAGES))
        self.max_concurrency = min(
            MAX_CONCURRENCY_CAP,
            max(1, _coerce_int(self.max_concurrency, DEFAULT_MAX_CONCURRENCY)),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "SearchInput":
        """Build input from a JSON-like mapping, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
