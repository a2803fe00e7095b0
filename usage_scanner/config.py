"""Configuration management for the Usage Scanner.

Loads environment variables (and an optional .env file in the invocation
directory) and provides centralized config access.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

__version__ = "1.0.0"

AMBIGUITY_POLICIES = ("first", "drop")


class ConfigurationError(ValueError):
    """Raised when a configuration value cannot be used."""


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_file: Path | None = None):
        """Initialize config by loading the .env file.

        Args:
            env_file: Explicit .env path. Defaults to ``.env`` in the current
                working directory. A missing file is not an error.
        """
        load_dotenv(env_file or Path.cwd() / ".env")
        self._validate()

    def _validate(self):
        """Validate values that have a restricted domain.

        Raises:
            ConfigurationError: If a variable holds an unusable value
        """
        # Bad values fail at load time, not mid-scan
        _ = (self.workers, self.ambiguity_policy)

    @property
    def workers(self) -> int:
        """Number of scanning threads.

        Returns:
            USAGE_SCANNER_WORKERS, or the concurrent.futures default
        """
        raw = os.getenv("USAGE_SCANNER_WORKERS")
        if not raw:
            return min(32, (os.cpu_count() or 1) + 4)
        try:
            value = int(raw)
        except ValueError:
            raise ConfigurationError(f"USAGE_SCANNER_WORKERS must be an integer, got {raw!r}")
        if value < 1:
            raise ConfigurationError(f"USAGE_SCANNER_WORKERS must be positive, got {value}")
        return value

    @property
    def ambiguity_policy(self) -> str:
        """How ambiguous symbol resolutions are treated ('first' or 'drop')."""
        value = os.getenv("USAGE_SCANNER_AMBIGUITY", "first").strip().lower()
        if value not in AMBIGUITY_POLICIES:
            raise ConfigurationError(
                f"USAGE_SCANNER_AMBIGUITY must be one of {', '.join(AMBIGUITY_POLICIES)}, got {value!r}"
            )
        return value

    @property
    def output_path(self) -> str:
        """Default report destination."""
        return os.getenv("USAGE_SCANNER_OUTPUT", "usages.csv")


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config():
    """Drop the cached Config so the next get_config() re-reads the environment."""
    global _config
    _config = None
