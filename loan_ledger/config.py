"""Configuration management for loan_ledger."""

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .core import ConfigurationError
from .day_count import DayCountConvention, DEFAULT_DAY_COUNT
from .logging import setup_logging


ENV_PREFIX = "LOAN_LEDGER_"


@dataclass
class EngineConfig:
    """
    Engine and batch-runner settings.

    day_count is the convention used for loans whose record does not carry
    one. insert_chunk_size bounds each insert call to the accrual store.
    """

    day_count: DayCountConvention = DEFAULT_DAY_COUNT
    insert_chunk_size: int = 500
    max_workers: int = 4
    max_error_details: int = 50
    log_level: str = "INFO"
    log_format: str = "standard"

    def __post_init__(self):
        try:
            self.day_count = DayCountConvention.parse(self.day_count)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if self.insert_chunk_size < 1:
            raise ConfigurationError(f"insert_chunk_size must be positive, got {self.insert_chunk_size}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be positive, got {self.max_workers}")
        if self.max_error_details < 0:
            raise ConfigurationError(f"max_error_details cannot be negative, got {self.max_error_details}")
        if self.log_format not in ("standard", "json"):
            raise ConfigurationError(f"log_format must be 'standard' or 'json', got {self.log_format!r}")

    def configure_logging(self) -> None:
        """Apply log_level and log_format to the loan_ledger logger."""
        setup_logging(self.log_level, self.log_format)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Create config from LOAN_LEDGER_* environment variables."""
        env = os.environ if environ is None else environ

        def get(name: str, default: str) -> str:
            return env.get(ENV_PREFIX + name, default)

        try:
            return cls(
                day_count=get("DAY_COUNT", DEFAULT_DAY_COUNT.value),
                insert_chunk_size=int(get("INSERT_CHUNK_SIZE", "500")),
                max_workers=int(get("MAX_WORKERS", "4")),
                max_error_details=int(get("MAX_ERROR_DETAILS", "50")),
                log_level=get("LOG_LEVEL", "INFO"),
                log_format=get("LOG_FORMAT", "standard"),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {ENV_PREFIX}* setting: {exc}") from exc
