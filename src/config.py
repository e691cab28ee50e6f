"""YAML configuration loader for Momental.

All settings are optional; a missing key falls back to its default:

    database:
      path: momental.db
    budget:
      daily_budget: 40
      start_amount: 0
    draft:
      quiescence_seconds: 2.0
      saving_window_seconds: 0.5
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path

import yaml

from src.ledger.bootstrap import DEFAULT_DAILY_BUDGET, DEFAULT_START_AMOUNT, Defaults
from src.ledger.draft import DEFAULT_QUIESCENCE_SECONDS, DEFAULT_SAVING_WINDOW_SECONDS

DEFAULT_DB_PATH = "momental.db"


class Config:
    """Loads and provides access to the YAML configuration file."""

    def __init__(self, config_path: Path | str | None = None):
        self.config_path = Path(config_path) if config_path else None
        if self.config_path is not None and not self.config_path.is_file():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        self._data: dict | None = None

    def _load(self) -> dict:
        if self._data is not None:
            return self._data
        if self.config_path is None:
            self._data = {}
            return self._data
        with open(self.config_path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {self.config_path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping: {self.config_path}")
        self._data = data
        return self._data

    def _section(self, name: str) -> dict:
        section = self._load().get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Config section '{name}' must be a mapping")
        return section

    def _seconds(self, section: str, key: str, default: float) -> float:
        value = self._section(section).get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"{section}.{key} must be a non-negative number, got {value!r}")
        return float(value)

    def _amount(self, section: str, key: str, default: Decimal) -> Decimal:
        value = self._section(section).get(key, default)
        if isinstance(value, bool):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}")
        try:
            # str() first so YAML floats like 12.5 stay exact
            amount = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"{section}.{key} must be a number, got {value!r}") from e
        if not amount.is_finite():
            raise ValueError(f"{section}.{key} must be finite, got {value!r}")
        return amount

    @property
    def db_path(self) -> str:
        return str(self._section("database").get("path", DEFAULT_DB_PATH))

    @property
    def daily_budget(self) -> Decimal:
        return self._amount("budget", "daily_budget", DEFAULT_DAILY_BUDGET)

    @property
    def start_amount(self) -> Decimal:
        return self._amount("budget", "start_amount", DEFAULT_START_AMOUNT)

    @property
    def defaults(self) -> Defaults:
        """Values used to seed the settings record on first run."""
        return Defaults(daily_budget=self.daily_budget, start_amount=self.start_amount)

    @property
    def quiescence_seconds(self) -> float:
        return self._seconds("draft", "quiescence_seconds", DEFAULT_QUIESCENCE_SECONDS)

    @property
    def saving_window_seconds(self) -> float:
        return self._seconds("draft", "saving_window_seconds", DEFAULT_SAVING_WINDOW_SECONDS)
