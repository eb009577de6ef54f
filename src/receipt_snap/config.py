from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import os
from pathlib import Path
from typing import Any, Optional

import yaml

CONFIG_ENV_VAR = "RECEIPT_SNAP_CONFIG"


@dataclass
class Settings:
    database_path: str = "receipt_snap.sqlite3"
    default_currency: str = "USD"
    # Submitting a report with no receipts is refused unless enabled.
    allow_empty_submit: bool = False
    snapshot_dir: Optional[Path] = None
    log_level: str = "INFO"
    rates: dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> "Settings":
        unknown = set(values) - {
            "database_path",
            "default_currency",
            "allow_empty_submit",
            "snapshot_dir",
            "log_level",
            "rates",
        }
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")

        snapshot_dir = values.get("snapshot_dir")
        rates = values.get("rates") or {}
        if not isinstance(rates, dict):
            raise ValueError("rates must be a mapping of currency code to rate")
        return cls(
            database_path=str(values.get("database_path", cls.database_path)),
            default_currency=str(values.get("default_currency", cls.default_currency)).upper(),
            allow_empty_submit=bool(values.get("allow_empty_submit", cls.allow_empty_submit)),
            snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
            log_level=str(values.get("log_level", cls.log_level)).upper(),
            rates={str(code).upper(): Decimal(str(rate)) for code, rate in rates.items()},
        )


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML; without a file, defaults apply."""
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return Settings()

    config_path = Path(config_path)
    with config_path.open("r", encoding="utf-8") as config_file:
        loaded = yaml.safe_load(config_file)

    if loaded is None:
        return Settings()
    if not isinstance(loaded, dict):
        msg = f"Settings file must contain a mapping at root: {config_path}"
        raise ValueError(msg)

    return Settings.from_mapping(loaded)
