# File: src/carpark/config.py
"""
Application configuration for the Car Park Ledger

Settings are a pydantic model so values read from YAML are validated
before any component is built. Every field has a default; a missing
configuration file yields the defaults.
"""

from typing import Dict, Optional, Any, Union
from decimal import Decimal, InvalidOperation
from pathlib import Path
import logging
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .domain.models import VehicleType
from .domain.strategies import ParkingStrategyFactory
from .domain.exceptions import ConfigError, InvalidCategory


CONFIG_ENV_VAR = "CARPARK_CONFIG"

DEFAULT_HOURLY_RATES: Dict[VehicleType, Decimal] = {
    VehicleType.TWO_WHEELER: Decimal('2.00'),
    VehicleType.FOUR_WHEELER: Decimal('5.00'),
    VehicleType.EV: Decimal('5.00'),
    VehicleType.VIP: Decimal('10.00'),
}

logger = logging.getLogger(__name__)


class CarParkConfig(BaseModel):
    """Validated runtime settings"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    data_dir: Path = Field(default=Path("data"), description="Directory holding the flat files")
    users_file: str = "users.csv"
    slots_file: str = "slots.csv"
    ledger_file: str = "parking_ledger.csv"

    storage_backend: str = Field(default="csv", pattern="^(csv|sqlite|memory)$")
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL; defaults to a SQLite file inside data_dir"
    )

    allocation_strategy: str = "registration_order"
    hourly_rates: Dict[VehicleType, Decimal] = Field(default_factory=lambda: dict(DEFAULT_HOURLY_RATES))
    currency_symbol: str = "$"

    log_dir: Path = Path("logs")
    log_level: str = "INFO"

    @field_validator('hourly_rates', mode='before')
    @classmethod
    def parse_rate_keys(cls, value: Any) -> Any:
        """Accept category names (FOUR_WHEELER) or numeric codes as keys"""
        if not isinstance(value, dict):
            return value
        parsed = {}
        for key, rate in value.items():
            try:
                if isinstance(key, VehicleType):
                    category = key
                elif isinstance(key, str) and key.strip().upper() in VehicleType.__members__:
                    category = VehicleType[key.strip().upper()]
                else:
                    category = VehicleType.from_code(key)
                parsed[category] = Decimal(str(rate))
            except (InvalidCategory, InvalidOperation) as e:
                raise ValueError(f"Invalid hourly rate entry {key!r}: {rate!r} ({e})")
        return parsed

    @field_validator('hourly_rates')
    @classmethod
    def validate_rates(cls, value: Dict[VehicleType, Decimal]) -> Dict[VehicleType, Decimal]:
        rates = dict(DEFAULT_HOURLY_RATES)
        rates.update(value)
        for category, rate in rates.items():
            if rate < 0:
                raise ValueError(f"Hourly rate for {category} cannot be negative")
        return rates

    @field_validator('allocation_strategy')
    @classmethod
    def validate_allocation_strategy(cls, value: str) -> str:
        if value not in ParkingStrategyFactory.available():
            raise ValueError(
                f"allocation_strategy must be one of {', '.join(ParkingStrategyFactory.available())}"
            )
        return value

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    def path_for(self, kind: str) -> Path:
        """Flat file path for a record kind (users, slots, ledger)"""
        names = {
            "users": self.users_file,
            "slots": self.slots_file,
            "ledger": self.ledger_file,
        }
        return self.data_dir / names[kind]

    def resolved_database_url(self) -> str:
        return self.database_url or f"sqlite:///{self.data_dir / 'carpark.sqlite3'}"


def load_config(
    path: Optional[Union[str, Path]] = None,
    **overrides: Any
) -> CarParkConfig:
    """
    Load configuration from YAML

    The file is taken from `path`, else from $CARPARK_CONFIG. Missing files
    give the defaults. Keyword overrides (e.g. from the command line) win
    over file values; None overrides are ignored.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    data: Dict[str, Any] = {}

    if path:
        config_path = Path(path)
        if config_path.exists():
            try:
                with config_path.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Cannot read configuration file {config_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {config_path} must contain a mapping")
            logger.debug(f"Loaded configuration from {config_path}")
        else:
            logger.warning(f"Configuration file {config_path} not found, using defaults")

    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return CarParkConfig(**data)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
