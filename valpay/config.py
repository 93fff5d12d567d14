"""Configuration for valpay."""

import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_BEACON_API_URL = "https://rpc-pulsechain.g4mm4.io/beacon-api"
DEFAULT_RPC_URL = "https://rpc-pulsechain.g4mm4.io"


def _coerce(name: str, value: Any, field_type: type) -> Any:
    """Convert a YAML value to the type of the config field it sets."""
    if isinstance(value, bool):
        pass
    elif isinstance(value, field_type):
        return value
    elif field_type is str and isinstance(value, (int, float)):
        return str(value)
    elif field_type is float and isinstance(value, (int, str)):
        try:
            return float(value)
        except ValueError:
            pass
    elif field_type is int and isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    elif field_type is int and isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(
        f"Invalid value for config key {name}: {value!r} (expected {field_type.__name__})"
    )


@dataclass
class ScanSettings:
    """Tunables of the payment scan."""

    seconds_per_slot: int = 12
    concurrency: int = 90
    max_attempts: int = 5
    backoff_base: float = 1.0
    progress_interval: float = 4.0
    max_effective_balance: Decimal = Decimal(32)
    validator_state_id: str = "finalized"

    def __post_init__(self):
        if self.seconds_per_slot <= 0:
            raise ValueError("seconds_per_slot must be positive")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_effective_balance = Decimal(str(self.max_effective_balance))


@dataclass
class Config:
    """Tool configuration."""

    beacon_api_url: str = DEFAULT_BEACON_API_URL
    rpc_url: str = DEFAULT_RPC_URL
    rpc_jwt_secret_path: str = ""
    validator_state_id: str = "finalized"
    seconds_per_slot: int = 12
    concurrency: int = 90
    max_attempts: int = 5
    backoff_base: float = 1.0
    request_timeout: float = 30.0
    progress_interval: float = 4.0
    max_effective_balance: float = 32.0
    metrics_port: int = 0
    log_level: str = "INFO"

    @property
    def rpc_jwt_secret(self) -> bytes:
        if not self.rpc_jwt_secret_path:
            return b""
        with open(self.rpc_jwt_secret_path, "rb") as f:
            return bytes.fromhex(f.read().decode().strip().replace("0x", ""))

    @property
    def scan_settings(self) -> ScanSettings:
        return ScanSettings(
            seconds_per_slot=self.seconds_per_slot,
            concurrency=self.concurrency,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            progress_interval=self.progress_interval,
            max_effective_balance=Decimal(str(self.max_effective_balance)),
            validator_state_id=self.validator_state_id,
        )

    def merged(self, **overrides: Any) -> "Config":
        """Return a copy with every non-None override applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return Config(**values)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a yaml file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        config = cls()
        known = {f.name: type(getattr(config, f.name)) for f in fields(cls)}
        for key, value in data.items():
            attr_name = key.lower().replace("-", "_")
            if attr_name in known:
                setattr(config, attr_name, _coerce(attr_name, value, known[attr_name]))
            else:
                logger.warning(f"Ignoring unknown config key: {key}")
        return config
