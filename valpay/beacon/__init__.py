"""Beacon API client used to read genesis, validators and blocks."""

from .exceptions import (
    BeaconAPIError,
    BeaconNotFoundError,
    BlockNotFoundError,
    ValidatorNotFoundError,
)
from .client import BeaconClient

__all__ = [
    "BeaconClient",
    "BeaconAPIError",
    "BeaconNotFoundError",
    "BlockNotFoundError",
    "ValidatorNotFoundError",
]
