"""Exceptions for the beacon query client."""

from ..exceptions import ResourceNotFoundError


class BeaconAPIError(Exception):
    """Error from Beacon API."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Beacon API error {status}: {message}")


class BeaconNotFoundError(BeaconAPIError, ResourceNotFoundError):
    """Requested beacon resource does not exist."""

    def __init__(self, message: str, status: int = 404):
        super().__init__(status, message)


class BlockNotFoundError(BeaconNotFoundError):
    """No block was proposed for the requested slot."""


class ValidatorNotFoundError(BeaconNotFoundError):
    """Validator identifier is unknown to the beacon node."""
