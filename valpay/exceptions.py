"""Exceptions shared by the beacon and execution query clients."""


class ResourceNotFoundError(Exception):
    """The queried resource does not exist on the remote node.

    Raised for empty slots, unknown validators, unknown execution blocks and
    missing receipts. Never retried.
    """


class MalformedResponseError(ValueError):
    """A response that should carry a payload could not be decoded."""
