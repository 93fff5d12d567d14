"""Exceptions raised by the payment scan."""


class PaymentsError(Exception):
    """Base class for fatal payment scan errors."""


class InvalidRangeError(PaymentsError):
    """Dates could not be parsed or do not span any slot."""


class NoValidatorsResolvedError(PaymentsError):
    """None of the requested identifiers resolved to a validator."""


class RetryExhaustedError(PaymentsError):
    """An operation kept failing until its attempt budget ran out."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error!r}")
