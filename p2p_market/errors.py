# p2p_market/errors.py
# Business-rule violations raised by crud / logic and mapped to HTTP in main.py.
# All of them are synchronous and non-retryable; the message goes to the caller as-is.


class MarketError(Exception):
    pass


class NotFoundError(MarketError):
    """Referenced entity does not exist."""


class ForbiddenError(MarketError):
    """Caller lacks the role or ownership for the action."""


class InvalidStateError(MarketError):
    """Entity is not in a state that permits the action."""


class InvalidStateTransitionError(InvalidStateError):
    """Transaction transition not permitted for the caller's role."""


class InvalidArgumentError(MarketError):
    """Malformed input, e.g. a negative amount."""
