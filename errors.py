"""
Error taxonomy of the launchpad client.

Validation and configuration errors are settled before any remote call.
Wallet and transaction errors end the current attempt without retry.
Only read errors are retried, by the next scheduled poll.
"""

from enum import Enum
from typing import Optional


class ValidationReason(str, Enum):
    MISSING_FIELD = "MissingField"
    INVALID_SUPPLY = "InvalidSupply"
    SALE_PAUSED = "SalePaused"
    BELOW_MINIMUM = "BelowMinimum"
    UNPARSEABLE = "Unparseable"


class LaunchpadError(Exception):
    """Base class for every error the client surfaces."""


class ValidationError(LaunchpadError):
    """Local input rejected. Returned by the validator, shown inline, never sent anywhere."""

    def __init__(self, reason: ValidationReason, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.field = field

    def __eq__(self, other):
        if not isinstance(other, ValidationError):
            return NotImplemented
        return (self.reason, self.message, self.field) == (other.reason, other.message, other.field)

    def __hash__(self):
        return hash((self.reason, self.message, self.field))

    def __repr__(self):
        return f"ValidationError({self.reason.value}, {self.message!r})"


class WalletRejectionError(LaunchpadError):
    """The wallet declined or failed to sign."""


class NetworkReadError(LaunchpadError):
    """A read-only contract call failed. Transient."""


class TransactionRevertError(LaunchpadError):
    """The transaction was mined but failed, or its receipt never arrived."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tx_hash = tx_hash


class ConfigurationError(LaunchpadError):
    """A required contract address is missing. Submission stays disabled."""
