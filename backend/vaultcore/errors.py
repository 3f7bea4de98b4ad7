"""
CryptoVault Core: Exceptions

Short input never raises here; engines return empty or partial results.
These exceptions cover degenerate numeric input and setups whose stop or
target sits on the wrong side of the entry.
"""

from __future__ import annotations


class VaultCoreError(Exception):
    """Base class for every error raised by the analysis core."""


class InvalidRiskInputError(VaultCoreError, ValueError):
    """Risk math would divide by zero or size against a non-positive account."""


class SetupInvariantError(VaultCoreError):
    """Stop or target is on the wrong side of entry for the setup direction.

    Not a ValueError, so pydantic lets it escape model validators unwrapped.
    """

    def __init__(self, message: str, direction: str = "", entry: float = 0.0,
                 stop_loss: float = 0.0, take_profit: float = 0.0):
        super().__init__(message)
        self.direction = direction
        self.entry = entry
        self.stop_loss = stop_loss
        self.take_profit = take_profit
