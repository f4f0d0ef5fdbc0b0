"""Errors raised by protocol specifications."""

from __future__ import annotations

from typing import Optional


class ProtocolError(Exception):
    """Base class for every protocol error."""

    default_message = "protocol error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class CryptoError(ProtocolError):
    """An error in the cryptographic abstraction layer."""

    default_message = "cryptographic operation failed"


class InvalidMessage(ProtocolError):
    """A message that allows no transition from the current state."""

    default_message = "invalid message"


class InvalidPrologue(ProtocolError):
    """Invalid initialisation data."""

    default_message = "invalid prologue"