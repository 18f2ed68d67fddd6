"""
Error taxonomy for BitGuard.

Every failure the core can surface is one of the classes below.  The
``user_message`` attribute is what a front end may show to a person;
``str(exc)`` may carry more detail and is meant for logs.
"""

from __future__ import annotations


class BitGuardError(Exception):
    """Base class for all BitGuard failures."""

    user_message = "The wallet operation failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)


class DerivationError(BitGuardError, ValueError):
    """Key derivation could not produce a valid key."""

    user_message = "Key derivation failed."


class InvalidMnemonic(DerivationError):
    """Bad word count, unknown word or checksum mismatch."""

    user_message = "The recovery phrase is not valid."


class DecryptionError(BitGuardError, ValueError):
    """
    An envelope could not be opened.

    Raised with the same message for a wrong password, a truncated blob
    and a failed authentication tag.
    """

    user_message = "Unable to open the encrypted wallet data."

    def __init__(self, message: str | None = None):
        # detail is deliberately ignored
        super().__init__(self.user_message)


class EntropySourceUnavailable(BitGuardError, RuntimeError):
    """The operating system CSPRNG could not be read."""

    user_message = "Secure random number generator unavailable."


class WalletStateError(BitGuardError, RuntimeError):
    """A WalletManager transition was requested from the wrong state."""

    user_message = "That action is not available right now."


class PasswordPolicyError(BitGuardError, ValueError):
    """A new password was rejected (too short, confirmation mismatch)."""

    user_message = "The password does not meet the requirements."

    def __init__(self, message: str | None = None):
        super().__init__(message)
        if message:
            # policy messages are safe to show as-is
            self.user_message = message


class WalletAccessError(BitGuardError):
    """Unlock failed; never says whether the password or the data was bad."""

    user_message = "Incorrect password or corrupted wallet data."
