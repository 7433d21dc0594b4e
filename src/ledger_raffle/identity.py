"""Canonical participant identities.

Ledger keys, the admin and the winner are all stored in canonical form so the
same account can never appear twice under different spellings.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
import base58

from .errors import InvalidIdentityError
from .project_constants import IDENTITY_BYTES


@dataclass(frozen=True, order=True)
class Identity:
    """Raw 32-byte ed25519 public key."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != IDENTITY_BYTES:
            raise InvalidIdentityError()

    @classmethod
    def from_string(cls, value: str) -> "Identity":
        """
        Accepts:
        1) base58 (surrounding whitespace ignored)
        2) hex, optionally 0x-prefixed, any case
        """
        text = value.strip()
        if not text:
            raise InvalidIdentityError()

        if text[:2].lower() == "0x":
            return cls(_decode_hex(text[2:]))

        try:
            raw = base58.b58decode(text)
        except ValueError:
            raw = b""
        if len(raw) == IDENTITY_BYTES:
            return cls(raw)

        # Unprefixed hex (64 chars) is not valid base58 of the right width.
        return cls(_decode_hex(text))

    @property
    def address(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")

    def __str__(self) -> str:
        return self.address


def _decode_hex(text: str) -> bytes:
    try:
        return binascii.unhexlify(text.lower())
    except (binascii.Error, ValueError):
        raise InvalidIdentityError() from None
