"""
Token issuer - Single-use verification tokens.

Tokens are random bytes written with the base32 "extended hex" alphabet
(0-9, A-V) and no padding, so 8 bytes become 13 characters that survive
being copied out of an email into a slash command.
"""

import base64
import binascii
import math
import re
import secrets
from dataclasses import dataclass

from .exceptions import MalformedToken

TOKEN_BYTES = 8

_ALPHABET = re.compile(r"^[0-9A-V]+$")


@dataclass(frozen=True, repr=False)
class Token:
    """Raw token bytes. The repr never shows the value."""

    raw: bytes

    @property
    def text(self) -> str:
        return base64.b32hexencode(self.raw).decode("ascii").rstrip("=")

    def __repr__(self) -> str:
        return "Token(<redacted>)"


@dataclass(frozen=True)
class TokenIssuer:
    """Mints and parses tokens of a fixed byte length."""

    token_bytes: int = TOKEN_BYTES

    def __post_init__(self) -> None:
        if self.token_bytes < TOKEN_BYTES:
            raise ValueError(f"tokens must be at least {TOKEN_BYTES} bytes")

    @property
    def text_length(self) -> int:
        return math.ceil(self.token_bytes * 8 / 5)

    def mint(self) -> Token:
        """Generate a new token from the OS CSPRNG."""
        return Token(secrets.token_bytes(self.token_bytes))

    def parse(self, text: str) -> Token:
        """
        Parse token text as typed by a user.

        Surrounding whitespace is ignored and letters are case-insensitive.

        Raises:
            MalformedToken: Wrong length, wrong alphabet, or non-canonical text
        """
        candidate = text.strip().upper()
        if len(candidate) != self.text_length or not _ALPHABET.match(candidate):
            raise MalformedToken()

        padding = "=" * (-len(candidate) % 8)
        try:
            raw = base64.b32hexdecode(candidate + padding)
        except binascii.Error:
            raise MalformedToken() from None

        token = Token(raw)
        # unused trailing bits must be zero, otherwise two texts map to one token
        if len(raw) != self.token_bytes or token.text != candidate:
            raise MalformedToken()
        return token
