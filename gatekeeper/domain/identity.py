"""
Identity hasher - Guild-scoped one-way identifiers for email addresses.

Raw email addresses are never stored. Every lookup key is an Argon2id
digest of the normalized address, salted with the guild ID so the same
address yields unrelated identifiers in different guilds.
"""

import base64
import struct
from dataclasses import dataclass
from typing import NewType

from argon2.low_level import Type, hash_secret_raw

IDENTIFIER_LENGTH = 32

Identifier = NewType("Identifier", bytes)


@dataclass(frozen=True)
class IdentityHasher:
    """
    Derives identifiers with fixed Argon2id cost parameters.

    Defaults: one pass over 64 MiB with a single lane. Changing any
    parameter changes every identifier, so they are fixed per deployment.
    """

    time_cost: int = 1
    memory_cost: int = 64 * 1024  # KiB
    parallelism: int = 1

    def derive(self, guild_id: int, email: str) -> Identifier:
        """
        Derive the identifier for an already normalized email address.

        Args:
            guild_id: Discord guild snowflake (unsigned 64-bit)
            email: Validated, lower-cased, trimmed address

        Returns:
            32-byte identifier
        """
        digest = hash_secret_raw(
            secret=email.encode("utf-8"),
            salt=struct.pack(">Q", guild_id),
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=IDENTIFIER_LENGTH,
            type=Type.ID,
        )
        return Identifier(digest)


def identifier_text(identifier: Identifier) -> str:
    """Standard base64 form, used when showing identifiers to admins."""
    return base64.standard_b64encode(identifier).decode("ascii")
