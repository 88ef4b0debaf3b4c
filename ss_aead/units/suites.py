"""
Unit 1 — REGISTRY: Shadowsocks AEAD cipher suites
==================================================
The single table every other unit consults for byte lengths.

    identifier               key  salt  nonce  tag
    aes-128-gcm               16    16     12   16
    aes-256-gcm               32    32     12   16
    chacha20-ietf-poly1305    32    32     12   16

Salt length equals key length in this protocol family. All three use the
IETF 96-bit nonce and a 128-bit tag.

Dependencies: cryptography >= 41.0
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Tuple

from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..errors import UnsupportedCipherSuite


@dataclass(frozen=True)
class CipherSuite:
    """Immutable record of one AEAD cipher's byte lengths."""

    identifier:   str
    key_length:   int
    salt_length:  int
    nonce_length: int
    tag_length:   int
    aead:         type = field(repr=False, compare=False)

    def new_aead(self, key: bytes):
        """Build the AEAD primitive for a session key of this suite."""
        return self.aead(bytes(key))


_SUITES = (
    CipherSuite("aes-128-gcm",            16, 16, 12, 16, AESGCM),
    CipherSuite("aes-256-gcm",            32, 32, 12, 16, AESGCM),
    CipherSuite("chacha20-ietf-poly1305", 32, 32, 12, 16, ChaCha20Poly1305),
)

CIPHER_SUITES = MappingProxyType({s.identifier: s for s in _SUITES})


def lookup(identifier: str) -> CipherSuite:
    """
    Resolve a configured cipher name. Case-insensitive.
    Raises UnsupportedCipherSuite for anything not in the table.
    """
    key = identifier.strip().lower() if isinstance(identifier, str) else identifier
    try:
        return CIPHER_SUITES[key]
    except (KeyError, TypeError):
        raise UnsupportedCipherSuite(identifier, supported_suites()) from None


def supported_suites() -> Tuple[str, ...]:
    return tuple(CIPHER_SUITES)
