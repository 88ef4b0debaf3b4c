"""
Unit 5 — CHUNK CODEC: AEAD seal / open with counter nonces
===========================================================
One plaintext chunk becomes one AEAD unit:

    sealed = ciphertext || tag(16)

The nonce is not carried on the wire. Both peers hold a counter per
direction and advance it after every successful operation, so the n-th
unit a peer sends is always sealed under nonce n.

A tag failure leaves the nonce untouched and raises AuthenticationFailure.
The peer's counter has already moved on, so the connection cannot recover
and must be closed by its owner.

Chunk payloads are capped at MAX_PAYLOAD_SIZE (0x3FFF), the largest value
the 14-bit length field of the framing layer can carry.

Dependencies: cryptography >= 41.0
"""

import logging
from typing import Union

from cryptography.exceptions import InvalidTag

from ..errors import AuthenticationFailure, MalformedInput, NonceExhausted
from .nonce import NonceCounter, increment
from .suites import CipherSuite

logger = logging.getLogger(__name__)

MAX_PAYLOAD_SIZE = 0x3FFF

Nonce = Union[NonceCounter, bytearray]


def _current(nonce: Nonce, suite: CipherSuite) -> bytes:
    if len(nonce) != suite.nonce_length:
        raise MalformedInput(
            f"{suite.identifier} nonce must be {suite.nonce_length} bytes, got {len(nonce)}."
        )
    if isinstance(nonce, NonceCounter):
        if nonce.exhausted:
            raise NonceExhausted("Nonce counter exhausted; refusing to reuse it.")
        return nonce.value
    if isinstance(nonce, bytearray):
        if all(b == 0xFF for b in nonce):
            raise NonceExhausted("Nonce exhausted; incrementing would wrap it to zero.")
        return bytes(nonce)
    raise TypeError("nonce must be a NonceCounter or a bytearray.")


def _advance(nonce: Nonce) -> None:
    if isinstance(nonce, NonceCounter):
        nonce.advance()
    else:
        increment(nonce)


class ChunkCipher:
    """
    AEAD state for one direction of one connection: the primitive keyed
    with the session key, plus that direction's nonce counter.
    """

    def __init__(self, suite: CipherSuite, key: bytes,
                 nonce: NonceCounter = None):
        if len(key) != suite.key_length:
            raise MalformedInput(
                f"{suite.identifier} key must be {suite.key_length} bytes, got {len(key)}."
            )
        if nonce is None:
            nonce = NonceCounter(suite.nonce_length)
        elif len(nonce) != suite.nonce_length:
            raise MalformedInput(
                f"{suite.identifier} nonce must be {suite.nonce_length} bytes."
            )
        self.suite  = suite
        self.nonce  = nonce
        self._aead  = suite.new_aead(key)

    def seal(self, plaintext: bytes) -> bytes:
        return self._seal(plaintext, self.nonce)

    def open(self, sealed: bytes) -> bytes:
        return self._open(sealed, self.nonce)

    def _seal(self, plaintext: bytes, nonce: Nonce) -> bytes:
        if len(plaintext) > MAX_PAYLOAD_SIZE:
            raise MalformedInput(
                f"Chunk of {len(plaintext)} bytes exceeds the {MAX_PAYLOAD_SIZE}-byte limit."
            )
        sealed = self._aead.encrypt(_current(nonce, self.suite), bytes(plaintext), None)
        _advance(nonce)
        return sealed

    def _open(self, sealed: bytes, nonce: Nonce) -> bytes:
        tag_length = self.suite.tag_length
        if len(sealed) < tag_length:
            raise MalformedInput(
                f"Sealed chunk of {len(sealed)} bytes is shorter than the {tag_length}-byte tag."
            )
        if len(sealed) - tag_length > MAX_PAYLOAD_SIZE:
            raise MalformedInput(
                f"Sealed chunk carries more than {MAX_PAYLOAD_SIZE} bytes of payload."
            )
        try:
            plaintext = self._aead.decrypt(_current(nonce, self.suite), bytes(sealed), None)
        except InvalidTag:
            logger.debug(f"{self.suite.identifier}: authentication tag mismatch "
                         f"on {len(sealed)}B chunk")
            raise AuthenticationFailure(
                f"{self.suite.identifier} chunk failed authentication. "
                "Data tampered, wrong key, or nonce out of step."
            ) from None
        _advance(nonce)
        return plaintext

    def __repr__(self):
        return f"ChunkCipher({self.suite.identifier}, nonce={self.nonce!r})"


def seal_chunk(plaintext: bytes, key: bytes, nonce: Nonce,
               suite: CipherSuite) -> bytes:
    """
    Encrypt one chunk. Returns ciphertext || tag and advances nonce.
    An all-0xff nonce is refused with NonceExhausted, for a bytearray
    as well as a NonceCounter.
    """
    return ChunkCipher(suite, key)._seal(plaintext, nonce)


def open_chunk(sealed: bytes, key: bytes, nonce: Nonce,
               suite: CipherSuite) -> bytes:
    """
    Verify and decrypt one chunk. Advances nonce only on success.
    Raises AuthenticationFailure on tag mismatch, MalformedInput if
    sealed is shorter than the tag.
    """
    return ChunkCipher(suite, key)._open(sealed, nonce)


# -----------------------------------------------------------------------------

# SELF-TEST

# -----------------------------------------------------------------------------

def run_tests():
    import os
    from .kdf import derive_master_key
    from .subkey import derive_session_key, SUBKEY_INFO
    from .suites import CIPHER_SUITES

    print("\n" + "=" * 78)
    print("  Shadowsocks AEAD chunk codec  |  Self-Test")
    print("=" * 78)
    msg = b"Hello, Shadowsocks!"
    for name, suite in CIPHER_SUITES.items():
        master = derive_master_key("test-password-123", suite.key_length)
        salt   = os.urandom(suite.salt_length)
        key    = derive_session_key(master, salt, SUBKEY_INFO, suite.key_length)
        enc_n, dec_n = NonceCounter(suite.nonce_length), NonceCounter(suite.nonce_length)
        sealed = seal_chunk(msg, key, enc_n, suite)
        opened = open_chunk(sealed, key, dec_n, suite)
        assert opened == msg, f"{name} round-trip failed"
        print(f"  {name:<24} sealed={len(sealed)}B  nonce={int(enc_n)}  [OK]")

        tampered = bytearray(sealed)
        tampered[0] ^= 0x01
        try:
            open_chunk(bytes(tampered), key, dec_n, suite)
            print(f"  [FAIL] {name}: tamper not detected!")
        except AuthenticationFailure:
            print(f"  {name:<24} tamper rejected, nonce still {int(dec_n)}  [OK]")

    print("=" * 78)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=' %(message)s')
    run_tests()
