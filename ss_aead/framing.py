"""
CONNECTION FRAMING  |  Shadowsocks AEAD stream format
======================================================
Each direction of a TCP connection is an independent byte stream:

    [salt] [len chunk] [payload chunk] [len chunk] [payload chunk] ...

    salt           salt_length bytes, cleartext, sent once
    len chunk      seal(uint16 big-endian payload length)   2 + tag bytes
    payload chunk  seal(payload)                            len + tag bytes

The length is a 14-bit value (top two bits zero), so a payload is at most
0x3FFF bytes. Length and payload are separate AEAD units and each consumes
one nonce value, so a chunk advances the direction's counter by two.

ChunkEncoder produces the outbound direction, ChunkDecoder parses the
inbound one. Both run SALT_EXCHANGE -> STREAMING -> CLOSED. Any error on
the decoder closes it for good; payloads it already handed out stay valid.
"""

import enum
import logging
import os
from typing import Iterator, List, Optional

from .errors import ConnectionClosed, MalformedInput, SSAEADError
from .units.codec import ChunkCipher, MAX_PAYLOAD_SIZE
from .units.subkey import derive_session_key, SUBKEY_INFO
from .units.suites import CipherSuite

logger = logging.getLogger(__name__)

LENGTH_FIELD_SIZE = 2


class FramingState(enum.Enum):
    SALT_EXCHANGE = "salt-exchange"
    STREAMING     = "streaming"
    CLOSED        = "closed"


class _ReadStage(enum.Enum):
    SALT    = "salt"
    LENGTH  = "length"
    PAYLOAD = "payload"


def _check_master_key(suite: CipherSuite, master_key: bytes) -> bytes:
    if len(master_key) != suite.key_length:
        raise MalformedInput(
            f"{suite.identifier} master key must be {suite.key_length} bytes."
        )
    return bytes(master_key)


def _session_cipher(suite: CipherSuite, master_key: bytes, salt: bytes) -> ChunkCipher:
    key = derive_session_key(master_key, salt, SUBKEY_INFO, suite.key_length)
    return ChunkCipher(suite, key)


class ChunkEncoder:
    """Outbound half of a connection: plaintext in, wire bytes out."""

    def __init__(self, suite: CipherSuite, master_key: bytes):
        self.suite       = suite
        self._master_key = _check_master_key(suite, master_key)
        self._cipher: Optional[ChunkCipher] = None
        self.salt: Optional[bytes] = None
        self.state = FramingState.SALT_EXCHANGE

    def start(self, salt: bytes = None) -> bytes:
        """
        Pick the salt and derive the session key.
        Returns the salt, which must be written to the wire first.
        Omit salt to draw a fresh one from os.urandom.
        """
        if self.state is FramingState.CLOSED:
            raise ConnectionClosed("Encoder is closed.")
        if self.state is FramingState.STREAMING:
            raise RuntimeError("Salt already exchanged on this connection.")
        if salt is None:
            salt = os.urandom(self.suite.salt_length)
        if len(salt) != self.suite.salt_length:
            raise MalformedInput(
                f"{self.suite.identifier} salt must be {self.suite.salt_length} bytes."
            )
        self.salt    = bytes(salt)
        self._cipher = _session_cipher(self.suite, self._master_key, self.salt)
        self.state   = FramingState.STREAMING
        logger.debug(f"encoder {self.suite.identifier}: salt={len(self.salt)}B, session key derived")
        return self.salt

    def encode(self, data: bytes) -> bytes:
        """
        Frame data as one or more chunks of at most MAX_PAYLOAD_SIZE.
        The first call also emits the salt if start() was not called.
        """
        if self.state is FramingState.CLOSED:
            raise ConnectionClosed("Encoder is closed.")
        out = bytearray()
        if self.state is FramingState.SALT_EXCHANGE:
            out += self.start()

        view = memoryview(bytes(data))
        for offset in range(0, len(view), MAX_PAYLOAD_SIZE):
            payload = view[offset:offset + MAX_PAYLOAD_SIZE]
            out += self._cipher.seal(len(payload).to_bytes(LENGTH_FIELD_SIZE, "big"))
            out += self._cipher.seal(payload)
        return bytes(out)

    def close(self) -> None:
        self.state   = FramingState.CLOSED
        self._cipher = None

    @property
    def nonce(self):
        return self._cipher.nonce if self._cipher else None


class ChunkDecoder:
    """
    Inbound half of a connection: wire bytes in, plaintext payloads out.

    feed() buffers bytes; drain() yields every payload that is complete.
    A payload is yielded before the next unit is even looked at, so
    anything delivered ahead of a failure reaches the caller.
    """

    def __init__(self, suite: CipherSuite, master_key: bytes):
        self.suite       = suite
        self._master_key = _check_master_key(suite, master_key)
        self._cipher: Optional[ChunkCipher] = None
        self._buffer = bytearray()
        self._stage  = _ReadStage.SALT
        self._pending_length = 0
        self.salt: Optional[bytes] = None
        self.state = FramingState.SALT_EXCHANGE

    @property
    def buffered(self) -> int:
        """Bytes received but not yet consumed by a complete unit."""
        return len(self._buffer)

    @property
    def nonce(self):
        return self._cipher.nonce if self._cipher else None

    def feed(self, data: bytes) -> None:
        if self.state is FramingState.CLOSED:
            raise ConnectionClosed("Decoder is closed.")
        self._buffer += data

    def drain(self) -> Iterator[bytes]:
        if self.state is FramingState.CLOSED:
            raise ConnectionClosed("Decoder is closed.")
        try:
            while True:
                payload = self._step()
                if payload is None:
                    return
                if payload:
                    yield payload
        except SSAEADError:
            self.close()
            raise

    def decode(self, data: bytes) -> List[bytes]:
        """
        feed() then collect every complete payload. On failure the payloads
        authenticated earlier in this call ride on the exception as
        `delivered`; use drain() to receive them one at a time instead.
        """
        self.feed(data)
        delivered = []
        try:
            for payload in self.drain():
                delivered.append(payload)
        except SSAEADError as e:
            e.delivered = delivered
            raise
        return delivered

    def close(self) -> None:
        if self.state is not FramingState.CLOSED:
            logger.debug(f"decoder {self.suite.identifier}: closed, {len(self._buffer)}B discarded")
        self.state   = FramingState.CLOSED
        self._cipher = None
        self._buffer.clear()

    def _take(self, n: int) -> bytes:
        chunk = bytes(self._buffer[:n])
        del self._buffer[:n]
        return chunk

    def _step(self) -> Optional[bytes]:
        """
        Consume one unit from the buffer if it is complete.
        Returns a payload, b"" after a salt or length unit, None if starved.
        """
        tag_length = self.suite.tag_length

        if self._stage is _ReadStage.SALT:
            if len(self._buffer) < self.suite.salt_length:
                return None
            self.salt    = self._take(self.suite.salt_length)
            self._cipher = _session_cipher(self.suite, self._master_key, self.salt)
            self._stage  = _ReadStage.LENGTH
            self.state   = FramingState.STREAMING
            logger.debug(f"decoder {self.suite.identifier}: salt received, session key derived")
            return b""

        if self._stage is _ReadStage.LENGTH:
            if len(self._buffer) < LENGTH_FIELD_SIZE + tag_length:
                return None
            field = self._cipher.open(self._take(LENGTH_FIELD_SIZE + tag_length))
            if len(field) != LENGTH_FIELD_SIZE:
                raise MalformedInput("Length chunk did not decrypt to 2 bytes.")
            length = int.from_bytes(field, "big")
            if length > MAX_PAYLOAD_SIZE:
                raise MalformedInput(
                    f"Declared chunk length {length} exceeds {MAX_PAYLOAD_SIZE}."
                )
            self._pending_length = length
            self._stage = _ReadStage.PAYLOAD
            return b""

        if len(self._buffer) < self._pending_length + tag_length:
            return None
        payload = self._cipher.open(self._take(self._pending_length + tag_length))
        self._stage = _ReadStage.LENGTH
        return payload
