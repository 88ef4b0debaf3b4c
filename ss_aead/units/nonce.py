"""
Unit 4 — NONCE: little-endian per-direction counter
====================================================
Each direction of a connection starts its nonce at all-zero and adds one
after every AEAD operation, least significant byte first:

    00 00 00 ... -> 01 00 00 ... -> ... -> ff 00 00 ... -> 00 01 00 ...

A nonce value must never be used twice under the same session key.
"""

from ..errors import NonceExhausted


def increment(nonce: bytearray) -> None:
    """Add one in place, carrying into higher bytes. All-0xff wraps to zero."""
    for i in range(len(nonce)):
        nonce[i] = (nonce[i] + 1) & 0xFF
        if nonce[i]:
            return


class NonceCounter:
    """
    Owned nonce state for one direction of one connection.
    Never shared between connections, never reset.
    """

    def __init__(self, length: int = 12):
        if length <= 0:
            raise ValueError("Nonce length must be positive.")
        self._buf = bytearray(length)

    @classmethod
    def from_bytes(cls, value: bytes) -> "NonceCounter":
        counter = cls(len(value))
        counter._buf[:] = value
        return counter

    @property
    def value(self) -> bytes:
        return bytes(self._buf)

    @property
    def exhausted(self) -> bool:
        """True once the next advance would wrap back to zero."""
        return all(b == 0xFF for b in self._buf)

    def advance(self) -> None:
        if self.exhausted:
            raise NonceExhausted(
                f"{len(self._buf) * 8}-bit nonce counter would wrap to zero."
            )
        increment(self._buf)

    def __int__(self) -> int:
        return int.from_bytes(self._buf, "little")

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self):
        return f"NonceCounter({int(self)}, {len(self._buf)}B)"
