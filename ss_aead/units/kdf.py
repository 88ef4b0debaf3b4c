"""
Unit 2 — MASTER KEY: EVP_BytesToKey over MD5
=============================================
Turns the configured password into the long-lived master key.

    D1 = MD5(password)
    Di = MD5(D(i-1) || password)
    key = (D1 || D2 || ...)[:key_length]

There is no salt and no iteration count. That is the protocol family's
legacy format, kept for compatibility with existing relays: every
Shadowsocks server derives the same bytes from the same password. The
per-connection salt is mixed in later by the session subkey unit.

Dependencies: cryptography >= 41.0
"""

from typing import Union

from cryptography.hazmat.primitives import hashes


def _md5(*parts: bytes) -> bytes:
    h = hashes.Hash(hashes.MD5())
    for part in parts:
        h.update(part)
    return h.finalize()


def derive_master_key(password: Union[str, bytes], key_length: int) -> bytes:
    """
    Expand a password into exactly key_length bytes.
    A str password is encoded as UTF-8. The empty password is accepted.
    """
    if key_length < 0:
        raise ValueError("key_length must be non-negative.")
    if isinstance(password, str):
        password = password.encode("utf-8")
    password = bytes(password)

    key  = b""
    prev = b""
    while len(key) < key_length:
        prev = _md5(prev, password)
        key += prev
    return key[:key_length]
