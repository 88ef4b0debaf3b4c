"""
Unit 3 — SESSION SUBKEY: HKDF-SHA1
===================================
Every connection direction opens with a fresh random salt. Both peers run

    PRK  = HMAC-SHA1(key=salt, msg=master_key)            (extract)
    T(i) = HMAC-SHA1(PRK, T(i-1) || info || i)            (expand)

and use the first key_length bytes as that direction's AEAD key. The info
label "ss-subkey" separates this derivation from anything else that might
be keyed by the same master key.

Dependencies: cryptography >= 41.0
"""

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

SUBKEY_INFO = b"ss-subkey"


def derive_session_key(master_key: bytes, salt: bytes,
                       context_label: bytes, out_length: int) -> bytes:
    """
    Derive the per-connection subkey from (master_key, salt).
    out_length must be positive and at most 255 * 20 bytes.
    """
    if out_length <= 0:
        raise ValueError("out_length must be positive.")
    hk = HKDF(algorithm=hashes.SHA1(), length=out_length,
              salt=bytes(salt), info=bytes(context_label))
    return hk.derive(bytes(master_key))
