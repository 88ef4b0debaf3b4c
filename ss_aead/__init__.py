"""
ss_aead — Shadowsocks AEAD engine
=================================
Session-key derivation and authenticated chunk transport for talking to
a Shadowsocks relay.

Units:
    1  REGISTRY     — aes-128-gcm, aes-256-gcm, chacha20-ietf-poly1305
    2  MASTER KEY   — EVP_BytesToKey (MD5) from the configured password
    3  SUBKEY       — HKDF-SHA1(master key, salt, "ss-subkey")
    4  NONCE        — 96-bit little-endian counter per direction
    5  CHUNK CODEC  — AEAD seal / open, ciphertext || tag
    FRAMING         — salt, then [sealed length][sealed payload] chunks
    RELAY           — asyncio client stream over the framing

License: Apache 2.0
"""

__version__ = "1.0.0"

from .errors import (
    SSAEADError,
    AuthenticationFailure,
    MalformedInput,
    UnsupportedCipherSuite,
    NonceExhausted,
    ConnectionClosed,
    RelayConnectionError,
)
from .units.suites  import CipherSuite, CIPHER_SUITES, lookup, supported_suites
from .units.kdf     import derive_master_key
from .units.subkey  import derive_session_key, SUBKEY_INFO
from .units.nonce   import NonceCounter, increment
from .units.codec   import ChunkCipher, seal_chunk, open_chunk, MAX_PAYLOAD_SIZE
from .framing       import ChunkEncoder, ChunkDecoder, FramingState
from .config        import NodeConfig, parse_ss_url
from .relay         import ShadowsocksStream, open_connection, encode_target_address

__all__ = [
    "SSAEADError",
    "AuthenticationFailure",
    "MalformedInput",
    "UnsupportedCipherSuite",
    "NonceExhausted",
    "ConnectionClosed",
    "RelayConnectionError",
    "CipherSuite",
    "CIPHER_SUITES",
    "lookup",
    "supported_suites",
    "derive_master_key",
    "derive_session_key",
    "SUBKEY_INFO",
    "NonceCounter",
    "increment",
    "ChunkCipher",
    "seal_chunk",
    "open_chunk",
    "MAX_PAYLOAD_SIZE",
    "ChunkEncoder",
    "ChunkDecoder",
    "FramingState",
    "NodeConfig",
    "parse_ss_url",
    "ShadowsocksStream",
    "open_connection",
    "encode_target_address",
]
