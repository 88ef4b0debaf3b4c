"""
Relay node configuration.

A NodeConfig names one remote Shadowsocks relay and the cipher/password
pair it expects. The cipher is checked when the config is built, so an
unknown suite is reported before any connection is attempted. The master
key is derived on first use and cached on the config; every connection
through the same node reads that one key.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional
from urllib.parse import parse_qs, unquote, urlsplit

from .units.kdf import derive_master_key
from .units.suites import CipherSuite, lookup

logger = logging.getLogger(__name__)

DEFAULT_PORT   = 8388
DEFAULT_CIPHER = "aes-256-gcm"
DEFAULT_NAME   = "SS Proxy"


@dataclass(frozen=True)
class NodeConfig:
    server:   str
    port:     int = DEFAULT_PORT
    cipher:   str = DEFAULT_CIPHER
    password: str = field(default="", repr=False)
    name:     str = DEFAULT_NAME

    def __post_init__(self):
        lookup(self.cipher)
        if not self.server:
            raise ValueError("Relay server address is empty.")
        if not 0 < self.port < 65536:
            raise ValueError(f"Relay port out of range: {self.port}")

    @property
    def suite(self) -> CipherSuite:
        return lookup(self.cipher)

    @cached_property
    def master_key(self) -> bytes:
        logger.debug(f"{self.name}: deriving {self.suite.identifier} master key")
        return derive_master_key(self.password, self.suite.key_length)

    @property
    def address(self) -> str:
        return f"{self.server}:{self.port}"


def _b64decode(text: str) -> bytes:
    text = text.strip()
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _split_userinfo(userinfo: str):
    """SIP002 userinfo: base64url("method:password"), or plain percent-encoded."""
    plain = unquote(userinfo)
    if ":" in plain:
        return plain.split(":", 1)
    try:
        decoded = _b64decode(plain).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if ":" not in decoded:
        return None
    return decoded.split(":", 1)


def parse_ss_url(url: str) -> Optional[NodeConfig]:
    """
    Parse an ss:// URL into a NodeConfig.

    Two forms are accepted:
        ss://host:port?cipher=aes-256-gcm&password=secret
        ss://BASE64(method:password)@host:port#name          (SIP002)

    Returns None if the URL cannot be parsed. An unknown cipher raises
    UnsupportedCipherSuite instead, so it is never silently replaced.
    """
    try:
        parts = urlsplit(url.strip())
        port  = parts.port
    except (AttributeError, ValueError):
        return None
    if parts.scheme.lower() != "ss" or not parts.hostname:
        return None

    query    = parse_qs(parts.query)
    cipher   = query.get("cipher", [DEFAULT_CIPHER])[0]
    password = query.get("password", [""])[0]
    name     = unquote(parts.fragment) or DEFAULT_NAME

    if parts.username:
        userinfo = parts.netloc.rsplit("@", 1)[0]
        creds = _split_userinfo(userinfo)
        if creds is None:
            return None
        cipher, password = creds

    return NodeConfig(
        server=parts.hostname,
        port=port or DEFAULT_PORT,
        cipher=cipher,
        password=password,
        name=name,
    )
