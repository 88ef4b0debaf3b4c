"""
RELAY CLIENT  |  asyncio stream to a Shadowsocks relay
=======================================================
Wraps an asyncio (reader, writer) pair connected to a relay in the AEAD
framing of ss_aead.framing. The first payload on a new connection is the
target address the relay should dial:

    ATYP(1) | ADDR | PORT(2, big-endian)

    ATYP 0x01  IPv4, 4 bytes
    ATYP 0x03  domain, 1 length byte + name
    ATYP 0x04  IPv6, 16 bytes

Accepting local clients and deciding what to forward is the caller's job.
"""

import asyncio
import collections
import ipaddress
import logging

from .config import NodeConfig
from .errors import MalformedInput, RelayConnectionError, SSAEADError
from .framing import ChunkDecoder, ChunkEncoder

logger = logging.getLogger(__name__)

ATYP_IPV4   = 0x01
ATYP_DOMAIN = 0x03
ATYP_IPV6   = 0x04

READ_SIZE = 65536


def encode_target_address(host: str, port: int) -> bytes:
    """Build the address header sent as the first payload."""
    if not 0 <= port < 65536:
        raise ValueError(f"Target port out of range: {port}")
    port_bytes = port.to_bytes(2, "big")
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        name = host.encode("idna")
        if not 0 < len(name) < 256:
            raise ValueError(f"Domain name must be 1-255 bytes: {host!r}")
        return bytes([ATYP_DOMAIN, len(name)]) + name + port_bytes
    atyp = ATYP_IPV4 if ip.version == 4 else ATYP_IPV6
    return bytes([atyp]) + ip.packed + port_bytes


class ShadowsocksStream:
    """
    One relay connection. write() frames and encrypts, read() decrypts.

    The salt goes out as soon as the stream is built. A decryption failure
    or an EOF mid-chunk closes the socket. Payloads decoded before it are
    still returned by read(), then the error is raised on every later
    read() and write() raises ConnectionClosed.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter, config: NodeConfig):
        self.config   = config
        self._reader  = reader
        self._writer  = writer
        self._encoder = ChunkEncoder(config.suite, config.master_key)
        self._decoder = ChunkDecoder(config.suite, config.master_key)
        self._pending = collections.deque()
        self._error   = None
        self._writer.write(self._encoder.start())

    def write(self, data: bytes) -> None:
        if data:
            self._writer.write(self._encoder.encode(data))

    async def drain(self) -> None:
        await self._writer.drain()

    async def read(self) -> bytes:
        """Next decrypted payload, or b"" at clean end of stream."""
        while not self._pending:
            if self._error is not None:
                raise self._error
            data = await self._reader.read(READ_SIZE)
            if not data:
                return self._at_eof()
            self._decoder.feed(data)
            try:
                for payload in self._decoder.drain():
                    self._pending.append(payload)
            except SSAEADError as e:
                self._fail(e)
        return self._pending.popleft()

    def _fail(self, error: SSAEADError) -> None:
        """Closed is terminal: every later read() raises error, write() refuses."""
        logger.warning(f"{self.config.name}: closing relay stream: {error}")
        self._error = error
        self._encoder.close()
        self._decoder.close()
        self._writer.close()

    def _at_eof(self) -> bytes:
        leftover = self._decoder.buffered
        if leftover:
            err = MalformedInput(f"Relay closed mid-chunk with {leftover}B unread.")
            self._fail(err)
            raise err
        self._decoder.close()
        logger.debug(f"{self.config.name}: relay closed the stream")
        return b""

    def close(self) -> None:
        self._encoder.close()
        self._decoder.close()
        self._writer.close()

    async def wait_closed(self) -> None:
        await self._writer.wait_closed()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.close()
        await self.wait_closed()


async def open_connection(config: NodeConfig, target_host: str,
                          target_port: int, timeout: float = 10.0) -> ShadowsocksStream:
    """
    Connect to the relay, send the salt and the target address header.
    Raises RelayConnectionError if the relay cannot be reached in time.
    """
    header = encode_target_address(target_host, target_port)
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(config.server, config.port), timeout)
    except (OSError, asyncio.TimeoutError) as e:
        raise RelayConnectionError(
            f"Failed to connect to relay {config.address}: {str(e) or 'timeout'}"
        ) from e

    logger.info(f"{config.name}: tunnel to {target_host}:{target_port} via {config.address}")
    stream = ShadowsocksStream(reader, writer, config)
    stream.write(header)
    await stream.drain()
    return stream
