"""
Errors raised by the Shadowsocks AEAD engine.

Every failure here is fatal to the connection that raised it. Nothing is
retried inside the engine and no cryptographic failure is ever reported as
an empty read.
"""


class SSAEADError(Exception):
    """Base exception for ss_aead."""


class AuthenticationFailure(SSAEADError):
    """AEAD tag did not verify. The connection is desynchronized for good."""


class MalformedInput(SSAEADError, ValueError):
    """Sealed buffer shorter than the tag, or a chunk length out of bounds."""


class UnsupportedCipherSuite(SSAEADError, ValueError):
    """Unknown cipher identifier, raised at configuration time."""

    def __init__(self, identifier: str, supported=()):
        self.identifier = identifier
        msg = f"unsupported cipher suite {identifier!r}"
        if supported:
            msg += f"; expected one of {', '.join(supported)}"
        super().__init__(msg)


class NonceExhausted(SSAEADError, RuntimeError):
    """Nonce counter reached its last value and would wrap to zero."""


class ConnectionClosed(SSAEADError):
    """Framing state machine is closed; no further chunks are processed."""


class RelayConnectionError(SSAEADError, ConnectionError):
    """Could not reach the remote relay."""
