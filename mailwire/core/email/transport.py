"""TCP transport with in-place TLS upgrade.

A Transport owns the socket to one mail server and hands out complete lines
as bytes. Decoding, dialect rules and logging live in the protocol layer.

TLS is layered with ``ssl.SSLObject`` over a pair of memory BIOs rather than
``SSLContext.wrap_socket``. Bytes already pulled off the socket into the
plaintext line buffer are fed to the TLS engine before the handshake starts,
so nothing received before the swap is lost or read twice.
"""

import socket
import ssl
from contextlib import contextmanager
from typing import Iterator, Optional

from mailwire.utils.errors import (
    ConnectionFailedError,
    NetworkTimeoutError,
    ProtocolViolationError,
    SessionStateError,
)
from mailwire.utils.logging import get_logger

from .constants import Lines, Timeouts

logger = get_logger(__name__)


def create_tls_context(allow_insecure_cert: bool = False) -> ssl.SSLContext:
    """Build the client TLS context.

    Args:
        allow_insecure_cert: Skip certificate and host name validation entirely

    Returns:
        Configured SSLContext
    """
    context = ssl.create_default_context()

    if allow_insecure_cert:
        logger.warning("TLS certificate validation is disabled")
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    return context


class Transport:
    """Plaintext duplex byte stream to a remote endpoint."""

    encrypted = False

    def __init__(self, sock: socket.socket, host: str, pending: bytes = b""):
        """Wrap an already connected socket.

        Args:
            sock: Connected stream socket, owned by the transport from now on
            host: Server host name (used for TLS server name and messages)
            pending: Bytes already received but not yet consumed
        """
        self.host = host
        self._sock: Optional[socket.socket] = sock
        self._buffer = bytearray(pending)
        self._closed = False
        self._detached = False

    @classmethod
    def open(
        cls,
        host: str,
        port: int,
        timeout: Optional[float] = Timeouts.CONNECT,
        read_timeout: Optional[float] = Timeouts.READ,
    ) -> "Transport":
        """Connect to host:port with Nagle buffering disabled.

        Raises:
            NetworkTimeoutError: If the connection attempt times out
            ConnectionFailedError: On any other socket-level failure
        """
        logger.info(f"Connecting to {host}:{port}")

        try:
            sock = socket.create_connection((host, port), timeout=timeout)

        except TimeoutError as e:
            raise NetworkTimeoutError(
                f"Connection to {host}:{port} timed out",
                details={"host": host, "port": port},
            ) from e

        except OSError as e:
            raise ConnectionFailedError(
                f"Connection to {host}:{port} failed",
                details={"host": host, "port": port, "error": str(e)},
            ) from e

        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            sock.settimeout(read_timeout)

        except OSError as e:
            sock.close()
            raise ConnectionFailedError(
                f"Connection to {host}:{port} failed",
                details={"host": host, "port": port, "error": str(e)},
            ) from e

        logger.debug(f"Connected to {host}:{port}")
        return cls(sock, host)

    @property
    def closed(self) -> bool:
        return self._closed

    ## Line I/O

    def readline(self) -> Optional[bytes]:
        """Return the next line with its terminator, or None at end of stream.

        A final unterminated fragment is returned as-is before None.

        Raises:
            ProtocolViolationError: If a line exceeds the length limit
            ConnectionFailedError: On socket failure or after close()
        """
        while True:
            index = self._buffer.find(b"\n")
            if index >= 0:
                line = bytes(self._buffer[: index + 1])
                del self._buffer[: index + 1]
                return line

            if len(self._buffer) > Lines.MAX_LENGTH:
                raise ProtocolViolationError(
                    "Line too long",
                    details={"host": self.host, "length": len(self._buffer)},
                )

            with self._io_errors("read"):
                chunk = self._receive()

            if not chunk:
                if self._buffer:
                    line = bytes(self._buffer)
                    self._buffer.clear()
                    return line
                return None

            self._buffer.extend(chunk)

    def write(self, data: bytes) -> None:
        """Write raw bytes to the stream."""
        with self._io_errors("write"):
            self._send(data)

    ## TLS

    def upgrade(
        self,
        server_hostname: Optional[str] = None,
        allow_insecure_cert: bool = False,
        context: Optional[ssl.SSLContext] = None,
    ) -> "TLSTransport":
        """Run a TLS client handshake over this stream and return the new layer.

        The returned transport takes over the socket and any buffered bytes;
        this transport is detached and refuses further use.

        Raises:
            SessionStateError: If the stream is already encrypted or unusable
            ConnectionFailedError: If the handshake fails
        """
        if self.encrypted:
            raise SessionStateError(
                "Transport is already encrypted", details={"host": self.host}
            )

        sock = self._socket()
        pending = bytes(self._buffer)
        self._buffer.clear()
        self._sock = None
        self._detached = True

        logger.info(f"Encrypting connection to {self.host}")
        tls_context = context or create_tls_context(allow_insecure_cert)
        return TLSTransport(sock, server_hostname or self.host, tls_context, pending)

    ## Lifecycle

    def close(self) -> None:
        """Close the socket; unblocks any read pending in another thread."""
        if self._closed:
            return

        self._closed = True
        sock, self._sock = self._sock, None
        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # peer already gone
        finally:
            sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    ## Internals

    def _socket(self) -> socket.socket:
        if self._detached:
            raise SessionStateError(
                "Transport was replaced by an upgraded layer",
                details={"host": self.host},
            )
        if self._closed or self._sock is None:
            raise ConnectionFailedError(
                "Transport is closed", details={"host": self.host}
            )
        return self._sock

    def _receive(self) -> bytes:
        return self._socket().recv(Lines.RECV_CHUNK)

    def _send(self, data: bytes) -> None:
        self._socket().sendall(data)

    @contextmanager
    def _io_errors(self, action: str) -> Iterator[None]:
        try:
            yield

        except TimeoutError as e:
            raise NetworkTimeoutError(
                f"Timed out during {action}", details={"host": self.host}
            ) from e

        except OSError as e:
            raise ConnectionFailedError(
                f"Connection failed during {action}",
                details={"host": self.host, "error": str(e)},
            ) from e


class TLSTransport(Transport):
    """Transport whose bytes pass through a TLS client engine."""

    encrypted = True

    def __init__(
        self,
        sock: socket.socket,
        host: str,
        context: ssl.SSLContext,
        pending: bytes = b"",
    ):
        super().__init__(sock, host)
        self._incoming = ssl.MemoryBIO()
        self._outgoing = ssl.MemoryBIO()
        if pending:
            self._incoming.write(pending)

        self._tls = context.wrap_bio(
            self._incoming, self._outgoing, server_hostname=host
        )

        try:
            with self._io_errors("TLS handshake"):
                self._handshake()

        except BaseException:
            self.close()
            raise

        logger.debug(f"TLS established with {host}")

    def _handshake(self) -> None:
        while True:
            try:
                self._tls.do_handshake()
                break
            except ssl.SSLWantReadError:
                self._flush()
                if not self._fill():
                    raise ConnectionFailedError(
                        "Connection closed during TLS handshake",
                        details={"host": self.host},
                    )
        self._flush()

    def _receive(self) -> bytes:
        while True:
            try:
                data = self._tls.read(Lines.RECV_CHUNK)
                self._flush()
                return data
            except ssl.SSLWantReadError:
                self._flush()
                if not self._fill():
                    return b""
            except ssl.SSLZeroReturnError:
                return b""

    def _send(self, data: bytes) -> None:
        self._tls.write(data)
        self._flush()

    def _fill(self) -> bool:
        data = self._socket().recv(Lines.RECV_CHUNK)
        if not data:
            self._incoming.write_eof()
            return False
        self._incoming.write(data)
        return True

    def _flush(self) -> None:
        data = self._outgoing.read()
        if data:
            self._socket().sendall(data)
