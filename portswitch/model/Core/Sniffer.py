import socket
from typing import Optional

from portswitch.model.Core.header import Traffic

SNIFF_SIZE = 16
ASCII_CHECK_SIZE = 8
HTTP_METHODS = (b"GET ", b"POST", b"PUT ", b"HEAD", b"OPTI")
BUFFER_SIZE = 65536


class BufferedConnection:
    """
    A client socket plus the bytes already pulled off it.

    Bytes read by peek() stay in the buffer and come back out of recv()
    before anything new is read from the socket.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._buffer = bytearray()
        self.eof = False

    def peek(self, size: int, timeout: Optional[float] = None) -> bytes:
        """
        Fill the buffer up to `size` bytes without consuming them.

        Stops early on end-of-stream. socket.timeout and other OSErrors
        propagate to the caller; whatever was read stays buffered.

        Args:
            size: Number of bytes wanted
            timeout: Socket timeout while peeking, None blocks

        Returns:
            bytes: up to `size` buffered bytes
        """
        previous = self.sock.gettimeout()
        self.sock.settimeout(timeout)
        try:
            while len(self._buffer) < size and not self.eof:
                chunk = self.sock.recv(size - len(self._buffer))
                if not chunk:
                    self.eof = True
                    break
                self._buffer.extend(chunk)
        finally:
            self.sock.settimeout(previous)
        return bytes(self._buffer[:size])

    def buffered(self) -> int:
        return len(self._buffer)

    def take_buffered(self) -> bytes:
        """Hand over and forget every buffered byte."""
        data = bytes(self._buffer)
        self._buffer.clear()
        return data

    def recv(self, size: int = BUFFER_SIZE) -> bytes:
        if self._buffer:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data
        if self.eof:
            return b""
        return self.sock.recv(size)

    def read_until(self, marker: bytes, limit: int) -> Optional[bytes]:
        """
        Consume and return everything up to and including `marker`.

        Returns None when the stream ends first or more than `limit` bytes
        arrive without the marker.
        """
        while True:
            index = self._buffer.find(marker)
            if index != -1:
                end = index + len(marker)
                data = bytes(self._buffer[:end])
                del self._buffer[:end]
                return data
            if len(self._buffer) > limit or self.eof:
                return None
            chunk = self.sock.recv(BUFFER_SIZE)
            if not chunk:
                self.eof = True
            else:
                self._buffer.extend(chunk)


def looks_binary(prefix: bytes) -> bool:
    """True if any of the first ASCII_CHECK_SIZE bytes is outside printable ASCII."""
    return any(byte < 32 or byte > 126 for byte in prefix[:ASCII_CHECK_SIZE])


def classify_prefix(prefix: bytes) -> Traffic:
    """
    Decide from a complete sniff prefix whether a connection is control traffic.

    Only a known HTTP method at the very start makes it CONTROL; anything
    else, printable or binary, is DATA.
    """
    if prefix.startswith(HTTP_METHODS):
        return Traffic.CONTROL
    if looks_binary(prefix):
        return Traffic.DATA
    # printable banner of some other protocol (SSH, SMTP, ...)
    return Traffic.DATA


def classify(conn: BufferedConnection, timeout: Optional[float] = None) -> Traffic:
    """
    Peek at the first SNIFF_SIZE bytes of a connection and classify it.

    End-of-stream or a timeout before the prefix is complete means DATA.
    Any other socket error is INCONCLUSIVE.
    """
    try:
        prefix = conn.peek(SNIFF_SIZE, timeout=timeout)
    except socket.timeout:
        return Traffic.DATA
    except OSError:
        return Traffic.INCONCLUSIVE

    if len(prefix) < SNIFF_SIZE:
        return Traffic.DATA

    return classify_prefix(prefix)
