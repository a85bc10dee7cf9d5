import socket
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.Logger import get_logger
from portswitch.model.Core.Sniffer import BUFFER_SIZE, BufferedConnection
from portswitch.model.Core.header import ControlRequestError

logger = get_logger('control')

MAX_HEADERS_SIZE = 8192
MAX_BODY_SIZE = 65536
LINGER_TIMEOUT = 1.0
RESPONSE = b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n"


@dataclass
class ControlRequest:
    method: str
    target: str
    version: str
    headers: Dict[str, str]

    @property
    def route_id(self) -> str:
        values = parse_qs(urlsplit(self.target).query, keep_blank_values=True).get('id')
        return values[0] if values else ""


def _read_head_lines(conn: BufferedConnection) -> List[str]:
    """Request line and header lines, CRLF or bare LF terminated, up to the first empty line."""
    lines = []
    remaining = MAX_HEADERS_SIZE
    while True:
        try:
            raw = conn.read_until(b"\n", remaining)
        except OSError as e:
            raise ControlRequestError(f"failed to read request: {e}") from e
        if raw is None:
            raise ControlRequestError("incomplete or oversized request head")
        remaining -= len(raw)
        if remaining < 0:
            raise ControlRequestError("oversized request head")

        line = raw[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line:
            return lines
        lines.append(line.decode('iso-8859-1'))


def read_control_request(conn: BufferedConnection) -> ControlRequest:
    """
    Read and parse one HTTP request head from the connection.

    The body, if any, is left on the connection.

    Raises:
        ControlRequestError: the bytes are not an HTTP request
    """
    lines = _read_head_lines(conn)
    if not lines:
        raise ControlRequestError("empty request line")

    parts = lines[0].split()
    if len(parts) != 3 or not parts[2].startswith('HTTP/'):
        raise ControlRequestError(f"malformed request line: {lines[0]!r}")
    method, target, version = parts

    headers = {}
    for line in lines[1:]:
        if ':' not in line:
            raise ControlRequestError(f"malformed header line: {line!r}")
        key, value = line.split(':', 1)
        headers[key.strip().lower()] = value.strip()

    length = headers.get('content-length', '0')
    if not length.isdigit():
        raise ControlRequestError(f"bad Content-Length: {length!r}")

    return ControlRequest(method=method, target=target, version=version, headers=headers)


def discard_input(conn: BufferedConnection, limit: int = MAX_BODY_SIZE,
                  timeout: Optional[float] = None) -> int:
    """
    Read and drop whatever the client still sends, so closing the socket
    does not reset a reply it has not read yet.

    Stops at end-of-stream, after `limit` bytes, or when the client goes
    quiet for `timeout` seconds.

    Returns:
        int: number of bytes dropped
    """
    dropped = len(conn.take_buffered())
    if conn.eof:
        return dropped
    conn.sock.settimeout(LINGER_TIMEOUT if timeout is None else timeout)
    try:
        while dropped < limit:
            data = conn.sock.recv(BUFFER_SIZE)
            if not data:
                break
            dropped += len(data)
    except socket.timeout:
        pass
    return dropped


def handle_control(conn: BufferedConnection, active_route: ActiveRoute) -> bool:
    """
    Apply a control request and acknowledge it.

    The route is set and the reply sent as soon as the request head is
    parsed; a body is drained afterwards. The id is stored as-is, even when
    empty or unknown. Parse failures are logged and leave the current route
    untouched. The socket is always closed.

    Returns:
        bool: True if the route was updated
    """
    sock = conn.sock
    try:
        request = read_control_request(conn)
    except ControlRequestError as e:
        logger.error(f"Error reading HTTP request: {e}")
        sock.close()
        return False

    route_id = request.route_id
    active_route.set(route_id)
    logger.info(f"Received HTTP request with id: {route_id}")

    try:
        sock.sendall(RESPONSE)
        sock.shutdown(socket.SHUT_WR)
        discard_input(conn)
    except OSError as e:
        logger.warning(f"Failed to acknowledge control request: {e}")
    finally:
        sock.close()
    return True
