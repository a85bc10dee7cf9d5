import socket
import threading
from typing import Callable, Optional

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.Logger import get_logger
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.Sniffer import BUFFER_SIZE, BufferedConnection
from portswitch.model.Core.TrafficStats import TrafficStats
from portswitch.model.Core.header import RouteNotFoundError, RouteTarget

logger = get_logger('relay')


class RelayEngine:
    """
    Forwards data connections to whichever remote host is currently selected.

    Attributes:
        registry (TargetRegistry): Known remote hosts
        active_route (ActiveRoute): Current route selection
        stats (TrafficStats): Counters updated while relaying
        dial_timeout (float): Connect timeout, None leaves it to the OS
    """

    def __init__(self, registry: TargetRegistry, active_route: ActiveRoute,
                 stats: Optional[TrafficStats] = None, dial_timeout: Optional[float] = None):
        self.registry = registry
        self.active_route = active_route
        self.stats = stats or TrafficStats()
        self.dial_timeout = dial_timeout

    def resolve(self) -> RouteTarget:
        return self.registry.resolve(self.active_route.get())

    def dial(self, target: RouteTarget) -> socket.socket:
        upstream = socket.create_connection((target.host, target.port), timeout=self.dial_timeout)
        # timeout only applies to connect
        upstream.settimeout(None)
        return upstream

    def handle(self, conn: BufferedConnection, client_label: str = "") -> bool:
        """
        Relay one data connection until both directions are finished.

        Fails closed: with no valid route or an unreachable remote host the
        client socket is closed and nothing is sent to it.

        Returns:
            bool: True if a session was relayed
        """
        client = conn.sock
        try:
            target = self.resolve()
        except RouteNotFoundError as e:
            logger.error(f"{e}")
            self.stats.session_failed()
            client.close()
            return False

        try:
            upstream = self.dial(target)
        except OSError as e:
            logger.error(f"Error connecting to {target.address}: {e}")
            self.stats.session_failed()
            client.close()
            return False

        logger.info(f"Connection: {client_label} -> {target.address} ({target.id})")
        self.stats.session_relayed()
        try:
            self.relay(conn, upstream)
        finally:
            upstream.close()
            client.close()
        logger.info(f"Disconnection: {client_label}")
        return True

    def relay(self, conn: BufferedConnection, upstream: socket.socket):
        """Copy both directions concurrently and return once both reach end-of-stream."""
        downstream = threading.Thread(
            target=pipe,
            args=(upstream.recv, conn.sock, self.stats.add_down),
            name='relay-down',
            daemon=True,
        )
        downstream.start()

        # replay whatever the sniffer already pulled off the client
        pending = conn.take_buffered()
        try:
            if pending:
                upstream.sendall(pending)
                self.stats.add_up(len(pending))
        except OSError as e:
            logger.debug(f"Replay to upstream failed: {e}")
            _shutdown_write(upstream)
        else:
            pipe(conn.recv, upstream, self.stats.add_up)

        downstream.join()


def pipe(recv: Callable[[int], bytes], dst: socket.socket, count: Callable[[int], None]):
    """
    Copy from `recv` into `dst` until end-of-stream, then half-close `dst`.

    An I/O error ends this direction only.
    """
    try:
        while True:
            data = recv(BUFFER_SIZE)
            if not data:
                break
            dst.sendall(data)
            count(len(data))
    except OSError as e:
        logger.debug(f"Relay direction closed: {e}")
    finally:
        _shutdown_write(dst)


def _shutdown_write(sock: socket.socket):
    try:
        sock.shutdown(socket.SHUT_WR)
    except OSError:
        # peer already gone
        pass
