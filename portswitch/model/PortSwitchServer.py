"""
PortSwitch Server
Description: Single-port TCP relay. HTTP requests arriving on the port select
             which configured remote host the following plain TCP
             connections are forwarded to.
"""

import socket
import threading
import time
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.ControlHandler import handle_control
from portswitch.model.Core.Logger import get_logger
from portswitch.model.Core.RelayEngine import RelayEngine
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.Sniffer import BufferedConnection, classify
from portswitch.model.Core.TrafficStats import TrafficStats
from portswitch.model.Core.header import AppConfig, ConnectionContext, Traffic

logger = get_logger('server')


class PortSwitchServer:
    """
    Accepts connections on one port and dispatches each to the control
    handler or the relay engine.

    Attributes:
        config (AppConfig): Listener and timing settings
        registry (TargetRegistry): Remote hosts by route id
        active_route (ActiveRoute): Route selection shared with other servers
        stats (TrafficStats): Connection and traffic counters
        relay_engine (RelayEngine): Forwards data connections
        server_socket (socket): The listening socket, None when stopped
        client_threads (list): Connection threads that may still be running
    """

    def __init__(self, config: AppConfig, registry: TargetRegistry, active_route: ActiveRoute,
                 stats: Optional[TrafficStats] = None, accept_timeout: float = 0.5):
        self.config = config
        self.registry = registry
        self.active_route = active_route
        self.stats = stats or TrafficStats()
        self.relay_engine = RelayEngine(registry, active_route, self.stats, config.dial_timeout)
        self.accept_timeout = accept_timeout
        self.server_socket: Optional[socket.socket] = None
        self.client_threads: List[threading.Thread] = []
        self._threads_lock = threading.Lock()
        self._stopping = threading.Event()

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self.server_socket is None:
            return None
        return self.server_socket.getsockname()[:2]

    def bind(self) -> Tuple[str, int]:
        """Create the listening socket and return the address it is bound to."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.config.bind_host, self.config.local_port))
            sock.listen(128)
        except OSError:
            sock.close()
            raise
        # the timeout lets the loop notice stop() on every platform
        sock.settimeout(self.accept_timeout)
        self.server_socket = sock
        return self.address

    def serve_forever(self):
        """
        Run the accept loop until stop() closes the listener.
        """
        if self._stopping.is_set():
            return
        if self.server_socket is None:
            self.bind()

        listener = self.server_socket
        host, port = listener.getsockname()[:2]
        logger.info(f"Port forwarding is running on {host}:{port}")

        while not self._stopping.is_set():
            try:
                client_socket, client_addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                logger.error(f"Error accepting connection: {e}")
                continue

            client_socket.settimeout(None)
            self._spawn(client_socket, client_addr)

        logger.info("Port forwarding stopped")

    def _spawn(self, client_socket: socket.socket, client_addr: Tuple[str, int]):
        context = ConnectionContext(
            connection_id=str(uuid.uuid4())[:8],
            client_socket=client_socket,
            client_addr=client_addr,
            start_time=datetime.now(),
        )
        thread = threading.Thread(target=self.handle_client, args=(context,), daemon=True)
        with self._threads_lock:
            # Clean up finished threads
            self.client_threads = [t for t in self.client_threads if t.is_alive()]
            self.client_threads.append(thread)
        thread.start()

    def handle_client(self, context: ConnectionContext):
        """
        Classify one accepted connection and hand it to the matching handler.

        Errors stay inside this connection; the socket is always closed.
        """
        label = f"{context.client_addr[0]}:{context.client_addr[1]}"
        self.stats.connection_opened()
        logger.debug(f"Accepted connection {context.connection_id} from {label}")

        conn = BufferedConnection(context.client_socket)
        try:
            context.traffic = classify(conn, timeout=self.config.sniff_timeout or None)

            if context.traffic is Traffic.CONTROL:
                self.stats.control_request()
                handle_control(conn, self.active_route)
            elif context.traffic is Traffic.DATA:
                self.relay_engine.handle(conn, label)
            else:
                logger.error(f"Connection type check error for {label}")
        except Exception as e:
            logger.error(f"Connection {context.connection_id} error: {e}")
        finally:
            try:
                context.client_socket.close()
            except OSError:
                pass
            self.stats.connection_closed()

    def stop(self):
        """Stop accepting; sessions already running are left to finish."""
        self._stopping.set()
        listener, self.server_socket = self.server_socket, None
        if listener is not None:
            try:
                listener.close()
            except OSError:
                pass

    def active_threads(self) -> List[threading.Thread]:
        with self._threads_lock:
            return [t for t in self.client_threads if t.is_alive()]

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight connection threads.

        Returns:
            bool: True if all of them finished within the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self.active_threads():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not self.active_threads()
