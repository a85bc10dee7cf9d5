import socket
import threading
import time

import pytest

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.header import AppConfig, RouteTarget
from portswitch.model.PortSwitchServer import PortSwitchServer


def recv_all(sock, timeout=5.0):
    sock.settimeout(timeout)
    chunks = []
    while True:
        try:
            data = sock.recv(65536)
        except ConnectionResetError:
            break
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def send_control(address, route_id, method="GET"):
    with socket.create_connection(address, timeout=5) as sock:
        sock.sendall(f"{method} /?id={route_id} HTTP/1.1\r\nHost: test\r\n\r\n".encode())
        return recv_all(sock)


class Upstream:
    """Loopback TCP server running `handler(conn)` for every connection."""

    def __init__(self, handler):
        self.handler = handler
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.port = self.sock.getsockname()[1]
        self.connections = 0
        self.received = []
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            self.connections += 1
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn):
        with conn:
            self.handler(self, conn)

    def close(self):
        self.sock.close()


def echo_handler(upstream, conn):
    while True:
        data = conn.recv(65536)
        if not data:
            break
        conn.sendall(data)
    conn.shutdown(socket.SHUT_WR)


def tagged_handler(tag):
    def handler(upstream, conn):
        data = recv_all(conn)
        upstream.received.append(data)
        conn.sendall(tag + data)
    return handler


@pytest.fixture
def upstream_factory():
    servers = []

    def make(handler=echo_handler):
        server = Upstream(handler)
        servers.append(server)
        return server

    yield make
    for server in servers:
        server.close()


@pytest.fixture
def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def portswitch_factory():
    running = []

    def make(targets, lifetime=0, sniff_timeout=0.3, active_route=None):
        config = AppConfig(
            local_port=0,
            life_time_id=lifetime,
            remote_hosts=list(targets),
            bind_host="127.0.0.1",
            sniff_timeout=sniff_timeout,
            log_dir="",
        )
        route = active_route or ActiveRoute(lifetime=lifetime)
        server = PortSwitchServer(config, TargetRegistry(config.remote_hosts), route, accept_timeout=0.1)
        server.bind()
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        running.append((server, thread, route))
        return server

    yield make
    for server, thread, route in running:
        server.stop()
        thread.join(timeout=5)
        route.close()


def wait_for(predicate, timeout=5.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def target(route_id, port, host="127.0.0.1"):
    return RouteTarget(id=route_id, host=host, port=port)
