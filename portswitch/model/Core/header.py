import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

# =============================================================================
# Core Types & Configuration
# =============================================================================

VERSION = "1.0.2"


class Traffic(Enum):
    CONTROL = "control"
    DATA = "data"
    INCONCLUSIVE = "inconclusive"


@dataclass(frozen=True)
class RouteTarget:
    id: str
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class AppConfig:
    local_port: int
    life_time_id: int = 0
    remote_hosts: List[RouteTarget] = field(default_factory=list)
    bind_host: str = "0.0.0.0"
    sniff_timeout: float = 2.0
    dial_timeout: Optional[float] = None
    log_dir: str = "logs"
    admin_port: int = 0


@dataclass
class ConnectionContext:
    connection_id: str
    client_socket: socket.socket
    client_addr: Tuple[str, int]
    start_time: datetime
    traffic: Optional[Traffic] = None


# =============================================================================
# Errors
# =============================================================================

class PortSwitchError(Exception):
    """Base class for every error raised by portswitch."""


class ConfigError(PortSwitchError):
    """The configuration file is missing, unreadable or invalid."""


class ControlRequestError(PortSwitchError):
    """A control connection did not carry a parsable HTTP request."""


class RouteNotFoundError(PortSwitchError):
    """No remote host is registered under the requested route id."""

    def __init__(self, route_id: str):
        super().__init__(f"remote host not found with ID: {route_id!r}")
        self.route_id = route_id
