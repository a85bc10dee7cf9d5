import threading
import time
from typing import Any, Dict


class TrafficStats:
    """Connection and byte counters shared by all connection threads."""

    def __init__(self):
        self.lock = threading.Lock()
        self.start_time = time.time()
        self.total_connections = 0
        self.active_connections = 0
        self.control_requests = 0
        self.relayed_sessions = 0
        self.failed_sessions = 0
        self.bytes_up = 0
        self.bytes_down = 0

    def connection_opened(self):
        with self.lock:
            self.total_connections += 1
            self.active_connections += 1

    def connection_closed(self):
        with self.lock:
            self.active_connections -= 1

    def control_request(self):
        with self.lock:
            self.control_requests += 1

    def session_relayed(self):
        with self.lock:
            self.relayed_sessions += 1

    def session_failed(self):
        with self.lock:
            self.failed_sessions += 1

    def add_up(self, count: int):
        with self.lock:
            self.bytes_up += count

    def add_down(self, count: int):
        with self.lock:
            self.bytes_down += count

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "uptime": int(time.time() - self.start_time),
                "total_connections": self.total_connections,
                "active_connections": self.active_connections,
                "control_requests": self.control_requests,
                "relayed_sessions": self.relayed_sessions,
                "failed_sessions": self.failed_sessions,
                "bytes_up": self.bytes_up,
                "bytes_down": self.bytes_down,
            }


def format_bytes(num: float) -> str:
    for unit in ['bytes', 'KB', 'MB', 'GB', 'TB']:
        if num < 1024.0:
            return f"{num:.2f} {unit}"
        num /= 1024.0
    return f"{num:.2f} PB"
