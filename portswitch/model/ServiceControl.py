import signal
import threading
from typing import List, Optional

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.Logger import get_logger
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.TrafficStats import TrafficStats
from portswitch.model.Core.header import AppConfig
from portswitch.model.PortSwitchServer import PortSwitchServer

logger = get_logger('service')

RUNNING = "running"
PAUSED = "paused"
STOPPED = "stopped"


class ServiceController:
    """
    Runs the server in a background thread and handles stop / pause / resume.

    Pausing closes the listener but keeps the registry, the active route and
    the traffic counters, so resume() picks up where pause() left off.
    Sessions that are already relaying are never interrupted.
    """

    def __init__(self, config: AppConfig, registry: TargetRegistry, active_route: ActiveRoute,
                 stats: Optional[TrafficStats] = None, name: str = "Simple Port Forwarding"):
        self.config = config
        self.registry = registry
        self.active_route = active_route
        self.stats = stats or TrafficStats()
        self.name = name
        self.state = STOPPED
        self.server: Optional[PortSwitchServer] = None
        self.retired: List[PortSwitchServer] = []
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()
        self._stopped = threading.Event()

    def start(self) -> PortSwitchServer:
        """
        Bind a new listener and start accepting.

        Raises:
            OSError: the port could not be bound
        """
        with self._lock:
            if self.state == RUNNING:
                return self.server
            server = PortSwitchServer(self.config, self.registry, self.active_route, self.stats)
            server.bind()
            self._thread = threading.Thread(target=server.serve_forever, name='accept-loop', daemon=True)
            self._thread.start()
            self.server = server
            self.state = RUNNING
            self._stopped.clear()
            logger.info(f"starting {self.name} service")
            return server

    def pause(self):
        with self._lock:
            if self.state != RUNNING:
                return
            self._retire()
            self.state = PAUSED
            logger.info(f"{self.name} service paused")

    def resume(self) -> Optional[PortSwitchServer]:
        with self._lock:
            if self.state != PAUSED:
                return self.server
            try:
                server = self.start()
            except OSError as e:
                logger.error(f"{self.name} service failed to resume: {e}")
                return None
            logger.info(f"{self.name} service resumed")
            return server

    def stop(self):
        with self._lock:
            if self.state == STOPPED:
                return
            self._retire()
            self.state = STOPPED
            self._stopped.set()
            logger.info(f"{self.name} service stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called."""
        return self._stopped.wait(timeout)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for sessions of every listener this service has run."""
        drained = True
        for server in self.retired:
            drained = server.drain(timeout) and drained
        return drained

    def _retire(self):
        if self.server is None:
            return
        self.server.stop()
        if self._thread is not None:
            self._thread.join()
        self.retired.append(self.server)
        self.server = None
        self._thread = None

    def install_signal_handlers(self):
        """
        SIGINT / SIGTERM stop the service. SIGUSR1 pauses and SIGUSR2
        resumes where the platform has them. Main thread only.
        """
        def shutdown(signum=None, frame=None):
            logger.warning("Shutting down server...")
            threading.Thread(target=self.stop, daemon=True).start()

        def pause(signum=None, frame=None):
            threading.Thread(target=self.pause, daemon=True).start()

        def resume(signum=None, frame=None):
            threading.Thread(target=self.resume, daemon=True).start()

        signal.signal(signal.SIGINT, shutdown)
        signal.signal(signal.SIGTERM, shutdown)
        if hasattr(signal, 'SIGUSR1'):
            signal.signal(signal.SIGUSR1, pause)
            signal.signal(signal.SIGUSR2, resume)
