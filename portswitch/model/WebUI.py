from datetime import datetime
from typing import Callable, Optional, Tuple

from flask import Flask, jsonify

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.Logger import get_logger
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.TrafficStats import TrafficStats, format_bytes
from portswitch.model.Core.header import VERSION

logger = get_logger('webui')


class WebUI:
    """
    Read-only status API. Routes are switched through the control
    protocol on the forwarding port, never here.
    """

    def __init__(self, stats: TrafficStats, registry: TargetRegistry, active_route: ActiveRoute,
                 host: str = '127.0.0.1', port: int = 8080,
                 state: Optional[Callable[[], str]] = None,
                 address: Optional[Callable[[], Optional[Tuple[str, int]]]] = None):
        self.stats = stats
        self.registry = registry
        self.active_route = active_route
        self.host = host
        self.port = port
        self.state = state or (lambda: "running")
        self.address = address or (lambda: None)
        self.app = self.create_app()

    def create_app(self) -> Flask:
        app = Flask(__name__)

        @app.route('/health')
        def health():
            return jsonify({
                'status': 'healthy',
                'state': self.state(),
                'version': VERSION,
                'timestamp': datetime.now().isoformat(),
            })

        @app.route('/stats')
        def stats():
            snap = self.stats.snapshot()
            snap['traffic_sent'] = format_bytes(snap['bytes_up'])
            snap['traffic_received'] = format_bytes(snap['bytes_down'])
            address = self.address()
            snap['listening'] = f"{address[0]}:{address[1]}" if address else None
            return jsonify(snap)

        @app.route('/routes')
        def routes():
            current = self.active_route.get()
            return jsonify({
                'current': current,
                'routes': [
                    {'id': t.id, 'host': t.host, 'port': t.port, 'active': t.id == current}
                    for t in self.registry
                ],
            })

        return app

    def start_server(self):
        logger.info(f"Web UI running on http://{self.host}:{self.port}")
        try:
            self.app.run(host=self.host, port=self.port, threaded=True, use_reloader=False)
        except OSError as e:
            logger.error(f"Failed to start Web UI server: {e}")
