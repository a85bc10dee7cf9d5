"""
PortSwitch
Description: Single-port TCP relay whose forwarding target is switched at
             run time by plain HTTP requests sent to the same port.
"""

import argparse
import logging
import sys
import threading
from typing import Optional

from rich.live import Live

from portswitch.model.Core.ActiveRoute import ActiveRoute
from portswitch.model.Core.Config import config_path, load_config
from portswitch.model.Core.Logger import DequeHandler, setup_logging
from portswitch.model.Core.RoutingEngine import TargetRegistry
from portswitch.model.Core.header import VERSION, ConfigError
from portswitch.model.Dashboard import build_dashboard
from portswitch.model.ServiceControl import ServiceController
from portswitch.model.WebUI import WebUI


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="portswitch", description="Simple port forwarding")
    parser.add_argument("-c", "--config", help="Config file (default: $FILE_CONFIG or ./config.json)")
    parser.add_argument("-n", "--name", default="Simple Port Forwarding", help="Service name")
    parser.add_argument("-v", "--version", action='store_true', help="Show version information")
    parser.add_argument("-d", "--dashboard", action='store_true', help="Show the live dashboard")
    parser.add_argument("-w", "--webui", type=int, metavar="PORT", help="Serve the status API on PORT")
    parser.add_argument("--log-dir", help="Directory for rotated log files (overrides logDir)")
    parser.add_argument("--drain-timeout", type=float, default=10.0,
                        help="Seconds to wait for open sessions on shutdown")
    return parser


def main(argv: Optional[list] = None) -> int:
    args = create_parser().parse_args(argv)

    if args.version:
        print(f"v{VERSION}")
        return 0

    try:
        config = load_config(config_path(args.config))
    except ConfigError as e:
        setup_logging(log_dir=args.log_dir).error(f"failed to load config: {e}")
        return 1

    logger = setup_logging(log_dir=args.log_dir or config.log_dir, console=not args.dashboard)
    recent_logs = DequeHandler(maxlen=10)
    recent_logs.setLevel(logging.INFO)
    logger.addHandler(recent_logs)

    registry = TargetRegistry(config.remote_hosts)
    active_route = ActiveRoute(lifetime=config.life_time_id)
    controller = ServiceController(config, registry, active_route, name=args.name)

    try:
        controller.start()
    except OSError as e:
        logger.error(f"Error starting server on {config.bind_host}:{config.local_port}: {e}")
        active_route.close()
        return 1

    def current_address():
        server = controller.server
        return server.address if server else None

    admin_port = args.webui or config.admin_port
    if admin_port:
        web_ui = WebUI(controller.stats, registry, active_route, port=admin_port,
                       state=lambda: controller.state, address=current_address)
        threading.Thread(target=web_ui.start_server, daemon=True).start()

    controller.install_signal_handlers()

    if args.dashboard:
        def render():
            return build_dashboard(args.name, controller.stats, registry, active_route,
                                   current_address(), recent_logs.recent(), controller.state)

        with Live(render(), refresh_per_second=1, screen=True) as live:
            while not controller.wait(1):
                live.update(render())
    else:
        while not controller.wait(1):
            pass

    if not controller.drain(args.drain_timeout):
        logger.warning("Some sessions were still open after the drain timeout")
    active_route.close()
    logger.info(f"server ver. {VERSION} stopped")
    return 0


if __name__ == '__main__':
    sys.exit(main())
