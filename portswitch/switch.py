import argparse
import sys
from typing import Optional

import requests


class RouteSwitcher:
    """
    Sends control requests to a running portswitch listener.

    Attributes:
        base_url (str): http://host:port of the forwarding port
        timeout (float): Request timeout in seconds
    """

    def __init__(self, host: str = '127.0.0.1', port: int = 9000, timeout: float = 5.0):
        self.base_url = f"http://{host}:{port}/"
        self.timeout = timeout

    def switch(self, route_id: str) -> requests.Response:
        """
        Select `route_id` for the following data connections.

        Raises:
            requests.RequestException: the listener could not be reached
        """
        response = requests.get(
            self.base_url,
            params={'id': route_id},
            headers={'Connection': 'close'},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Switch the active route of a portswitch listener")
    parser.add_argument("id", help="Route id to select (empty string clears the selection)")
    parser.add_argument("-H", "--host", default="127.0.0.1", help="Listener address")
    parser.add_argument("-p", "--port", type=int, default=9000, help="Listener port")
    parser.add_argument("-t", "--timeout", type=float, default=5.0, help="Request timeout in seconds")
    args = parser.parse_args(argv)

    switcher = RouteSwitcher(args.host, args.port, args.timeout)
    try:
        response = switcher.switch(args.id)
    except requests.RequestException as e:
        print(f"❌ Failed to switch route: {e}", file=sys.stderr)
        return 1

    print(f"✅ Route switched to {args.id!r} ({response.status_code})")
    return 0


if __name__ == '__main__':
    sys.exit(main())
