import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from portswitch.model.Core.header import AppConfig, ConfigError, RouteTarget

CONFIG_ENV = "FILE_CONFIG"
DEFAULT_CONFIG_FILE = "config.json"


def config_path(explicit: Optional[str] = None) -> Path:
    """
    Resolve which configuration file to read.

    Args:
        explicit: Path given on the command line, wins over everything else

    Returns:
        Path: explicit path, else $FILE_CONFIG, else ./config.json
    """
    if explicit:
        return Path(explicit)
    from_env = os.environ.get(CONFIG_ENV, "")
    if from_env:
        return Path(from_env)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load and validate the JSON configuration.

    Args:
        path: Config file path (resolved with config_path() if None)

    Returns:
        AppConfig: validated configuration

    Raises:
        ConfigError: file missing, not JSON, or failing validation
    """
    file_path = Path(path) if path is not None else config_path()

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {file_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config file {file_path}: {e}") from e

    return parse_config(data)


def parse_config(data: Any) -> AppConfig:
    """Build an AppConfig out of an already decoded JSON document."""
    if not isinstance(data, dict):
        raise ConfigError("config root must be a JSON object")

    local_port = _int(data, 'localPort', required=True, low=0, high=65535)
    life_time_id = _int(data, 'lifeTimeId', default=0, low=0)
    remote_hosts = _remote_hosts(data.get('remoteHosts', []))

    bind_host = data.get('bindHost', '0.0.0.0')
    if not isinstance(bind_host, str) or not bind_host:
        raise ConfigError("bindHost must be a non-empty string")

    sniff_timeout = _float(data, 'sniffTimeout', default=2.0)
    dial_timeout = _float(data, 'dialTimeout', default=None)

    log_dir = data.get('logDir', 'logs')
    if not isinstance(log_dir, str) or not log_dir:
        raise ConfigError("logDir must be a non-empty string")

    admin_port = _int(data, 'adminPort', default=0, low=0, high=65535)

    return AppConfig(
        local_port=local_port,
        life_time_id=life_time_id,
        remote_hosts=remote_hosts,
        bind_host=bind_host,
        sniff_timeout=sniff_timeout,
        dial_timeout=dial_timeout,
        log_dir=log_dir,
        admin_port=admin_port,
    )


def _remote_hosts(raw: Any) -> List[RouteTarget]:
    if not isinstance(raw, list):
        raise ConfigError("remoteHosts must be a list")

    targets = []
    seen = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"remoteHosts[{index}] must be an object")

        route_id = entry.get('id')
        host = entry.get('host')
        if not isinstance(route_id, str):
            raise ConfigError(f"remoteHosts[{index}].id must be a string")
        if not isinstance(host, str) or not host:
            raise ConfigError(f"remoteHosts[{index}].host must be a non-empty string")
        port = _int(entry, 'port', required=True, low=1, high=65535, where=f"remoteHosts[{index}].")

        if route_id in seen:
            raise ConfigError(f"duplicate route id in remoteHosts: {route_id!r}")
        seen.add(route_id)
        targets.append(RouteTarget(id=route_id, host=host, port=port))

    return targets


def _int(data: Dict[str, Any], key: str, required: bool = False, default: int = 0,
         low: Optional[int] = None, high: Optional[int] = None, where: str = "") -> int:
    if key not in data:
        if required:
            raise ConfigError(f"{where}{key} is required")
        return default

    value = data[key]
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}{key} must be an integer")
    if low is not None and value < low:
        raise ConfigError(f"{where}{key} must be >= {low}")
    if high is not None and value > high:
        raise ConfigError(f"{where}{key} must be <= {high}")
    return value


def _float(data: Dict[str, Any], key: str, default: Optional[float]) -> Optional[float]:
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    if value < 0:
        raise ConfigError(f"{key} must be >= 0")
    return float(value)
