from __future__ import annotations
import os, re
from dataclasses import dataclass
from typing import Any, Dict
import yaml
from .exceptions import ConfigError

ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)?(?::([^}]*))?\}")

def _interpolate_env(val: Any) -> Any:
    """Replace ${VAR[:default]} in strings recursively; other types unchanged."""
    if isinstance(val, str):
        def repl(m: re.Match) -> str:
            var = m.group(1) or ""
            default = m.group(2) or ""
            return os.getenv(var, default)
        return ENV_PATTERN.sub(repl, val)
    if isinstance(val, list):
        return [_interpolate_env(x) for x in val]
    if isinstance(val, dict):
        return {k: _interpolate_env(v) for k, v in val.items()}
    return val

def _as_bool(x: Any, default: bool = False) -> bool:
    if isinstance(x, bool): return x
    if x is None: return default
    s = str(x).strip().lower()
    return s in ("1", "true", "yes", "on")

@dataclass(frozen=True)
class HTTPConf:
    bind: str
    port: int
    waitress_threads: int
    cors: bool

@dataclass(frozen=True)
class HubConf:
    history_size: int
    queue_size: int
    keepalive_seconds: float
    max_subscribers: int

@dataclass(frozen=True)
class MQTTConf:
    enabled: bool
    host: str
    port: int
    username: str | None
    password: str | None
    topic: str
    qos: int
    client_id: str
    reconnect_min: int
    reconnect_max: int

@dataclass(frozen=True)
class DeviceConf:
    poll_url: str | None
    interval_seconds: float
    http_timeout: int
    user_agent: str

@dataclass(frozen=True)
class AppConfig:
    http: HTTPConf
    hub: HubConf
    mqtt: MQTTConf
    device: DeviceConf

def build_config(data: Dict[str, Any] | None) -> AppConfig:
    try:
        return _build(_interpolate_env(data or {}))
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"invalid config value: {e}") from e

def _max_subscribers(hub: Dict[str, Any], threads: int) -> int:
    # every open stream pins a waitress thread; keep some for ingestion and queries
    wanted = int(hub.get("max_subscribers", threads - 4))
    return max(1, min(wanted, threads - 1))

def _build(cfg: Dict[str, Any]) -> AppConfig:
    http = cfg.get("http", {}) or {}
    hub = cfg.get("hub", {}) or {}
    mqtt = cfg.get("mqtt", {}) or {}
    device = cfg.get("device", {}) or {}

    http_conf = HTTPConf(
        bind=str(http.get("bind", "0.0.0.0")),
        port=int(http.get("port", 3000)),
        waitress_threads=max(int(http.get("waitress_threads", 16)), 2),
        cors=_as_bool(http.get("cors"), True),
    )
    hub_conf = HubConf(
        history_size=max(int(hub.get("history_size", 50)), 1),
        queue_size=max(int(hub.get("queue_size", 100)), 2),
        keepalive_seconds=float(hub.get("keepalive_seconds", 30)),
        max_subscribers=_max_subscribers(hub, http_conf.waitress_threads),
    )
    mqtt_conf = MQTTConf(
        enabled=_as_bool(mqtt.get("enabled"), False),
        host=str(mqtt.get("host", "mqtt")),
        port=int(mqtt.get("port", 1883)),
        username=(mqtt.get("username") or None),
        password=(mqtt.get("password") or None),
        topic=str(mqtt.get("topic", "sensors/reading")),
        qos=int(mqtt.get("qos", 0)),
        client_id=str(mqtt.get("client_id", "sensor_hub")),
        reconnect_min=int(mqtt.get("reconnect_min", 2)),
        reconnect_max=int(mqtt.get("reconnect_max", 30)),
    )
    device_conf = DeviceConf(
        poll_url=(str(device.get("poll_url")).strip() or None) if device.get("poll_url") else None,
        interval_seconds=max(float(device.get("interval_seconds", 5)), 1.0),
        http_timeout=int(device.get("http_timeout", 5)),
        user_agent=str(device.get("user_agent", "sensor-hub/1.0")),
    )
    return AppConfig(http=http_conf, hub=hub_conf, mqtt=mqtt_conf, device=device_conf)

def load_config(path: str = "/app/config.yaml") -> AppConfig:
    if not os.path.isfile(path):
        # Fallback: .yml
        alt = os.path.splitext(path)[0] + ".yml"
        if os.path.isfile(alt):
            path = alt
        else:
            raise ConfigError(f"config not found at {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"error reading {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    return build_config(data)
