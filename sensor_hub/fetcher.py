import requests
from typing import Any, Dict
from .config import DeviceConf

def _headers(cfg: DeviceConf) -> Dict[str, str]:
    return {
        "Accept": "application/json",
        "User-Agent": cfg.user_agent,
    }

def fetch_reading(cfg: DeviceConf, session: requests.Session) -> Dict[str, Any] | None:
    """GET the device's current reading; None when the device has nothing usable."""
    if not cfg.poll_url:
        return None
    try:
        r = session.get(cfg.poll_url, headers=_headers(cfg), timeout=cfg.http_timeout)
    except requests.RequestException as e:
        print(f"[poll] {cfg.poll_url} unreachable: {e}")
        return None
    if not r.ok:
        print(f"[poll] {cfg.poll_url} status={r.status_code}")
        return None
    try:
        payload = r.json() if r.content else None
    except ValueError as e:
        print(f"[poll] {cfg.poll_url} invalid json: {e}")
        return None
    if not isinstance(payload, dict):
        return None
    return payload
