import json, os, time, threading
import requests
import paho.mqtt.client as mqtt
from .config import AppConfig
from .exceptions import MalformedReadingError
from .fetcher import fetch_reading
from .ingest import IngestionHandler

_started = False
_started_lock = threading.Lock()

def handle_payload(ingestor: IngestionHandler, raw: bytes, source: str) -> bool:
    """Decode one JSON reading and ingest it. Returns False if it was dropped."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        print(f"[{source}] undecodable payload dropped: {e}")
        return False
    try:
        data = json.loads(text.strip() or "null")
    except json.JSONDecodeError as e:
        print(f"[{source}] invalid json dropped: {e}")
        return False
    try:
        ingestor.ingest(data)
    except MalformedReadingError as e:
        print(f"[{source}] rejected: {e}")
        return False
    return True

def build_client(cfg: AppConfig, ingestor: IngestionHandler) -> mqtt.Client:
    client = mqtt.Client(client_id=cfg.mqtt.client_id, protocol=mqtt.MQTTv5,
                         callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
    if cfg.mqtt.username and cfg.mqtt.password:
        client.username_pw_set(cfg.mqtt.username, cfg.mqtt.password)
    client.user_data_set({"connected_once": False})
    client.reconnect_delay_set(min_delay=cfg.mqtt.reconnect_min, max_delay=cfg.mqtt.reconnect_max)

    def on_connect(client, userdata, flags, reason_code, properties):
        first = not userdata.get("connected_once", False); userdata["connected_once"] = True
        tag = "connect" if first else "reconnect"
        ok = getattr(reason_code, "is_success", lambda: reason_code == 0)()
        print(f"[mqtt] {tag} rc={reason_code} ok={ok}")
        client.subscribe(cfg.mqtt.topic, qos=cfg.mqtt.qos)

    def on_disconnect(client, userdata, disconnect_flags, reason_code, properties):
        print(f"[mqtt] disconnected rc={reason_code}")

    def on_message(client, userdata, msg):
        try:
            handle_payload(ingestor, msg.payload, "mqtt")
        except Exception as e:
            print(f"[mqtt] on_message error: {e}")

    client.on_connect = on_connect; client.on_disconnect = on_disconnect; client.on_message = on_message
    return client

def start_background(cfg: AppConfig, ingestor: IngestionHandler) -> None:
    global _started
    with _started_lock:
        if _started: print("[bg] already started; skipping"); return
        if not cfg.mqtt.enabled and not cfg.device.poll_url:
            print("[bg] no mqtt or device polling configured; http ingestion only"); return
        t = threading.Thread(target=_run, name="ingest_worker", args=(cfg, ingestor), daemon=True)
        t.start(); _started = True; print(f"[bg] ingest thread started (pid={os.getpid()})")

def poll_once(cfg: AppConfig, ingestor: IngestionHandler, session: requests.Session) -> bool:
    data = fetch_reading(cfg.device, session)
    if data is None:
        return False
    try:
        ingestor.ingest(data)
    except MalformedReadingError as e:
        print(f"[poll] rejected: {e}")
        return False
    return True

def _run(cfg: AppConfig, ingestor: IngestionHandler) -> None:
    if cfg.mqtt.enabled:
        client = build_client(cfg, ingestor)
        try:
            client.connect(cfg.mqtt.host, cfg.mqtt.port, keepalive=60)
        except Exception as e:
            print(f"[mqtt] initial connect failed: {e}")
        # loop_start keeps retrying with the reconnect delay set above
        client.loop_start()

    if not cfg.device.poll_url:
        return

    session = requests.Session()
    while True:
        try:
            poll_once(cfg, ingestor, session)
        except Exception as e:
            print(f"[poll] loop error: {e}")
        time.sleep(cfg.device.interval_seconds)
