# entrypoint.py
import os
from sensor_hub.config import build_config, load_config
from sensor_hub import create_app
from sensor_hub.mqtt_worker import start_background
from waitress import serve

def main():
    path = os.getenv("SENSOR_HUB_CONFIG", "/app/config.yaml")
    cfg = load_config(path) if os.path.exists(path) else build_config({})
    app = create_app(cfg)
    start_background(cfg, app.config["HUB"].ingestor)
    print(f"[http] listening on {cfg.http.bind}:{cfg.http.port}")
    serve(app, listen=f"{cfg.http.bind}:{cfg.http.port}", threads=cfg.http.waitress_threads)

if __name__ == "__main__":
    main()
