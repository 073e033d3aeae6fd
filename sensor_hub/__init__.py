import os
from dataclasses import dataclass
from flask import Flask
from .config import AppConfig, build_config
from .hub import Broadcaster, SubscriberRegistry
from .ingest import IngestionHandler
from .routes import create_blueprint
from .state import StateStore

@dataclass
class Hub:
    """The shared state of one process, passed to everything that touches it."""
    store: StateStore
    registry: SubscriberRegistry
    broadcaster: Broadcaster
    ingestor: IngestionHandler

def build_hub(cfg: AppConfig) -> Hub:
    store = StateStore(history_size=cfg.hub.history_size)
    registry = SubscriberRegistry(queue_size=cfg.hub.queue_size,
                                  max_subscribers=cfg.hub.max_subscribers)
    broadcaster = Broadcaster(store, registry)
    return Hub(store=store, registry=registry, broadcaster=broadcaster,
               ingestor=IngestionHandler(store, broadcaster))

def create_app(cfg: AppConfig | None = None, hub: Hub | None = None) -> Flask:
    cfg = cfg or build_config({})
    app = Flask(__name__)
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    web_dir = os.path.join(base_dir, "web")

    app.register_blueprint(create_blueprint(web_dir))

    if cfg.http.cors:
        @app.after_request
        def _cors(resp):
            resp.headers["Access-Control-Allow-Origin"] = "*"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
            return resp

    app.config["CFG"] = cfg
    app.config["HUB"] = hub or build_hub(cfg)
    return app
