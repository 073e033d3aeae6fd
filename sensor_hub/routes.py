import json
from typing import Iterator
from flask import Blueprint, Response, current_app, jsonify, request, send_from_directory, stream_with_context
from .exceptions import MalformedReadingError, RegistryFullError
from .hub import Message, Subscriber, SubscriberRegistry


def format_sse(msg: Message) -> str:
    return f"event: {msg.event}\ndata: {json.dumps(msg.data, ensure_ascii=False)}\n\n"


def sse_events(sub: Subscriber, registry: SubscriberRegistry, keepalive: float) -> Iterator[str]:
    """Drain a joined subscriber's mailbox as SSE frames until it is disconnected."""
    try:
        while True:
            msg = sub.receive(timeout=keepalive)
            if msg is not None:
                yield format_sse(msg)
            elif sub.closed:
                return
            else:
                yield ": ping\n\n"
    finally:
        registry.leave(sub)


def create_blueprint(web_dir: str) -> Blueprint:
    bp = Blueprint("sensor_hub", __name__)

    def _hub():
        return current_app.config["HUB"]

    @bp.get("/health")
    def health():
        hub = _hub()
        return jsonify({
            "status": "ok",
            "subscribers": len(hub.registry),
            "max_subscribers": hub.registry.max_subscribers,
            **hub.store.stats(),
            **hub.broadcaster.stats(),
        }), 200

    @bp.post("/data")
    def ingest():
        payload = request.get_json(silent=True)
        try:
            _hub().ingestor.ingest(payload)
        except MalformedReadingError as e:
            print(f"[ingest] rejected: {e}")
            return jsonify({"status": "error", "error": str(e), "fields": e.fields}), 400
        return jsonify({"status": "success"}), 200

    @bp.get("/api/latest")
    def api_latest():
        return jsonify(_hub().store.get_latest().model_dump(by_alias=True))

    @bp.get("/api/history")
    def api_history():
        return jsonify(_hub().store.view().history_dict())

    @bp.get("/api/stream")
    def api_stream():
        hub = _hub()
        keepalive = current_app.config["CFG"].hub.keepalive_seconds
        # each stream holds a server thread; the cap keeps threads free for ingestion
        try:
            sub = hub.registry.join()
        except RegistryFullError as e:
            print(f"[http] stream refused: {e}")
            return jsonify({"status": "error", "error": str(e)}), 503, {"Retry-After": "5"}
        resp = Response(stream_with_context(sse_events(sub, hub.registry, keepalive)),
                        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
                        mimetype="text/event-stream")
        # a stream closed before its first frame never enters the generator
        resp.call_on_close(lambda: hub.registry.leave(sub))
        return resp

    @bp.get("/")
    def index():
        return send_from_directory(web_dir, "index.html")

    return bp
