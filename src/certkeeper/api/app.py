"""Metrics and health HTTP application.

``GET <metrics path>`` returns the collector in Prometheus text format,
``GET /livez`` is a minimal liveness probe and ``GET /healthz`` checks
that the object store is reachable.

:class:`MetricsServer` runs the app on a werkzeug server in a daemon
thread next to the operator.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from flask import Blueprint, Flask, current_app, jsonify, make_response
from werkzeug.serving import make_server

from certkeeper import __version__
from certkeeper.store.base import StoreError

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

    from certkeeper.config.settings import MetricsSettings
    from certkeeper.metrics.collector import MetricsCollector
    from certkeeper.store.base import ObjectStore

log = logging.getLogger(__name__)

metrics_bp = Blueprint("metrics", __name__)


@metrics_bp.route("", methods=["GET"])
def get_metrics() -> ResponseReturnValue:
    """Return metrics in Prometheus text exposition format."""
    collector = current_app.extensions.get("certkeeper.metrics")
    if collector is None:
        return "# No metrics available\n", 200, {"Content-Type": "text/plain"}

    response = make_response(collector.export())
    response.headers["Content-Type"] = "text/plain; version=0.0.4; charset=utf-8"
    return response


def _register_health_routes(app: Flask) -> None:
    """Register ``/livez`` and ``/healthz`` probes."""

    @app.route("/livez")
    def livez() -> ResponseReturnValue:
        return jsonify({"alive": True, "version": __version__}), 200

    @app.route("/healthz")
    def healthz() -> ResponseReturnValue:
        result: dict = {"status": "ok", "version": __version__}
        store = app.extensions.get("certkeeper.store")
        if store is not None:
            try:
                store.startup_check()
                result["store"] = "connected"
            except StoreError as exc:
                log.warning("Health check: store unreachable: %s", exc.detail)
                result["store"] = "disconnected"
                result["status"] = "degraded"
        status = 200 if result["status"] == "ok" else 503
        return jsonify(result), status


def create_app(
    metrics: MetricsCollector | None,
    *,
    store: ObjectStore | None = None,
    metrics_path: str = "/metrics",
) -> Flask:
    """Build the Flask application."""
    app = Flask("certkeeper")
    app.extensions["certkeeper.metrics"] = metrics
    app.extensions["certkeeper.store"] = store
    app.register_blueprint(metrics_bp, url_prefix=metrics_path)
    _register_health_routes(app)
    return app


class MetricsServer:
    """Serve :func:`create_app` from a background thread."""

    def __init__(
        self,
        settings: MetricsSettings,
        metrics: MetricsCollector,
        *,
        store: ObjectStore | None = None,
    ) -> None:
        self._settings = settings
        self._app = create_app(metrics, store=store, metrics_path=settings.path)
        self._server = None
        self._thread: threading.Thread | None = None

    @property
    def app(self) -> Flask:
        return self._app

    def start(self) -> None:
        """Bind and start serving.  Idempotent."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._server = make_server(
            self._settings.bind,
            self._settings.port,
            self._app,
            threaded=True,
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="certkeeper-metrics",
        )
        self._thread.start()
        log.info(
            "Metrics server listening on %s:%d%s",
            self._settings.bind,
            self._settings.port,
            self._settings.path,
        )

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        log.info("Metrics server stopped")
