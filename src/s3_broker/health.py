"""Health check and metrics endpoints for the broker process."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[], bool]


def _always_ready() -> bool:
    return True


def create_combined_wsgi_app(readiness_check: ReadinessCheck | None = None) -> Any:
    """Create a WSGI app serving /healthz and /readyz and delegating the rest to prometheus.

    Args:
        readiness_check: Callable returning True when the broker can serve
            requests, e.g. ``AWSProvider.test_connectivity``

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()
    check = readiness_check or _always_ready

    def combined_app(environ: dict[str, Any], start_response: Any) -> Any:
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            response = Response('{"status":"ok"}', mimetype="application/json", status=200)
            return response(environ, start_response)
        if path == "/readyz":
            try:
                ready = check()
            except Exception as e:
                logger.warning(f"Readiness check failed: {e}")
                ready = False
            if ready:
                response = Response('{"status":"ready"}', mimetype="application/json", status=200)
            else:
                response = Response('{"status":"not ready"}', mimetype="application/json", status=503)
            return response(environ, start_response)
        return metrics_app(environ, start_response)

    return combined_app


def start_health_server(port: int, readiness_check: ReadinessCheck | None = None) -> Any:
    """Serve health and metrics endpoints from a background thread.

    Returns:
        The running werkzeug server; call ``shutdown()`` to stop it
    """
    server = make_server("", port, create_combined_wsgi_app(readiness_check), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
