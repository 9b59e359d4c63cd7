from __future__ import annotations

import json
import logging
import socketserver
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, List, Mapping, Optional

from alert_oracle.errors import ResponseError
from alert_oracle.models import Notification
from alert_oracle.timestamps import parse_rfc3339

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _notification(raw: Any, received_at: int) -> Notification:
    if not isinstance(raw, Mapping):
        raise ResponseError(f"notification must be an object, got {type(raw).__name__}")
    labels = raw.get("labels")
    if not isinstance(labels, Mapping) or not labels:
        raise ResponseError(f"notification without labels: {raw!r}")
    starts_at = parse_rfc3339(raw.get("startsAt"))
    if starts_at is None:
        raise ResponseError(f"notification without startsAt: {raw!r}")
    annotations = raw.get("annotations") or {}
    if not isinstance(annotations, Mapping):
        raise ResponseError(f"notification annotations must be an object: {raw!r}")
    ends_at = parse_rfc3339(raw.get("endsAt"))
    status = raw.get("status")
    if status is not None:
        resolved = status == "resolved"
    else:
        # Engine-to-Alertmanager payloads carry no status; a past endsAt means resolved.
        resolved = ends_at is not None and ends_at <= received_at
    return Notification(
        labels={str(k): str(v) for k, v in labels.items()},
        annotations={str(k): str(v) for k, v in annotations.items()},
        starts_at=starts_at,
        ends_at=ends_at,
        resolved=resolved,
        received_at=received_at,
        generator_url=str(raw.get("generatorURL", "")),
    )


def parse_notifications(payload: Any, received_at: int) -> List[Notification]:
    """Accept an Alertmanager v2 alert list or a webhook envelope with ``alerts``."""

    if isinstance(payload, Mapping):
        alerts = payload.get("alerts")
    else:
        alerts = payload
    if not isinstance(alerts, list):
        raise ResponseError("notification payload is neither an alert list nor a webhook envelope")
    return [_notification(alert, received_at) for alert in alerts]


class _ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True


class NotificationReceiver:
    """HTTP endpoint that records notifications as they arrive."""

    def __init__(self, clock: Clock = wall_clock_ms) -> None:
        self._clock = clock
        self._notifications: List[Notification] = []
        self._lock = threading.Lock()
        self._server: Optional[_ThreadedHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self.url: Optional[str] = None

    def __enter__(self) -> "NotificationReceiver":
        handler = self._make_handler()
        self._server = _ThreadedHTTPServer(("127.0.0.1", 0), handler)
        host, port = self._server.server_address[:2]
        self.url = f"http://{host}:{port}/"
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def record(self, payload: Any) -> List[Notification]:
        notifications = parse_notifications(payload, self._clock())
        with self._lock:
            self._notifications.extend(notifications)
        return notifications

    def _make_handler(self) -> Callable[..., BaseHTTPRequestHandler]:
        receiver = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
                length = int(self.headers.get("Content-Length", "0"))
                body = self.rfile.read(length)
                try:
                    notifications = receiver.record(json.loads(body.decode("utf-8")))
                except (json.JSONDecodeError, ResponseError) as exc:
                    logger.warning("rejected notification payload: %s", exc)
                    self.send_response(HTTPStatus.BAD_REQUEST)
                    self.end_headers()
                    return
                logger.debug("received %d notifications", len(notifications))
                self.send_response(HTTPStatus.OK)
                self.end_headers()

            def log_message(self, format: str, *args) -> None:  # noqa: A003
                return

        return Handler

    def consume(self) -> List[Notification]:
        with self._lock:
            notifications = list(self._notifications)
            self._notifications.clear()
        return notifications
