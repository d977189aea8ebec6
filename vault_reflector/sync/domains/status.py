"""Status gauge for the last reflection attempt and its HTTP endpoint."""
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Lock, Thread
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

STATUS_METRIC = "vault_reflector_status"
STATUS_HELP = "Status of the last attempt to reflect secrets. 1 for success, 0 for failure"


class StatusGauge:
    """A single 0/1 value, written by the refresh loop and read by the metrics endpoint."""

    def __init__(self, name: str = STATUS_METRIC, help_text: str = STATUS_HELP):
        self.name = name
        self.help_text = help_text
        self._value = 0.0
        self._lock = Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def set_success(self) -> None:
        self.set(1)

    def set_failure(self) -> None:
        self.set(0)

    def export_prometheus(self) -> str:
        """Export the gauge in Prometheus text format."""
        lines = [
            f"# HELP {self.name} {self.help_text}",
            f"# TYPE {self.name} gauge",
            f"{self.name} {self.value}",
        ]
        return "\n".join(lines) + "\n"


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split ``host:port`` (host optional, as in ``:8080``).

    Raises:
        ValueError: If the port is missing or not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address: {address!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


class MetricsServer:
    """Serve the status gauge on ``/metrics`` from a background thread."""

    def __init__(self, gauge: StatusGauge, listen_address: str):
        self.gauge = gauge
        self.host, self.port = parse_listen_address(listen_address)
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[Thread] = None

    def _handler(self):
        gauge = self.gauge

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                if self.path == "/metrics":
                    body = gauge.export_prometheus().encode("utf-8")
                    content_type = "text/plain; version=0.0.4; charset=utf-8"
                elif self.path == "/healthz":
                    body = b"ok\n"
                    content_type = "text/plain; charset=utf-8"
                else:
                    self.send_error(404)
                    return
                self.send_response(200)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args) -> None:
                logger.debug(f"metrics request: {format % args}")

        return Handler

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self.host, self.port), self._handler())
        # port 0 binds an ephemeral port
        self.port = self._server.server_address[1]
        self._thread = Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"Serving metrics on {self.host}:{self.port}/metrics")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
