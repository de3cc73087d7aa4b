"""HTTP server exposing node price metrics, and the command that runs it."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

from .aws_api import AWSAPIError
from .aws_provider import AWSProvider, PricingError
from .collector import CONTENT_TYPE, Collector
from .kube import KubeClient, KubeError
from .repository import PricingUpdateError, Repository

VERSION = "0.2.1"
DEFAULT_PORT = 9523
READ_TIMEOUT = 60.0
UPDATE_INTERVAL = 3600.0

log = logging.getLogger(__name__)


def _make_handler(server: ExporterServer) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        timeout = READ_TIMEOUT
        server_version = f"eks-pricing-exporter/{VERSION}"

        def log_message(self, format: str, *args: Any) -> None:
            log.debug("%s - " + format, self.address_string(), *args)

        def _send(self, status: int, body: str, content_type: str = "text/plain; charset=utf-8") -> None:
            data = body.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            if length > 0:
                self.rfile.read(length)
            path = urlsplit(self.path).path
            if path == "/metrics":
                self._metrics()
            elif path == "/admin/pricing/update":
                self._update_pricing()
            else:
                self._send(404, "404 page not found\n")

        do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = _dispatch

        def _metrics(self) -> None:
            try:
                body = server.collector.render()
            except Exception as exc:
                log.error("getting cluster information failed: %s", exc)
                self._send(500, f"error collecting metrics: {exc}\n")
                return
            self._send(200, body, CONTENT_TYPE)

        def _update_pricing(self) -> None:
            if self.command != "POST":
                self._send(400, "Only POST method is allowed on this endpoint.\n")
                return
            log.info("updating pricing via /admin/pricing/update")
            try:
                server.repository.update_pricing()
            except Exception as exc:
                self._send(500, f"error updating pricing: {exc}")
                return
            self._send(200, "success\n")

    return Handler


class ExporterServer:
    """Serves /metrics and /admin/pricing/update and refreshes prices on a schedule."""

    def __init__(self, port, collector, repository, host="", update_interval=UPDATE_INTERVAL):
        self.collector = collector
        self.repository = repository
        self.update_interval = update_interval
        self._stop = threading.Event()
        self._serving = threading.Event()
        self._error: BaseException | None = None
        self._http = ThreadingHTTPServer((host, port), _make_handler(self))
        self._http.daemon_threads = True

    @property
    def server_address(self) -> tuple[str, int]:
        host, port = self._http.server_address[:2]
        return str(host), int(port)

    def _schedule(self) -> None:
        while not self._stop.wait(self.update_interval):
            log.info("updating pricing on schedule")
            try:
                self.repository.update_pricing()
            except Exception as exc:
                log.critical("could not update pricing repository: %s", exc)
                self._error = exc
                self._http.shutdown()
                return

    def serve_forever(self) -> None:
        """Serve until shut down; re-raises a failed scheduled price update."""
        self._stop.clear()
        threading.Thread(target=self._schedule, daemon=True).start()
        self._serving.set()
        try:
            self._http.serve_forever()
        finally:
            self._serving.clear()
            self._stop.set()
            self._http.server_close()
        if self._error is not None:
            raise self._error

    def shutdown(self) -> None:
        """Stop serving and stop the scheduled updates."""
        self._stop.set()
        if self._serving.is_set():
            self._http.shutdown()


def make_server(port: int, collector: Collector, repository: Repository) -> ExporterServer:
    """An exporter listening on every interface on ``port``."""
    return ExporterServer(port, collector, repository)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="eks-pricing-exporter", description="Export EKS node prices as metrics."
    )
    parser.add_argument(
        "--port", "-port", type=int, default=DEFAULT_PORT, help="port to run exporter on"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        client = KubeClient.in_cluster()
    except KubeError as exc:
        log.critical("loading kubernetes config: %s", exc)
        return 1
    try:
        provider = AWSProvider.from_environment()
    except (AWSAPIError, PricingError) as exc:
        log.critical("loading aws config: %s", exc)
        return 1
    try:
        provider.get_fargate_pricing()
    except (AWSAPIError, PricingError) as exc:
        log.critical("could not load AWS pricing data: %s", exc)
        return 1

    repository = Repository(provider)
    log.info("updating pricing...")
    try:
        repository.update_pricing()
    except PricingUpdateError as exc:
        log.critical("could not update pricing repository: %s", exc)
        return 1

    try:
        server = make_server(args.port, Collector(client, repository), repository)
    except OSError as exc:
        log.critical("error running server: %s", exc)
        return 1

    def on_signal(signum: int, frame: Any) -> None:
        log.info("Received SIGTERM. Terminating.")
        threading.Thread(target=server.shutdown, daemon=True).start()

    previous = {}
    for name in ("SIGHUP", "SIGQUIT", "SIGTERM"):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, on_signal)

    log.info("Starting eks-pricing-exporter/%s on :%d", VERSION, args.port)
    try:
        server.serve_forever()
    except PricingUpdateError:
        return 1
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    return 0