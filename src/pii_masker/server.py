"""HTTP sidecar server for pii-masker.

A stdlib HTTP server on localhost so a chat backend written in another
language can ask for mask ranges without embedding Python.

Endpoints:
    POST /detect-pii   — {"text": "...", "mode": "semantic" | "pattern"}
    GET  /health       — Health check

Responses are snapshot JSON: {"ranges": [{"start", "end", "category"}], ...}
"""

from __future__ import annotations
import asyncio
import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from .config import create_masker, load_from_env, load_from_yaml
from .masker import Masker
from .types import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_PORT = int(os.environ.get("PII_MASKER_PORT", "18792"))


class LoopThread:
    """One event loop on a daemon thread, shared by all request threads.

    The extractor's async client binds its connection pool to the loop
    it first ran on, so every semantic pass must run on the same loop.
    """

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name="pii-masker-loop", daemon=True)
        self._thread.start()

    def run(self, coro: Any) -> Any:
        """Run a coroutine on the shared loop and block for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result()

    def close(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()


class PIIHandler(BaseHTTPRequestHandler):
    """HTTP request handler; ``masker`` and ``runner`` are bound by ``make_handler``."""

    masker: Masker
    runner: LoopThread

    def _read_json(self) -> dict[str, Any]:
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length).decode("utf-8")
        return json.loads(body) if body else {}

    def _respond(self, status: int, data: Any) -> None:
        body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self) -> None:
        if self.path == "/health":
            self._respond(200, {
                "status": "ok",
                "extractor": type(self.masker.extractor).__name__ if self.masker.extractor else None,
            })
        else:
            self._respond(404, {"error": "not found"})

    def do_POST(self) -> None:
        if self.path != "/detect-pii":
            self._respond(404, {"error": "not found"})
            return
        try:
            body = self._read_json()
        except (ValueError, UnicodeDecodeError):
            self._respond(400, {"error": "invalid JSON body"})
            return

        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            self._respond(400, {"error": "text is required"})
            return
        mode = body.get("mode", "semantic")
        if mode not in ("semantic", "pattern"):
            self._respond(400, {"error": f"unknown mode: {mode}"})
            return

        try:
            if mode == "pattern":
                ranges = self.masker.quick_scan(text)
            else:
                ranges = self.runner.run(self.masker.scan(text))
        except Exception as e:
            logger.exception("detection failed")
            self._respond(500, {"error": str(e)})
            return

        snapshot = Snapshot(tuple(ranges), len(text), final=mode == "semantic")
        self._respond(200, snapshot.to_dict(text, offset_encoding=self.masker.config.offset_encoding))


def make_handler(masker: Masker, runner: LoopThread | None = None) -> type[PIIHandler]:
    """Bind a masker and its event loop to a handler class for ``ThreadingHTTPServer``."""
    return type("BoundPIIHandler", (PIIHandler,), {
        "masker": masker,
        "runner": runner or LoopThread(),
    })


def serve(masker: Masker, port: int = DEFAULT_PORT, host: str = "127.0.0.1") -> None:
    """Start the pii-masker HTTP sidecar."""
    handler = make_handler(masker)
    server = ThreadingHTTPServer((host, port), handler)
    print(f"pii-masker sidecar listening on http://{host}:{port}")
    print(f"  extractor: {masker.config.extractor}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        server.server_close()
        handler.runner.close()


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="pii-masker HTTP sidecar")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--config", help="YAML config file")
    args = parser.parse_args()
    logging.basicConfig(level=os.environ.get("PII_MASKER_LOG_LEVEL", "INFO"))
    config = load_from_yaml(args.config) if args.config else load_from_env()
    serve(create_masker(config), port=args.port)
