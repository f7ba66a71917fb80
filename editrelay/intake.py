"""Unix-socket listener speaking line-delimited JSON.

Protocol: one JSON object per line in each direction.

Request format:
    {"type": "activity" | "ping" | "sync", "data": {...}}

Response format:
    {"ok": true|false, "error": "...", "message": "..."}
"""

import logging
import os
import socketserver
import threading
from pathlib import Path
from typing import Optional, Union

from .service import IntakeService
from .wire import IntakeResponse

logger = logging.getLogger(__name__)

MAX_LINE_BYTES = 1024 * 1024


class IntakeHandler(socketserver.StreamRequestHandler):
    """Serve one client connection until it disconnects."""

    def handle(self) -> None:
        service: IntakeService = self.server.service
        while True:
            try:
                line = self.rfile.readline(MAX_LINE_BYTES + 1)
            except OSError as exc:
                logger.debug("intake: read failed: %s", exc)
                return
            if not line:
                return
            if not line.strip():
                continue

            if len(line) > MAX_LINE_BYTES:
                response = IntakeResponse(ok=False, error="request too large")
                # Discard the remainder of the oversized line.
                while line and not line.endswith(b"\n"):
                    line = self.rfile.readline(MAX_LINE_BYTES)
            else:
                try:
                    response = service.handle_line(line)
                except Exception:
                    logger.exception("intake: unhandled error while serving request")
                    response = IntakeResponse(ok=False, error="internal error")

            try:
                self.wfile.write(response.to_line())
                self.wfile.flush()
            except OSError as exc:
                logger.debug("intake: client went away: %s", exc)
                return


class ThreadingUnixServer(socketserver.ThreadingUnixStreamServer):
    """One thread per connection; idle clients never hold up shutdown."""

    daemon_threads = True

    def __init__(self, path: str, service: IntakeService):
        self.service = service
        super().__init__(path, IntakeHandler)


class IntakeServer:
    """Owns the socket file and the accept loop thread."""

    def __init__(self, path: Union[str, Path], service: IntakeService):
        self.path = Path(path).expanduser()
        self.service = service
        self._server: Optional[ThreadingUnixServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Bind the socket (owner-only access) and accept in a background thread.

        Raises ``OSError`` if the socket cannot be bound.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.unlink(missing_ok=True)

        self._server = ThreadingUnixServer(str(self.path), self.service)
        os.chmod(self.path, 0o600)

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="editrelay-intake",
            daemon=True,
        )
        self._thread.start()
        logger.info("intake: listening on %s", self.path)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join()
        self.path.unlink(missing_ok=True)
        self._server = None
        self._thread = None
        logger.info("intake: stopped")
