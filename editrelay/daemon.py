"""Process entry point: wire buffer, intake socket and forwarder together."""

import argparse
import logging
import signal
import sys
from typing import Optional, Sequence

from . import __version__
from .adapters import open_buffer
from .config import Config, load_config
from .errors import RelayError
from .forwarder import Forwarder
from .intake import IntakeServer
from .ratelimit import SlidingWindowLimiter
from .service import IntakeService

logger = logging.getLogger(__name__)


class Daemon:
    """Owns every long-lived component for one process."""

    def __init__(self, cfg: Config):
        self.cfg = cfg
        self.buffer = open_buffer(cfg.db_path)
        self.forwarder = Forwarder(
            self.buffer,
            server_url=cfg.server_url,
            api_token=cfg.api_token,
            interval=cfg.sync_interval_seconds,
            batch_size=cfg.sync_batch_size,
            metrics_only=cfg.metrics_only,
        )
        self.service = IntakeService(
            self.buffer,
            machine=cfg.machine,
            limiter=SlidingWindowLimiter(),
            sync_trigger=self.forwarder.sync_now,
        )
        self.server = IntakeServer(cfg.socket_path, self.service)

    def run(self) -> None:
        """Serve until ``stop`` is called; returns after the final flush."""
        logger.info("starting editrelay daemon")
        logger.info("  socket: %s", self.cfg.socket_path)
        logger.info("  database: %s", self.cfg.db_path)
        logger.info("  server: %s", self.cfg.server_url)
        logger.info("  sync interval: %d minutes", self.cfg.sync_interval_minutes)
        logger.info("  pending activities: %d", self.buffer.count_unconsumed())

        self.server.start()
        try:
            self.forwarder.run()
        finally:
            self.server.stop()
            self.buffer.close()
            logger.info("daemon stopped")

    def stop(self) -> None:
        logger.info("stopping daemon...")
        self.forwarder.stop()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="editrelay",
        description=(
            "Receive editor activity events over a Unix socket, buffer them "
            "locally, and forward them to a remote collector."
        ),
    )
    parser.add_argument("--config", help="path to a TOML config file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except RelayError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("failed to load config: %s", exc)
        return 1

    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        daemon = Daemon(cfg)
    except RelayError as exc:
        logger.error("failed to create daemon: %s", exc)
        return 1

    def _handle_signal(signum, _frame) -> None:
        logger.info("received %s, shutting down...", signal.Signals(signum).name)
        daemon.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        daemon.run()
    except OSError as exc:
        logger.error("daemon error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
