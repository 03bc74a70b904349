"""
Archive Server - Main entry point.

This module starts the archive batcher for every route under the data
directory. It also builds the Ingestor that shares the batcher's data
layout and WakeSignal; an event listener embedding the Server queues events
through server.ingestor, which wakes the batcher as soon as they land.
Events queued by another process are picked up on the wake timeout.

Usage:
    python -m archival.archive_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Graceful shutdown lets the in-flight pass finish its current upload
    - Only one batcher runs per data directory

How to change safely:
    - Test shutdown sequence thoroughly
    - Keep startup free of network calls; routes may be unreachable
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import json_log_formatter

from .batch import ArchiveBatcher, WakeSignal
from .config import ServerConfig
from .ingest import Ingestor
from .layout import DataLayout
from .upload import UploadEngine

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class Server:
    """Archive server orchestrator.

    Attributes:
        config: Server configuration
        wake: Wake signal shared by ingestion and the batcher
        ingestor: Queues events and wakes the batcher (set by start)
        batcher: Archive batcher

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Batcher is running
        >>> await server.stop()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        upload_engine: UploadEngine | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
            upload_engine: Optional upload engine (aiobotocore-backed if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self.upload_engine = upload_engine or UploadEngine(self.config.upload)
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.wake = WakeSignal()
        self.ingestor: Ingestor | None = None
        self.batcher: ArchiveBatcher | None = None
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start the server and wait for shutdown."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting archive server")
        self.config.log_config()

        try:
            data_dir = Path(self.config.storage.data_dir)
            data_dir.mkdir(parents=True, exist_ok=True)
            layout = DataLayout(data_dir)

            self.ingestor = Ingestor(layout, self.wake)
            self.batcher = ArchiveBatcher(
                layout=layout,
                wake=self.wake,
                upload_engine=self.upload_engine,
                config=self.config.batcher,
            )
            self._tasks.append(asyncio.create_task(self.batcher.start()))

            self._running = True
            logger.info("Archive server started successfully")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping archive server")

        if self.batcher:
            await self.batcher.stop()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._running = False
        logger.info("Archive server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
