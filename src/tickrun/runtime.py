"""
Runtime - One-call host bootstrap.

Bundles a TickScheduler, a TaskManager and an optional control server. The
control server runs its own event loop on a background thread; ticks run on
whichever thread calls run() (or on the host's own loop calling
scheduler.tick()).

Usage (console host):
    import tickrun

    runtime = tickrun.Runtime()
    runtime.manager.spawn(my_job(), name="job")
    runtime.start_control_server()
    runtime.run()          # blocks; Ctrl+C to exit

Usage (host with its own frame loop):
    runtime = tickrun.Runtime()
    ...
    def on_frame():
        runtime.scheduler.tick()
"""

import asyncio
import logging
import os
import sys
import threading
from typing import Optional

from .config import RuntimeConfig, get_runtime_config
from .control.server import ControlServer
from .manager import TaskManager
from .scheduler import TickScheduler

logger = logging.getLogger("tickrun")

LOG_FORMAT = '[%(asctime)s] %(levelname)s - %(message)s'


def configure_logging(level="INFO", log_file=None):
    # type: (str, Optional[str]) -> logging.Logger
    """
    Route tickrun loggers to stdout (and optionally a file).

    Replaces handlers previously installed on the "tickrun" logger, so
    calling it twice does not duplicate output.
    """
    root = logging.getLogger("tickrun")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers = [logging.StreamHandler(sys.stdout)]  # type: list
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        if not os.path.exists(log_dir):
            os.makedirs(log_dir)
        handlers.append(logging.FileHandler(log_file, mode='a', encoding='utf-8'))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.propagate = False
    return root


class Runtime:
    """Scheduler, registry and control server for one host process."""

    def __init__(self, config=None, scheduler=None, manager=None):
        # type: (Optional[RuntimeConfig], Optional[TickScheduler], Optional[TaskManager]) -> None
        self.config = config or get_runtime_config()
        self.scheduler = scheduler or TickScheduler(self.config.max_calls_per_tick)
        self.manager = manager or TaskManager(self.scheduler)
        self.control_server = None  # type: Optional[ControlServer]
        self._server_loop = None  # type: Optional[asyncio.AbstractEventLoop]
        self._server_thread = None  # type: Optional[threading.Thread]
        self._stop_event = threading.Event()

    def start_control_server(self, host=None, port=None, timeout_s=5.0):
        # type: (Optional[str], Optional[int], float) -> ControlServer
        """
        Start the control server on a background thread.

        Returns once the server is listening.

        Raises:
            RuntimeError: The server failed to start (e.g. port in use)
        """
        if self.control_server is not None:
            return self.control_server

        server = ControlServer(
            self.scheduler, self.manager,
            host=host or self.config.control_host,
            port=self.config.control_port if port is None else port,
            ping_interval=self.config.ping_interval_s,
            ping_timeout=self.config.ping_timeout_s,
        )
        ready = threading.Event()
        errors = []  # type: list

        def run_server_background():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._server_loop = loop
            try:
                loop.run_until_complete(server.start())
            except Exception as e:
                errors.append(e)
                ready.set()
                loop.close()
                return
            ready.set()
            try:
                loop.run_forever()
            finally:
                loop.run_until_complete(server.stop())
                loop.close()

        thread = threading.Thread(target=run_server_background, name="tickrun-control", daemon=True)
        thread.start()

        if not ready.wait(timeout_s):
            raise RuntimeError("Control server did not start within {:.1f}s".format(timeout_s))
        if errors:
            raise RuntimeError("Control server failed to start: {}".format(errors[0])) from errors[0]

        self.control_server = server
        self._server_thread = thread
        return server

    def run(self, max_ticks=None):
        # type: (Optional[int]) -> int
        """Pump ticks on the calling thread until shutdown() or Ctrl+C."""
        logger.info(
            "Tick loop running (interval=%dms, max_calls_per_tick=%s)",
            self.config.tick_interval_ms, self.config.max_calls_per_tick
        )
        return self.scheduler.run_blocking(
            self.config.tick_interval_ms, stop_event=self._stop_event, max_ticks=max_ticks
        )

    def shutdown(self):
        # type: () -> None
        """Stop every task, end run(), and stop the control server."""
        self.manager.stop_all()
        self._stop_event.set()

        loop = self._server_loop
        if loop is not None and self._server_thread is not None:
            loop.call_soon_threadsafe(loop.stop)
            self._server_thread.join(timeout=5.0)
        self.control_server = None
        self._server_loop = None
        self._server_thread = None
        logger.info("Runtime shut down")


def start(config=None, block=True):
    # type: (Optional[RuntimeConfig], bool) -> Runtime
    """
    Configure logging, start the control server (if enabled) and, when
    block is True, pump ticks until interrupted.
    """
    config = config or get_runtime_config()
    configure_logging(config.log_level, config.log_file)

    runtime = Runtime(config)
    if config.control_enabled:
        runtime.start_control_server()

    if block:
        try:
            runtime.run()
        finally:
            runtime.shutdown()
    return runtime
