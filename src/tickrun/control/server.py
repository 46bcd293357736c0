"""
Control WebSocket Server - Remote task control for a running host.

Clients send JSON messages {"type": ..., "request_id": ..., ...}. Each
message is processed in its own asyncio task, and every response echoes the
request_id so clients can correlate concurrent requests.

The server runs on its own event loop (usually a background thread); task
state changes are marshalled onto the tick thread by the handlers.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import websockets

from ..contracts import build_error
from .handlers import (
    ServerContext,
    handle_check_task_status,
    handle_list_tasks,
    handle_pause_task,
    handle_ping,
    handle_stop_task,
    handle_unpause_task,
)

logger = logging.getLogger("tickrun.control")


class ControlServer:
    """WebSocket server exposing list/status/pause/unpause/stop for tasks."""

    def __init__(
        self,
        scheduler,  # type: Any
        manager,  # type: Any
        host="localhost",  # type: str
        port=9101,  # type: int
        ping_interval=20.0,  # type: Optional[float]
        ping_timeout=20.0,  # type: Optional[float]
        call_timeout_s=5.0,  # type: float
    ):
        # type: (...) -> None
        """
        Args:
            scheduler: TickScheduler that executes marshalled calls
            manager: TaskManager holding the controllable tasks
            host: Server host address
            port: Server port number (0 picks a free port)
            ping_interval: Seconds between WebSocket ping frames
            ping_timeout: Seconds to wait for pong before disconnect
            call_timeout_s: Max wait for the tick thread to run a request
        """
        self.host = host
        self.port = port
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.active_connections = set()  # type: set
        self.server = None  # type: Any

        self._context = ServerContext(scheduler, manager, call_timeout_s)
        self._handlers = {
            "ping": handle_ping,
            "list_tasks": handle_list_tasks,
            "check_task_status": handle_check_task_status,
            "pause_task": handle_pause_task,
            "unpause_task": handle_unpause_task,
            "stop_task": handle_stop_task,
        }

    @property
    def bound_port(self):
        # type: () -> Optional[int]
        """Actual listening port (useful when started with port=0)."""
        if self.server is None:
            return None
        for sock in self.server.sockets:
            return sock.getsockname()[1]
        return None

    async def _send_response(self, websocket, response, request_id="unknown"):
        # type: (Any, Dict[str, Any], str) -> bool
        """Send response; returns False if the connection is already closed."""
        try:
            await websocket.send(json.dumps(response))
            return True
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Cannot send result, connection closed: %s", request_id)
            return False

    async def _process_message(self, websocket, message):
        # type: (Any, str) -> None
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON: %s", e)
            await self._send_response(websocket, {
                "type": "error",
                "message": "Invalid JSON format",
                "error": str(e),
            })
            return

        if not isinstance(data, dict):
            await self._send_response(websocket, {
                "type": "error",
                "message": "Message must be a JSON object",
            })
            return

        msg_type = data.get("type")
        request_id = data.get("request_id", "unknown")

        try:
            handler = self._handlers.get(msg_type)
            if handler is None:
                logger.warning("Unknown message type: %s", msg_type)
                envelope = build_error(
                    "unsupported_type", "Unsupported message type: {}".format(msg_type)
                )
            else:
                envelope = await handler(self._context, data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Message handling error: %s", e)
            envelope = build_error("internal_error", "Internal server error: {}".format(e))

        response = {"type": "result", "request_id": request_id}
        response.update(envelope)
        await self._send_response(websocket, response, request_id)

    async def handle_client(self, websocket, path=None):
        # type: (Any, Optional[str]) -> None
        """Serve one connection; each message runs as an independent task."""
        self.active_connections.add(websocket)
        pending_tasks = set()  # type: set

        try:
            async for message in websocket:
                task = asyncio.ensure_future(self._process_message(websocket, message))
                pending_tasks.add(task)
                task.add_done_callback(pending_tasks.discard)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            for task in pending_tasks:
                task.cancel()
            if pending_tasks:
                await asyncio.gather(*pending_tasks, return_exceptions=True)
            self.active_connections.discard(websocket)

    async def start(self):
        # type: () -> None
        """Start listening (non-blocking)."""
        self.server = await websockets.serve(
            self.handle_client,
            self.host,
            self.port,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
        )
        logger.info("Control server listening on ws://%s:%s", self.host, self.bound_port)

    async def stop(self):
        # type: () -> None
        if self.server is None:
            return
        self.server.close()
        await self.server.wait_closed()
        self.server = None
        logger.info("Control server stopped")
