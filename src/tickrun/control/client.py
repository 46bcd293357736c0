"""WebSocket client for controlling tasks in a running tickrun host.

Every request carries a fresh request_id and resolves when the matching
``{"type": "result"}`` frame arrives. The server answers frames it cannot
parse with ``{"type": "error"}`` and no request_id, so such a frame fails
every outstanding request at once with ControlProtocolError instead of
leaving them to time out.

Only transport failures are retried. A timeout or a protocol rejection is
raised to the caller as-is, because the request may already have been
applied on the tick thread.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

import websockets
from websockets.exceptions import WebSocketException

from ..errors import ControlProtocolError


logger = logging.getLogger("tickrun.control")

Frame = Dict[str, Any]


class ControlClient:
    """Async request/response client for the control protocol."""

    def __init__(
        self,
        url: str,
        reconnect_interval_s: float = 0.5,
        max_retries: int = 2,
        request_timeout_s: float = 10.0,
        auto_reconnect: bool = True,
    ) -> None:
        self.url = url
        self.reconnect_interval_s = reconnect_interval_s
        self.max_retries = max_retries
        self.request_timeout_s = request_timeout_s
        self.auto_reconnect = auto_reconnect

        self._websocket: Any | None = None
        self._receiver_task: asyncio.Task[Any] | None = None
        self._pending: Dict[str, asyncio.Future[Frame]] = {}
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    # ── Connection ──────────────────────────────────────────────

    async def connect(self) -> None:
        async with self._lock:
            if self._websocket is not None:
                return
            self._websocket = await websockets.connect(self.url, compression=None)
            self._receiver_task = asyncio.create_task(self._receive_loop(self._websocket))
            logger.info("Connected to tickrun control server at %s", self.url)

    async def disconnect(self) -> None:
        async with self._lock:
            receiver_task, self._receiver_task = self._receiver_task, None
            websocket, self._websocket = self._websocket, None

        if receiver_task is not None:
            receiver_task.cancel()
            try:
                await receiver_task
            except asyncio.CancelledError:
                pass

        if websocket is not None:
            try:
                await websocket.close()
            except Exception as exc:
                logger.debug("Error while closing control connection: %s", exc)

        self._fail_pending(ConnectionError("Connection closed"))

    async def __aenter__(self) -> "ControlClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # ── Frame dispatch ──────────────────────────────────────────

    def _fail_pending(self, exc: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)

    def _dispatch(self, frame: Frame) -> None:
        frame_type = frame.get("type")
        if frame_type == "result":
            future = self._pending.pop(frame.get("request_id") or "", None)
            if future is not None and not future.done():
                future.set_result(frame)
            else:
                logger.debug("Dropping result for unknown request: %s", frame.get("request_id"))
        elif frame_type == "error":
            # Error frames cannot be correlated; fail everything in flight
            message = frame.get("message") or "Control server rejected the request"
            logger.warning("Control server error: %s", message)
            self._fail_pending(ControlProtocolError(message))
        else:
            logger.warning("Ignoring control frame of type %r", frame_type)

    async def _receive_loop(self, websocket: Any) -> None:
        try:
            async for raw_message in websocket:
                try:
                    frame = json.loads(raw_message)
                except ValueError:
                    logger.warning("Ignoring non-JSON control frame")
                    continue
                if isinstance(frame, dict):
                    self._dispatch(frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Control receive loop stopped: %s", exc)
        finally:
            if self._websocket is websocket:
                self._websocket = None
                self._receiver_task = None
            self._fail_pending(ConnectionError("Control connection lost"))

    # ── Requests ────────────────────────────────────────────────

    async def _send(self, message: Frame, timeout_s: float) -> Frame:
        if not self.connected:
            await self.connect()
        assert self._websocket is not None

        request_id = str(uuid4())
        future: asyncio.Future[Frame] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._websocket.send(json.dumps(dict(message, request_id=request_id)))
            return await asyncio.wait_for(future, timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"Control request timed out after {timeout_s:.1f}s") from exc
        finally:
            self._pending.pop(request_id, None)

    async def request(self, msg_type: str, timeout_s: Optional[float] = None, **fields: Any) -> Frame:
        """
        Send one control message and return the server's result frame.

        Fields whose value is None are left out of the message. Transport
        failures reconnect and retry up to max_retries times; timeouts and
        protocol errors are raised immediately.

        Raises:
            TimeoutError: No result arrived within the timeout
            ControlProtocolError: The server answered with an error frame
            ConnectionError: The server could not be reached
        """
        message = {"type": msg_type}
        message.update((key, value) for key, value in fields.items() if value is not None)
        timeout = timeout_s if timeout_s is not None else self.request_timeout_s
        attempts = self.max_retries + 1 if self.auto_reconnect else 1

        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send(message, timeout)
            except (TimeoutError, ControlProtocolError):
                raise
            except (OSError, WebSocketException) as exc:
                await self.disconnect()
                if attempt >= attempts:
                    raise ConnectionError(f"{msg_type} failed: {exc}") from exc
                logger.debug("%s attempt %d failed: %s", msg_type, attempt, exc)
                await asyncio.sleep(self.reconnect_interval_s)

    async def ping(self) -> Frame:
        return await self.request("ping")

    async def list_tasks(self, offset: int = 0, limit: Optional[int] = None) -> Frame:
        return await self.request("list_tasks", offset=offset, limit=limit)

    async def check_task_status(self, task_id: str) -> Frame:
        return await self.request("check_task_status", task_id=task_id)

    async def pause_task(self, task_id: str) -> Frame:
        return await self.request("pause_task", task_id=task_id)

    async def unpause_task(self, task_id: str) -> Frame:
        return await self.request("unpause_task", task_id=task_id)

    async def stop_task(self, task_id: str) -> Frame:
        return await self.request("stop_task", task_id=task_id)
