"""
Control message handlers.

Every handler is async with the signature handler(ctx, data) -> dict and
returns an envelope built by tickrun.contracts. Operations that touch task
state run on the tick thread through TickScheduler.call_soon(), so the
runner flags are only ever mutated where the steps execute.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from ..contracts import build_error, build_ok
from ..errors import TaskNotFoundError, TaskStateError

logger = logging.getLogger("tickrun.control")


class ServerContext:
    """
    Dependencies shared by all handlers.

    Attributes:
        scheduler: Tick facility that executes marshalled calls
        manager: Task registry
        call_timeout_s: Max wait for a marshalled call to run
    """

    def __init__(self, scheduler, manager, call_timeout_s=5.0):
        # type: (Any, Any, float) -> None
        self.scheduler = scheduler
        self.manager = manager
        self.call_timeout_s = call_timeout_s


def require_field(data, field_name):
    # type: (Dict[str, Any], str) -> Tuple[Any, Optional[Dict[str, Any]]]
    """
    Validate that a required field exists and is non-empty.

    Returns:
        Tuple of (value, error_envelope); error_envelope is None on success
    """
    value = data.get(field_name)
    if not value:
        return None, build_error("missing_field", "{} required".format(field_name))
    return value, None


async def run_on_tick_thread(ctx, func, *args):
    # type: (ServerContext, Callable[..., Any], Any) -> Dict[str, Any]
    """Run func(*args) on the tick thread and wrap the outcome in an envelope."""
    future = ctx.scheduler.call_soon(func, *args)
    try:
        result = await asyncio.wait_for(asyncio.wrap_future(future), timeout=ctx.call_timeout_s)
    except asyncio.TimeoutError:
        return build_error(
            "timeout",
            "Tick thread did not run the request within {:.1f}s".format(ctx.call_timeout_s),
            {"operation": getattr(func, "__name__", "call")},
        )
    except TaskNotFoundError as e:
        return build_error("not_found", str(e), {"task_id": e.task_id})
    except TaskStateError as e:
        return build_error("invalid_state", str(e), {"task_name": e.task_name})
    except Exception as e:
        logger.error("Control operation failed: %s", e)
        return build_error("operation_error", str(e))
    return build_ok(result)


async def handle_ping(ctx, data):
    # type: (ServerContext, Dict[str, Any]) -> Dict[str, Any]
    return build_ok({
        "pong": True,
        "tick_count": ctx.scheduler.tick_count,
        "active_steps": ctx.scheduler.active_count,
    })


async def handle_list_tasks(ctx, data):
    # type: (ServerContext, Dict[str, Any]) -> Dict[str, Any]
    try:
        offset = int(data.get("offset") or 0)
        limit = data.get("limit")
        limit = int(limit) if limit else None
    except (TypeError, ValueError):
        return build_error("invalid_field", "offset and limit must be integers")
    return await run_on_tick_thread(ctx, ctx.manager.list_all_tasks, offset, limit)


async def handle_check_task_status(ctx, data):
    # type: (ServerContext, Dict[str, Any]) -> Dict[str, Any]
    task_id, error = require_field(data, "task_id")
    if error:
        return error
    return await run_on_tick_thread(ctx, ctx.manager.get_task_status, task_id)


async def handle_pause_task(ctx, data):
    # type: (ServerContext, Dict[str, Any]) -> Dict[str, Any]
    task_id, error = require_field(data, "task_id")
    if error:
        return error
    return await run_on_tick_thread(ctx, ctx.manager.pause_task, task_id)


async def handle_unpause_task(ctx, data):
    # type: (ServerContext, Dict[str, Any]) -> Dict[str, Any]
    task_id, error = require_field(data, "task_id")
    if error:
        return error
    return await run_on_tick_thread(ctx, ctx.manager.unpause_task, task_id)


async def handle_stop_task(ctx, data):
    # type: (ServerContext, Dict[str, Any]) -> Dict[str, Any]
    task_id, error = require_field(data, "task_id")
    if error:
        return error
    return await run_on_tick_thread(ctx, ctx.manager.stop_task, task_id)
