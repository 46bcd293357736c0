"""
Task Manager - In-memory registry of tasks running on one scheduler.

Assigns ids, looks tasks up for remote control, and builds status
snapshots. Task state lives in memory only; nothing survives a restart.
"""

import logging
import threading
import uuid
from typing import Dict, List, Optional

from .contracts import Pagination, TaskInfo, TaskList
from .errors import TaskNotFoundError
from .producer import ProducerLike
from .scheduler import TickScheduler
from .task import TERMINAL_STATUSES, Task

# Module logger
logger = logging.getLogger("tickrun")


class TaskManager:
    """
    Registry for tasks created through spawn().

    Lookups are thread-safe. Control methods act on the task directly, so
    call them on the tick thread (or through TickScheduler.call_soon) when
    the host is multi-threaded.
    """

    def __init__(self, scheduler):
        # type: (TickScheduler) -> None
        self.scheduler = scheduler
        self.tasks = {}  # type: Dict[str, Task]
        self._lock = threading.Lock()
        logger.info("TaskManager initialized")

    # ── Task lifecycle ──────────────────────────────────────────

    def spawn(self, producer, name=None, description="", auto_start=True, task_id=None, fault_sink=None):
        # type: (ProducerLike, Optional[str], str, bool, Optional[str], object) -> Task
        """
        Create and register a task.

        Returns:
            Task: The new task; its task_id is unique within this manager
        """
        with self._lock:
            if task_id is None:
                task_id = uuid.uuid4().hex[:8]
                while task_id in self.tasks:
                    task_id = uuid.uuid4().hex[:8]
            elif task_id in self.tasks:
                raise ValueError("Task ID already registered: {}".format(task_id))
            task = Task(
                producer, self.scheduler, auto_start=False, name=name,
                description=description, fault_sink=fault_sink, task_id=task_id,
            )
            self.tasks[task_id] = task

        logger.info("Task registered: %s (id=%s)", task.name, task_id)
        if auto_start:
            task.start()
        return task

    def get(self, task_id):
        # type: (str) -> Optional[Task]
        with self._lock:
            return self.tasks.get(task_id)

    def require(self, task_id):
        # type: (str) -> Task
        """
        Raises:
            TaskNotFoundError: No task registered under task_id
        """
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def pause_task(self, task_id):
        # type: (str) -> TaskInfo
        task = self.require(task_id)
        task.pause()
        logger.info("Task paused: %s", task_id)
        return TaskInfo.from_task(task)

    def unpause_task(self, task_id):
        # type: (str) -> TaskInfo
        task = self.require(task_id)
        task.unpause()
        logger.info("Task unpaused: %s", task_id)
        return TaskInfo.from_task(task)

    def stop_task(self, task_id):
        # type: (str) -> TaskInfo
        """Stop a task. Stopping a finished task is a no-op."""
        task = self.require(task_id)
        task.stop()
        return TaskInfo.from_task(task)

    def stop_all(self):
        # type: () -> int
        """Stop every active task. Returns the number stopped."""
        stopped = 0
        for task in self._snapshot():
            if task.is_running and task.stop():
                stopped += 1
        if stopped:
            logger.info("Stopped %d task(s)", stopped)
        return stopped

    def clear_finished(self):
        # type: () -> int
        """Forget finished tasks. Returns count cleared."""
        with self._lock:
            done = [tid for tid, task in self.tasks.items() if task.status in TERMINAL_STATUSES]
            for tid in done:
                del self.tasks[tid]
        if done:
            logger.info("Cleared %d finished task(s)", len(done))
        return len(done)

    # ── Queries ─────────────────────────────────────────────────

    def has_running_tasks(self):
        # type: () -> bool
        return any(task.is_running for task in self._snapshot())

    def get_task_status(self, task_id):
        # type: (str) -> TaskInfo
        return TaskInfo.from_task(self.require(task_id))

    def list_all_tasks(self, offset=0, limit=None):
        # type: (int, Optional[int]) -> TaskList
        """List tracked tasks, newest first, with pagination."""
        offset = max(0, offset)
        ordered = self._snapshot()[::-1]

        total_count = len(ordered)
        end_idx = offset + limit if limit else total_count
        page = [TaskInfo.from_task(task) for task in ordered[offset:end_idx]]

        return TaskList(
            tasks=page,
            pagination=Pagination(
                total_count=total_count,
                displayed_count=len(page),
                offset=offset,
                limit=limit,
                has_more=end_idx < total_count,
            ),
        )

    def _snapshot(self):
        # type: () -> List[Task]
        with self._lock:
            return list(self.tasks.values())
