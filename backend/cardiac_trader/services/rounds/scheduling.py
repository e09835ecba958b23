"""Background task scheduling for round timers.

``SocketIOScheduler`` runs everything as Socket.IO background tasks so it
cooperates with whichever async mode the server runs under.
``InlineScheduler`` is used in TESTING: spawned work runs immediately (or on
demand), periodic and delayed callbacks are only recorded and fire when a
test asks for them.
"""

import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class TaskHandle:
    def __init__(self, name: str = ''):
        self.name = name
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SocketIOScheduler:
    def __init__(self, socketio):
        self.socketio = socketio

    def spawn(self, fn: Callable, *args) -> None:
        self.socketio.start_background_task(fn, *args)

    def call_later(self, delay: float, fn: Callable, name: str = '') -> TaskHandle:
        handle = TaskHandle(name)

        def _runner():
            self.socketio.sleep(max(0.0, delay))
            if handle.cancelled:
                return
            try:
                fn()
            except Exception:
                logger.exception(f"[task-error] {name or fn}")

        self.socketio.start_background_task(_runner)
        return handle

    def call_every(self, interval: float, fn: Callable, name: str = '') -> TaskHandle:
        handle = TaskHandle(name)

        def _loop():
            while not handle.cancelled:
                self.socketio.sleep(interval)
                if handle.cancelled:
                    break
                try:
                    fn()
                except Exception:
                    logger.exception(f"[task-error] {name or fn}")

        self.socketio.start_background_task(_loop)
        return handle


class InlineScheduler:
    def __init__(self, run_spawned: bool = True):
        self.run_spawned = run_spawned
        self.pending: List[Tuple[Callable, tuple]] = []
        self.delayed: List[Tuple[float, Callable, TaskHandle]] = []
        self.periodic: List[Tuple[float, Callable, TaskHandle]] = []

    def spawn(self, fn: Callable, *args) -> None:
        if self.run_spawned:
            fn(*args)
        else:
            self.pending.append((fn, args))

    def run_pending(self) -> int:
        ran = 0
        while self.pending:
            fn, args = self.pending.pop(0)
            fn(*args)
            ran += 1
        return ran

    def call_later(self, delay: float, fn: Callable, name: str = '') -> TaskHandle:
        handle = TaskHandle(name)
        self.delayed.append((delay, fn, handle))
        return handle

    def call_every(self, interval: float, fn: Callable, name: str = '') -> TaskHandle:
        handle = TaskHandle(name)
        self.periodic.append((interval, fn, handle))
        return handle

    def active(self, kind: str = 'delayed') -> List[TaskHandle]:
        return [h for _, _, h in getattr(self, kind) if not h.cancelled]

    def fire_delayed(self) -> int:
        """Run every live delayed callback once, as if its delay elapsed."""
        due = [(fn, h) for _, fn, h in self.delayed if not h.cancelled]
        self.delayed = []
        for fn, handle in due:
            if not handle.cancelled:
                fn()
        return len(due)

    def fire_periodic(self, times: int = 1) -> None:
        for _ in range(times):
            for _, fn, handle in list(self.periodic):
                if not handle.cancelled:
                    fn()
