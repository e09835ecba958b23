import threading
from typing import Dict, Optional

from flask import has_app_context

from .clock import SystemClock
from .lifecycle import RoundController
from .scheduling import InlineScheduler, SocketIOScheduler


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


class RoundControllerRegistry:
    """Owns one :class:`RoundController` per active game session.

    Controllers publish their notices to the session's Socket.IO room. When a
    game ends the controller is dropped and the cached session row is removed.
    """

    def __init__(self, app, socketio, gateway, scheduler=None, clock=None):
        self.app = app
        self.socketio = socketio
        self.gateway = gateway
        if scheduler is None:
            scheduler = InlineScheduler() if app.config.get('TESTING') else SocketIOScheduler(socketio)
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self._controllers: Dict[str, RoundController] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[RoundController]:
        with self._lock:
            return self._controllers.get(session_id)

    def get_or_create(self, session_id: str) -> RoundController:
        with self._lock:
            controller = self._controllers.get(session_id)
            if controller is None:
                controller = self._build(session_id)
                self._controllers[session_id] = controller
            return controller

    def replace(self, session_id: str) -> RoundController:
        """Start over with a fresh controller, e.g. for a brand-new game."""
        with self._lock:
            old = self._controllers.pop(session_id, None)
            if old is not None:
                old.close()
            controller = self._build(session_id)
            self._controllers[session_id] = controller
            return controller

    def drop(self, session_id: str) -> None:
        with self._lock:
            controller = self._controllers.pop(session_id, None)
        if controller is not None:
            controller.close()

    def __len__(self):
        return len(self._controllers)

    def _build(self, session_id: str) -> RoundController:
        cfg = self.app.config
        controller = RoundController(
            session_id,
            gateway=self.gateway,
            scheduler=self.scheduler,
            clock=self.clock,
            notify=lambda event, payload: self._publish(session_id, event, payload),
            tick_interval=int(cfg.get('TICK_INTERVAL_MS', 100)) / 1000.0,
            fallback_grace=float(cfg.get('FALLBACK_GRACE_SEC', 2)),
            on_session_closed=self._session_closed,
        )
        refresh = float(cfg.get('PORTFOLIO_REFRESH_SEC', 5))
        if refresh > 0:
            controller.start_portfolio_refresh(refresh)
        return controller

    def _publish(self, session_id: str, event: str, payload) -> None:
        self.socketio.emit(event, payload, to=session_room(session_id), namespace='/ws')

    def _session_closed(self, session_id: str) -> None:
        from cardiac_trader.models import clear_cached_session
        # Background tasks run without an app context
        if has_app_context():
            clear_cached_session(session_id)
        else:
            with self.app.app_context():
                clear_cached_session(session_id)
        self.drop(session_id)
