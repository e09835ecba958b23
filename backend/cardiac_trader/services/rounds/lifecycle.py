"""Round lifecycle controller.

One controller per game session. It owns the active :class:`RoundWindow`,
drives the countdown through an injected scheduler, settles the round with
the game service exactly once per window, and sequences
result -> (summary) -> idle.

State pipeline::

    idle -> round_active -> completing -> result_shown -> idle
                                                       -> summary_shown -> idle

Observers receive notices through ``notify(event, payload)``:
``round_started``, ``time_update``, ``round_completing``, ``round_result``,
``game_summary``, ``round_idle``, ``round_error`` and, while the session is
open and a refresh interval is set, ``portfolio_update``.

Expiry is two-step. The first tick that sees zero remaining time arms a
completion and schedules its dispatch; the dispatch moves the round to
``completing`` and calls the service. A boost landing in between cancels the
armed completion and the round keeps running. Once dispatched, the round is
settled no matter what boosts arrive afterwards.
"""

import logging
import threading
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from cardiac_trader.errors import BackendError, InvalidLifecycleTransition
from ..dto import GameSummary, Portfolio, RoundResult, RoundStartInfo
from .clock import SystemClock
from .timer import RoundWindow, format_remaining, seconds_until_deadline, tick as remaining_seconds

logger = logging.getLogger(__name__)

FALLBACK_GRACE_SEC = 2.0

Notify = Callable[[str, Dict[str, Any]], None]


class RoundState(str, Enum):
    IDLE = 'idle'
    ROUND_ACTIVE = 'round_active'
    COMPLETING = 'completing'
    RESULT_SHOWN = 'result_shown'
    SUMMARY_SHOWN = 'summary_shown'


def _ignore(event: str, payload: Dict[str, Any]) -> None:
    return None


class RoundController:
    def __init__(self, session_id: str, gateway, scheduler, clock=None,
                 notify: Optional[Notify] = None, tick_interval: float = 0.1,
                 fallback_grace: float = FALLBACK_GRACE_SEC,
                 on_session_closed: Optional[Callable[[str], None]] = None):
        self.session_id = session_id
        self.gateway = gateway
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.notify = notify or _ignore
        self.tick_interval = tick_interval
        self.fallback_grace = fallback_grace
        self.on_session_closed = on_session_closed

        self.state = RoundState.IDLE
        self.window: Optional[RoundWindow] = None
        self.result: Optional[RoundResult] = None
        self.summary: Optional[GameSummary] = None
        self.portfolio: Optional[Portfolio] = None
        self.last_error: Optional[Dict[str, Any]] = None
        self.session_open = True

        # Bumped whenever a window is created or dropped; stale callbacks compare against it
        self._generation = 0
        # Bumped when a boost cancels an armed completion
        self._expiry_seq = 0
        self._expiry_pending = False
        self._completion_dispatched = False
        self._completion_in_flight = False
        self._summary_pending = False
        self._ticker = None
        self._fallback = None
        self._portfolio_task = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ start
    def start_round(self) -> RoundWindow:
        """Ask the game service for the next round and start counting it down."""
        with self._lock:
            self._ensure_can_start()
        info = self.gateway.start_round(self.session_id)
        return self.begin_round(info)

    def begin_round(self, info: RoundStartInfo) -> RoundWindow:
        events = []
        with self._lock:
            self._ensure_can_start()
            if self.window is not None:
                logger.info(
                    f"[round-replace] session={self.session_id} round={self.window.round_number} "
                    f"-> {info.round_number}"
                )
            self._cancel_timers()
            self._generation += 1
            self._expiry_pending = False
            self._completion_dispatched = False
            self._completion_in_flight = False
            self.last_error = None
            self.window = RoundWindow(
                round_number=info.round_number,
                server_start_time_ms=info.server_start_time_ms,
                nominal_duration_seconds=info.duration_seconds,
            )
            self.state = RoundState.ROUND_ACTIVE
            remaining = remaining_seconds(self.window, self.clock.now())
            self._ticker = self.scheduler.call_every(
                self.tick_interval, self.tick, name=f"tick:{self.session_id}:{info.round_number}"
            )
            self._arm_fallback()
            logger.info(
                f"[round-start] session={self.session_id} round={info.round_number} "
                f"duration={info.duration_seconds}s start={info.server_start_time_ms} remaining={remaining}s"
            )
            events.append(('round_started', {
                'round_number': info.round_number,
                'duration_seconds': info.duration_seconds,
                'server_start_time_ms': info.server_start_time_ms,
                'available_stocks': [s.to_dict() for s in info.available_stocks],
            }))
            window = self.window
        self._emit(events)
        self.tick()
        return window

    def _ensure_can_start(self) -> None:
        if not self.session_open:
            raise InvalidLifecycleTransition('Game session has ended; start a new game')
        if self.state in (RoundState.RESULT_SHOWN, RoundState.SUMMARY_SHOWN):
            raise InvalidLifecycleTransition(f"Cannot start a round while {self.state.value}")

    # ------------------------------------------------------------------- tick
    def tick(self) -> Optional[int]:
        """Recompute and publish remaining time; arm completion on first zero.

        Returns ``None`` when there is no window to count down.
        """
        events = []
        dispatch = None
        with self._lock:
            if self.window is None or self.state not in (RoundState.ROUND_ACTIVE, RoundState.COMPLETING):
                return None
            remaining = remaining_seconds(self.window, self.clock.now())
            events.append(('time_update', self._time_payload(remaining)))
            if self.state is RoundState.ROUND_ACTIVE and remaining == 0 and not self._expiry_pending:
                self._expiry_pending = True
                dispatch = (self._generation, self._expiry_seq, False)
                logger.info(f"[expiry] session={self.session_id} round={self.window.round_number}")
        self._emit(events)
        if dispatch:
            self.scheduler.spawn(self._dispatch_completion, *dispatch)
        return remaining

    def _arm_fallback(self) -> None:
        if self._fallback is not None:
            self._fallback.cancel()
        # Measured against the real deadline; the displayed countdown clamps clock skew
        wait = max(0.0, seconds_until_deadline(self.window, self.clock.now()))
        self._fallback = self.scheduler.call_later(
            wait + self.fallback_grace,
            partial(self._fallback_fired, self._generation),
            name=f"fallback:{self.session_id}",
        )

    def _fallback_fired(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self.state is not RoundState.ROUND_ACTIVE:
                return
            if self._completion_dispatched:
                return
            logger.warning(
                f"[fallback-fire] session={self.session_id} round={self.window.round_number} "
                f"tick loop missed expiry; forcing completion"
            )
            self._expiry_pending = True
            dispatch = (self._generation, self._expiry_seq, True)
        self._dispatch_completion(*dispatch)

    # ------------------------------------------------------------- completion
    def _dispatch_completion(self, generation: int, expiry_seq: int, forced: bool) -> None:
        events = []
        with self._lock:
            if generation != self._generation or self.state is not RoundState.ROUND_ACTIVE:
                logger.info(f"[complete-skip] session={self.session_id} stale window")
                return
            if self._completion_dispatched:
                logger.warning(f"[complete-skip] session={self.session_id} completion already dispatched")
                return
            if not forced and expiry_seq != self._expiry_seq:
                logger.info(
                    f"[expiry-rearm] session={self.session_id} round={self.window.round_number} "
                    f"boost arrived before completion was dispatched"
                )
                return
            self._completion_dispatched = True
            self.state = RoundState.COMPLETING
            round_number = self.window.round_number
            events.append(('round_completing', {'round_number': round_number, 'forced': forced}))
        self._emit(events)
        self._call_complete(generation, round_number)

    def _call_complete(self, generation: int, round_number: int) -> None:
        with self._lock:
            self._completion_in_flight = True
        try:
            result = self.gateway.complete_round(self.session_id, round_number)
        except BackendError as exc:
            self._completion_failed(generation, round_number, exc)
            return
        except Exception as exc:
            logger.exception(f"[complete-error] session={self.session_id} round={round_number}")
            self._completion_failed(generation, round_number, BackendError(f"Round completion failed: {exc}"))
            raise

        events = []
        with self._lock:
            self._completion_in_flight = False
            if generation != self._generation or self.state is not RoundState.COMPLETING:
                logger.info(f"[complete-stale] session={self.session_id} round={round_number} result dropped")
                return
            self._cancel_timers()
            self.window = None
            self.result = result
            self.last_error = None
            self.state = RoundState.RESULT_SHOWN
            logger.info(
                f"[complete] session={self.session_id} round={round_number} "
                f"profit_loss={result.profit_loss} game_complete={result.game_complete}"
            )
            events.append(('round_result', result.to_dict()))
        self._emit(events)

    def _completion_failed(self, generation: int, round_number: int, exc: BackendError) -> None:
        events = []
        with self._lock:
            self._completion_in_flight = False
            if generation != self._generation or self.state is not RoundState.COMPLETING:
                return
            logger.warning(f"[complete-fail] session={self.session_id} round={round_number} error={exc.message}")
            self.last_error = {
                'stage': 'completion',
                'message': exc.message,
                'status_code': exc.status_code,
                'retryable': exc.retryable,
            }
            events.append(('round_error', dict(self.last_error, round_number=round_number)))
        self._emit(events)

    def retry_completion(self) -> bool:
        """Re-issue a failed completion call. No-op unless the last call failed."""
        with self._lock:
            if self.state is not RoundState.COMPLETING or self.last_error is None or self._completion_in_flight:
                logger.info(f"[retry-ignored] session={self.session_id} state={self.state.value}")
                return False
            self.last_error = None
            self._completion_in_flight = True
            generation = self._generation
            round_number = self.window.round_number
            logger.info(f"[retry] session={self.session_id} round={round_number}")
        self.scheduler.spawn(self._call_complete, generation, round_number)
        return True

    def abandon_round(self) -> bool:
        events = []
        with self._lock:
            if self.state not in (RoundState.ROUND_ACTIVE, RoundState.COMPLETING):
                return False
            round_number = self.window.round_number if self.window else None
            self._drop_window()
            self.state = RoundState.IDLE
            self.last_error = None
            logger.info(f"[round-abandon] session={self.session_id} round={round_number}")
            events.append(('round_idle', {'reason': 'abandoned', 'round_number': round_number}))
        self._emit(events)
        return True

    # ------------------------------------------------------------------ boost
    def extend_round(self, seconds: int) -> Optional[int]:
        """Add boost seconds to the active window and republish remaining time.

        Returns the new remaining time, or ``None`` when nothing was extended.
        """
        events = []
        with self._lock:
            if seconds <= 0:
                logger.info(f"[boost-ignored] session={self.session_id} seconds={seconds}")
                return None
            if self.state is RoundState.COMPLETING:
                logger.warning(
                    f"[boost-late] session={self.session_id} round={self.window.round_number} "
                    f"seconds={seconds} ignored, completion already dispatched"
                )
                return None
            if self.state is not RoundState.ROUND_ACTIVE or self.window is None:
                logger.info(f"[boost-ignored] session={self.session_id} no active round (state={self.state.value})")
                return None
            self.window.add_boost(seconds)
            remaining = remaining_seconds(self.window, self.clock.now())
            if self._expiry_pending and remaining > 0:
                self._expiry_pending = False
                self._expiry_seq += 1
            self._arm_fallback()
            logger.info(
                f"[boost] session={self.session_id} round={self.window.round_number} "
                f"added={seconds}s total_boost={self.window.boost_seconds_accumulated}s remaining={remaining}s"
            )
            events.append(('time_update', self._time_payload(remaining)))
        self._emit(events)
        return remaining

    # ---------------------------------------------------------- result/summary
    def acknowledge_result(self) -> bool:
        events = []
        fetch_summary = False
        with self._lock:
            if self.state is not RoundState.RESULT_SHOWN or self._summary_pending:
                return False
            result = self.result
            if result is not None and result.game_complete:
                self._summary_pending = True
                fetch_summary = True
            else:
                self.result = None
                self.state = RoundState.IDLE
                events.append(('round_idle', {
                    'reason': 'next_round',
                    'next_round_number': result.next_round_number if result else None,
                }))
        self._emit(events)
        if fetch_summary:
            self.scheduler.spawn(self._fetch_summary)
        return True

    def _fetch_summary(self) -> None:
        try:
            summary = self.gateway.fetch_game_summary(self.session_id)
        except BackendError as exc:
            self._summary_failed(exc)
            return
        events = []
        with self._lock:
            self._summary_pending = False
            if self.state is not RoundState.RESULT_SHOWN:
                return
            self.result = None
            self.summary = summary
            self.state = RoundState.SUMMARY_SHOWN
            logger.info(f"[summary] session={self.session_id} final_capital={summary.final_capital}")
            events.append(('game_summary', summary.to_dict()))
        self._emit(events)

    def _summary_failed(self, exc: BackendError) -> None:
        events = []
        with self._lock:
            self._summary_pending = False
            if self.state is not RoundState.RESULT_SHOWN:
                return
            logger.warning(f"[summary-fail] session={self.session_id} error={exc.message}")
            self.result = None
            self.last_error = {
                'stage': 'summary',
                'message': exc.message,
                'status_code': exc.status_code,
                'retryable': False,
            }
            events.append(('round_error', dict(self.last_error)))
            events.extend(self._close_session_locked())
        self._emit(events)
        self._session_closed()

    def acknowledge_summary(self) -> bool:
        events = []
        with self._lock:
            if self.state is not RoundState.SUMMARY_SHOWN:
                return False
            self.summary = None
            events.extend(self._close_session_locked())
        self._emit(events)
        self._session_closed()
        return True

    def _close_session_locked(self) -> List[Tuple[str, Dict[str, Any]]]:
        self._stop_portfolio_refresh()
        self.state = RoundState.IDLE
        self.session_open = False
        logger.info(f"[session-end] session={self.session_id}")
        return [('round_idle', {'reason': 'game_over', 'session_cleared': True})]

    def _session_closed(self) -> None:
        if self.on_session_closed is not None:
            self.on_session_closed(self.session_id)

    # -------------------------------------------------------------- portfolio
    def start_portfolio_refresh(self, interval: float) -> None:
        """Poll the portfolio every ``interval`` seconds while the session is open."""
        with self._lock:
            if self._portfolio_task is not None or not self.session_open:
                return
            self._portfolio_task = self.scheduler.call_every(
                interval, self.refresh_portfolio, name=f"portfolio:{self.session_id}"
            )

    def _stop_portfolio_refresh(self) -> None:
        if self._portfolio_task is not None:
            self._portfolio_task.cancel()
            self._portfolio_task = None

    def refresh_portfolio(self) -> Optional[Portfolio]:
        try:
            portfolio = self.gateway.get_portfolio(self.session_id)
        except BackendError as exc:
            # The next poll tries again
            logger.warning(f"[portfolio-fail] session={self.session_id} error={exc.message}")
            return None
        events = []
        with self._lock:
            if not self.session_open:
                return None
            self.portfolio = portfolio
            events.append(('portfolio_update', portfolio.to_dict()))
        self._emit(events)
        return portfolio

    # -------------------------------------------------------------- teardown
    def close(self) -> None:
        with self._lock:
            self._drop_window()
            self._stop_portfolio_refresh()

    def _drop_window(self) -> None:
        self._cancel_timers()
        self._generation += 1
        self.window = None
        self._expiry_pending = False

    def _cancel_timers(self) -> None:
        for handle in (self._ticker, self._fallback):
            if handle is not None:
                handle.cancel()
        self._ticker = None
        self._fallback = None

    # --------------------------------------------------------------- helpers
    def _time_payload(self, remaining: int) -> Dict[str, Any]:
        return {
            'round_number': self.window.round_number,
            'remaining_seconds': remaining,
            'display': format_remaining(remaining),
            'boost_seconds': self.window.boost_seconds_accumulated,
        }

    def _emit(self, events: List[Tuple[str, Dict[str, Any]]]) -> None:
        for event, payload in events:
            payload = dict(payload, session_id=self.session_id, state=self.state.value)
            try:
                self.notify(event, payload)
            except Exception:
                logger.exception(f"[notify-error] session={self.session_id} event={event}")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            remaining = remaining_seconds(self.window, self.clock.now()) if self.window else None
            return {
                'session_id': self.session_id,
                'state': self.state.value,
                'session_open': self.session_open,
                'round_number': self.window.round_number if self.window else None,
                'remaining_seconds': remaining,
                'display': format_remaining(remaining) if remaining is not None else None,
                'window': self.window.to_dict() if self.window else None,
                'result': self.result.to_dict() if self.result else None,
                'summary': self.summary.to_dict() if self.summary else None,
                'portfolio': self.portfolio.to_dict() if self.portfolio else None,
                'error': dict(self.last_error) if self.last_error else None,
                'completion_in_flight': self._completion_in_flight,
            }
