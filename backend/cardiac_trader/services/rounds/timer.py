"""Countdown arithmetic for a round.

Remaining time is always derived from the server-issued start reference,
never carried over from a previous tick, so high-frequency polling does not
accumulate rounding drift.
"""

from dataclasses import dataclass


@dataclass
class RoundWindow:
    """Timing parameters for the active round.

    Owned by the lifecycle controller; only the controller bumps
    ``boost_seconds_accumulated``.
    """

    round_number: int
    server_start_time_ms: int
    nominal_duration_seconds: int
    boost_seconds_accumulated: int = 0

    @property
    def total_seconds(self) -> int:
        return self.nominal_duration_seconds + self.boost_seconds_accumulated

    def add_boost(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValueError(f"boost must be positive, got {seconds}")
        self.boost_seconds_accumulated += seconds

    def to_dict(self):
        return {
            'round_number': self.round_number,
            'server_start_time_ms': self.server_start_time_ms,
            'nominal_duration_seconds': self.nominal_duration_seconds,
            'boost_seconds_accumulated': self.boost_seconds_accumulated,
        }


def elapsed_seconds(window: RoundWindow, now_ms: int) -> int:
    # Clock skew (local clock behind the server start) counts as no time elapsed
    return max(0, now_ms - window.server_start_time_ms) // 1000


def tick(window: RoundWindow, now_ms: int) -> int:
    """Return whole seconds left in ``window`` at ``now_ms``, never negative."""
    return max(0, window.total_seconds - elapsed_seconds(window, now_ms))


def format_remaining(seconds: int) -> str:
    mins = int(seconds) // 60
    secs = int(seconds) % 60
    return f"{mins}:{secs:02}"


def seconds_until_deadline(window: RoundWindow, now_ms: int) -> float:
    """Real seconds from ``now_ms`` until ``window`` closes; negative once past it.

    Unlike :func:`tick` this is not clamped, so a local clock running behind
    the server start yields the full real wait.
    """
    deadline_ms = window.server_start_time_ms + window.total_seconds * 1000
    return (deadline_ms - now_ms) / 1000
