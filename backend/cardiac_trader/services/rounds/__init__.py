"""Round timing and lifecycle.

Framework-free core: the pure countdown arithmetic, the per-session
lifecycle controller, and the adapter feeding time boosts into it. Flask
and Socket.IO only appear in the scheduler and the registry wiring.
"""

from .timer import RoundWindow, tick
from .lifecycle import RoundController, RoundState
from .boost import apply_time_boost

__all__ = [
    'RoundWindow',
    'tick',
    'RoundController',
    'RoundState',
    'apply_time_boost',
]
