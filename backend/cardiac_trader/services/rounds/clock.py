import time


class SystemClock:
    """Wall clock in integer milliseconds since the epoch."""

    def now(self) -> int:
        return int(time.time() * 1000)
