"""
Externally driven clock.

Components never read wall time. Each call reads ``now()`` once and derives
elapsed time for interest accrual and price staleness from it.
"""

from protocol_errors import InvalidArgumentError


class BlockClock:
    """Monotonic clock advanced by the caller, in whole seconds."""

    def __init__(self, start_time=0):
        if not isinstance(start_time, int) or start_time < 0:
            raise InvalidArgumentError("Start time must be a non-negative integer")
        self.current_time = start_time

    def now(self):
        """Returns the current timestamp."""
        return self.current_time

    def advance(self, seconds):
        """
        Moves the clock forward.

        Args:
            seconds: Number of seconds to advance

        Returns:
            The new timestamp
        """
        if not isinstance(seconds, int) or seconds < 0:
            raise InvalidArgumentError("Clock can only advance by a non-negative integer")
        self.current_time += seconds
        return self.current_time

    def set_time(self, timestamp):
        """Jumps to ``timestamp``, which may not be in the past."""
        if not isinstance(timestamp, int) or timestamp < self.current_time:
            raise InvalidArgumentError("Clock cannot move backwards")
        self.current_time = timestamp
        return self.current_time
