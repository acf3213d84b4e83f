"""
Retry backoff policies for scheduled jobs.

The worker only asks a policy for the delay before the next attempt, so
policies can be swapped without touching the job state machine.
"""

from datetime import timedelta


class BackoffPolicy:
    """Delay before the next attempt, given the attempts made so far."""

    def delay(self, attempts: int) -> timedelta:
        raise NotImplementedError


class FixedBackoff(BackoffPolicy):
    """Same delay after every failure."""

    def __init__(self, seconds: float = 60):
        if seconds < 0:
            raise ValueError("backoff seconds must not be negative")
        self.seconds = seconds

    def delay(self, attempts: int) -> timedelta:
        return timedelta(seconds=self.seconds)

    def __repr__(self) -> str:
        return f"FixedBackoff(seconds={self.seconds})"


class ExponentialBackoff(BackoffPolicy):
    """base * 2^(attempts-1), capped at max_seconds."""

    def __init__(self, base_seconds: float = 60, max_seconds: float = 3600):
        if base_seconds < 0 or max_seconds < 0:
            raise ValueError("backoff seconds must not be negative")
        self.base_seconds = base_seconds
        self.max_seconds = max_seconds

    def delay(self, attempts: int) -> timedelta:
        exponent = max(0, attempts - 1)
        # Cap the exponent so huge attempt counts don't overflow
        seconds = self.base_seconds * (2 ** min(exponent, 32))
        return timedelta(seconds=min(seconds, self.max_seconds))

    def __repr__(self) -> str:
        return f"ExponentialBackoff(base_seconds={self.base_seconds}, max_seconds={self.max_seconds})"
