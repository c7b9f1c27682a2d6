# app/services/side_effects.py
"""Policies for side effects that must never block the primary write.

SMS notifications, route calculation and socket broadcasts run through a
policy object instead of ad-hoc try/except blocks, so the behavior on
failure is a named, swappable choice.
"""
import logging
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SideEffectPolicy:
    def run(self, label: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        raise NotImplementedError


class SwallowAndLog(SideEffectPolicy):
    """Run the side effect; on failure log a warning and return None."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def run(self, label: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        try:
            return func(*args, **kwargs)
        except Exception:
            self.log.warning("Best-effort side effect failed: %s", label, exc_info=True)
            return None


class RetryThenLog(SwallowAndLog):
    """Retry a failing side effect a fixed number of times before giving up."""

    def __init__(self, attempts: int = 3, log: Optional[logging.Logger] = None):
        super().__init__(log)
        self.attempts = max(1, attempts)

    def run(self, label: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        for attempt in range(1, self.attempts + 1):
            try:
                return func(*args, **kwargs)
            except Exception:
                if attempt == self.attempts:
                    self.log.warning(
                        "Best-effort side effect failed after %d attempts: %s", attempt, label, exc_info=True
                    )
                else:
                    self.log.info("Retrying side effect %s (attempt %d failed)", label, attempt)
        return None
