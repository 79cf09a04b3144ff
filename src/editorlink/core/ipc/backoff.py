"""Reconnect delay policy for dropped editor links."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from editorlink.core.config import ReconnectConfig

_MAX_EXPONENT = 32


@dataclass(frozen=True)
class ReconnectPolicy:
    """Delay schedule between reconnect attempts.

    ``fixed`` waits ``initial_delay`` before every attempt. ``exponential``
    starts at ``initial_delay`` and multiplies by ``multiplier`` after each
    failed attempt, never exceeding ``max_delay``.
    """

    strategy: str = "exponential"
    initial_delay: float = 5.0
    max_delay: float = 60.0
    multiplier: float = 2.0

    @classmethod
    def from_config(cls, config: ReconnectConfig) -> ReconnectPolicy:
        return cls(
            strategy=config.strategy,
            initial_delay=config.initial_delay_seconds,
            max_delay=config.max_delay_seconds,
            multiplier=config.multiplier,
        )

    def delay(self, attempt: int) -> float:
        """Return the delay before reconnect *attempt* (zero-based)."""
        if self.strategy == "fixed" or attempt <= 0:
            return self.initial_delay
        delay = self.initial_delay * self.multiplier ** min(attempt, _MAX_EXPONENT)
        return min(delay, max(self.max_delay, self.initial_delay))


__all__ = ["ReconnectPolicy"]
