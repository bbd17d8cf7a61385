"""Per-fingerprint cooldowns.

A fingerprint is cooling down while ``now < until``. Writes only ever extend
an active cooldown; a short pacing cooldown can never cut a punitive one.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from jyoti.security.state_store import StateStore


@dataclass(frozen=True)
class CooldownStatus:
    """Cooldown state for one fingerprint."""

    active: bool
    remaining_ms: int = 0
    until_ms: int | None = None


class CooldownStore:
    """Cooldown bookkeeping on top of a ``StateStore``."""

    def __init__(self, store: StateStore) -> None:
        self.store = store

    @staticmethod
    def _key(fingerprint: str) -> str:
        return f"cooldown:{fingerprint}"

    async def check(self, fingerprint: str, now_ms: int) -> CooldownStatus:
        until = await self.store.get(self._key(fingerprint), now_ms)
        if until is None or now_ms >= until:
            return CooldownStatus(active=False)
        return CooldownStatus(active=True, remaining_ms=until - now_ms, until_ms=until)

    async def set(self, fingerprint: str, duration_ms: int, now_ms: int) -> int:
        """Start or extend a cooldown.

        Args:
            fingerprint: Caller fingerprint
            duration_ms: Cooldown length from ``now_ms``
            now_ms: Current epoch milliseconds

        Returns:
            Effective ``until`` timestamp (the later of old and new)
        """
        until = now_ms + duration_ms
        return await self.store.set_max(self._key(fingerprint), until, duration_ms, now_ms)


def cooldown_message(remaining_ms: int) -> str:
    """Caller-facing message for an active cooldown.

    Examples:
        >>> cooldown_message(2500)
        'Please wait 3 seconds before sending another message.'
    """
    seconds = max(1, math.ceil(remaining_ms / 1000))
    unit = "second" if seconds == 1 else "seconds"
    return f"Please wait {seconds} {unit} before sending another message."
