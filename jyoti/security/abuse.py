"""Bot heuristics over a short per-fingerprint request history."""

from __future__ import annotations

import hashlib
import logging
import statistics
from collections import OrderedDict, deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AbuseSignal:
    """Classifier verdict. ``reason`` is for logs only, never for callers."""

    is_bot: bool = False
    is_suspicious: bool = False
    reason: str | None = None

    @property
    def rejected(self) -> bool:
        return self.is_bot or self.is_suspicious


@dataclass(frozen=True)
class _Sighting:
    at_ms: int
    message_hash: str


class BotDetector:
    """Detect automated callers from request bursts, repeats and cadence.

    History is bounded per fingerprint (``maxlen``) and across fingerprints
    (least recently seen fingerprints are evicted first).

    Attributes:
        burst_limit: Requests inside ``burst_window_ms`` that mark a bot
        repeat_limit: Identical messages inside the horizon that mark a bot
        cadence_min_intervals: Intervals needed before cadence is judged
        cadence_max_spread_ms: Interval spread below which cadence is robotic
    """

    def __init__(
        self,
        burst_limit: int = 8,
        burst_window_ms: int = 10_000,
        repeat_limit: int = 3,
        history_horizon_ms: int = 60_000,
        cadence_min_intervals: int = 5,
        cadence_max_spread_ms: int = 50,
        max_tracked_fingerprints: int = 10_000,
    ) -> None:
        self.burst_limit = burst_limit
        self.burst_window_ms = burst_window_ms
        self.repeat_limit = repeat_limit
        self.history_horizon_ms = history_horizon_ms
        self.cadence_min_intervals = cadence_min_intervals
        self.cadence_max_spread_ms = cadence_max_spread_ms
        self.max_tracked_fingerprints = max_tracked_fingerprints
        self._history_len = max(burst_limit, repeat_limit, cadence_min_intervals + 1) * 2
        self._histories: OrderedDict[str, deque[_Sighting]] = OrderedDict()

    def classify(self, fingerprint: str, clean_text: str, now_ms: int) -> AbuseSignal:
        """Record this request and judge the fingerprint's recent behaviour.

        Args:
            fingerprint: Caller fingerprint
            clean_text: Sanitized message text
            now_ms: Current epoch milliseconds

        Returns:
            AbuseSignal with ``is_bot`` and the matching reason
        """
        history = self._history(fingerprint)
        while history and now_ms - history[0].at_ms > self.history_horizon_ms:
            history.popleft()

        message_hash = hashlib.sha256(clean_text.strip().lower().encode("utf-8")).hexdigest()
        history.append(_Sighting(at_ms=now_ms, message_hash=message_hash))

        in_burst = sum(1 for s in history if now_ms - s.at_ms <= self.burst_window_ms)
        if in_burst >= self.burst_limit:
            return AbuseSignal(is_bot=True, reason="request_burst")

        repeats = sum(1 for s in history if s.message_hash == message_hash)
        if repeats >= self.repeat_limit:
            return AbuseSignal(is_bot=True, reason="repeated_message")

        if self._robotic_cadence(history):
            return AbuseSignal(is_bot=True, reason="robotic_cadence")

        return AbuseSignal()

    def _robotic_cadence(self, history: deque[_Sighting]) -> bool:
        if len(history) < self.cadence_min_intervals + 1:
            return False
        recent = list(history)[-(self.cadence_min_intervals + 1) :]
        intervals = [b.at_ms - a.at_ms for a, b in zip(recent, recent[1:])]
        # Simultaneous arrivals are a burst, not a cadence
        if statistics.mean(intervals) < self.cadence_max_spread_ms:
            return False
        return max(intervals) - min(intervals) < self.cadence_max_spread_ms

    def _history(self, fingerprint: str) -> deque[_Sighting]:
        history = self._histories.get(fingerprint)
        if history is None:
            history = deque(maxlen=self._history_len)
            self._histories[fingerprint] = history
            if len(self._histories) > self.max_tracked_fingerprints:
                evicted, _ = self._histories.popitem(last=False)
                logger.debug(f"Evicted bot history for fingerprint {evicted[:12]}")
        else:
            self._histories.move_to_end(fingerprint)
        return history

    def __len__(self) -> int:
        return len(self._histories)
