"""Streaming delivery under a wall-clock deadline.

``StreamDelivery`` wraps any async iterator of text chunks and runs the
state machine::

    IDLE -> STREAMING -> COMPLETED | TIMED_OUT | ERRORED | CANCELLED

The deadline is absolute (measured from request start) and is checked before
every step. A breach or an unexpected source error ends the stream cleanly:
the caller never sees an exception, only a shorter (or apologetic) body.
A stream that times out before its first chunk sends ``TIMEOUT_MESSAGE``.
Cancellation from the consumer propagates after the source is closed.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator, Callable
from enum import Enum

from jyoti.observability.prometheus_metrics import record_stream_termination
from jyoti.observability.tracing import record_histogram

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "I apologize, but I encountered an error. Please try again in a moment."
TIMEOUT_MESSAGE = "I apologize, the stars are slow to answer right now. Please ask again in a moment."

_TOKENS = re.compile(r"\S+\s*|\s+")


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {StreamState.COMPLETED, StreamState.TIMED_OUT, StreamState.ERRORED, StreamState.CANCELLED}
)


def split_for_stream(text: str, max_chunk_chars: int = 24) -> list[str]:
    """Split text into word-boundary groups of at most ``max_chunk_chars``.

    Joining the chunks always reproduces ``text`` exactly. Words longer than
    the limit are cut into limit-sized slices.

    Examples:
        >>> split_for_stream("May divine light illuminate your path.", 16)
        ['May divine ', 'light ', 'illuminate your ', 'path.']
    """
    if max_chunk_chars < 1:
        raise ValueError("max_chunk_chars must be positive")

    chunks: list[str] = []
    current = ""
    for token in _TOKENS.findall(text):
        while len(token) > max_chunk_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(token[:max_chunk_chars])
            token = token[max_chunk_chars:]
        if current and len(current) + len(token) > max_chunk_chars:
            chunks.append(current)
            current = ""
        current += token
    if current:
        chunks.append(current)
    return chunks


async def iter_text(
    text: str,
    chunk_chars: int = 24,
    delay_seconds: float = 0.0,
) -> AsyncIterator[str]:
    """Yield ``text`` in stream chunks, optionally pausing between them."""
    for index, chunk in enumerate(split_for_stream(text, chunk_chars)):
        if index and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        yield chunk


class StreamDelivery:
    """Deadline-bounded delivery of one response stream.

    Attributes:
        state: Current ``StreamState``
        emitted_chars: Characters yielded to the consumer so far
        error: Source exception when the stream ended ``ERRORED``
    """

    def __init__(
        self,
        source: AsyncIterator[str],
        deadline: float,
        clock: Callable[[], float] = time.monotonic,
        on_finish: Callable[[StreamDelivery], None] | None = None,
    ) -> None:
        """Initialize the delivery.

        Args:
            source: Async iterator producing text chunks
            deadline: Absolute deadline on ``clock``'s timeline
            clock: Monotonic clock (injectable for tests)
            on_finish: Called once with this delivery after it reaches a terminal state
        """
        self.source = source
        self.deadline = deadline
        self.clock = clock
        self.on_finish = on_finish
        self.state = StreamState.IDLE
        self.emitted_chars = 0
        self.error: BaseException | None = None
        self._started_at: float | None = None
        self._finished_at: float | None = None

    @property
    def elapsed_ms(self) -> int:
        if self._started_at is None:
            return 0
        end = self._finished_at if self._finished_at is not None else self.clock()
        return int((end - self._started_at) * 1000)

    async def deliver(self) -> AsyncIterator[str]:
        """Yield chunks until the source ends, the deadline passes or an error occurs.

        Raises:
            RuntimeError: If the delivery was already consumed
            asyncio.CancelledError: Propagated after cleanup when the consumer is cancelled
        """
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"Stream already delivered (state={self.state.value})")

        self.state = StreamState.STREAMING
        self._started_at = self.clock()
        iterator = aiter(self.source)

        try:
            while True:
                remaining = self.deadline - self.clock()
                if remaining <= 0:
                    self.state = StreamState.TIMED_OUT
                    break
                try:
                    chunk = await asyncio.wait_for(anext(iterator), timeout=remaining)
                except StopAsyncIteration:
                    self.state = StreamState.COMPLETED
                    break
                except TimeoutError:
                    self.state = StreamState.TIMED_OUT
                    break
                self.emitted_chars += len(chunk)
                yield chunk
            if self.state is StreamState.TIMED_OUT and not self.emitted_chars:
                # Never end a timed-out stream with an empty body
                self.emitted_chars += len(TIMEOUT_MESSAGE)
                yield TIMEOUT_MESSAGE
        except (asyncio.CancelledError, GeneratorExit):
            self.state = StreamState.CANCELLED
            raise
        except Exception as e:
            self.state = StreamState.ERRORED
            self.error = e
            logger.error(f"❌ Stream source failed after {self.emitted_chars} chars: {type(e).__name__}: {e}")
            apology = f"\n\n{APOLOGY_MESSAGE}" if self.emitted_chars else APOLOGY_MESSAGE
            self.emitted_chars += len(apology)
            yield apology
        finally:
            await self._close_source(iterator)
            self._finish()

    async def _close_source(self, iterator: AsyncIterator[str]) -> None:
        aclose = getattr(iterator, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(f"Stream source did not close cleanly: {type(e).__name__}: {e}")

    def _finish(self) -> None:
        self._finished_at = self.clock()
        if self.state not in TERMINAL_STATES:
            # Consumer stopped iterating without closing the generator
            self.state = StreamState.CANCELLED
        record_stream_termination(self.state.value)
        record_histogram("stream.duration_ms", self.elapsed_ms, {"state": self.state.value})

        if self.state is StreamState.TIMED_OUT:
            logger.warning(
                f"⏱️ Stream deadline reached after {self.emitted_chars} chars ({self.elapsed_ms}ms)"
            )
        else:
            logger.debug(f"Stream finished: {self.state.value} ({self.emitted_chars} chars)")

        if self.on_finish is not None:
            self.on_finish(self)


__all__ = [
    "APOLOGY_MESSAGE",
    "StreamDelivery",
    "StreamState",
    "TIMEOUT_MESSAGE",
    "iter_text",
    "split_for_stream",
]
