"""Incremental reconciler — keeps one streamed response's mask set current.

While a response streams, the cheap pattern pass re-runs over the whole
buffer every ``pattern_scan_threshold`` new characters.  When the stream
completes, the semantic pass runs once and its result becomes the final
snapshot.  Consumers render only the latest snapshot.

    Idle → Streaming → Finalizing → Done
       ╲        ╲           ╲
        ────────────────────── Aborted

Usage:
    rec = Reconciler(masker, on_snapshot=render)
    for chunk in stream:
        rec.feed(chunk)
    await rec.finalize()
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Callable

from .errors import StreamAborted, StreamClosed
from .masker import Masker
from .merge import merge
from .types import Range, Snapshot

logger = logging.getLogger(__name__)


class State(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class StreamBuffer:
    """Accumulated text of one in-flight response."""
    text: str = ""
    last_pattern_scan_length: int = 0


# ── Final-snapshot policies ──────────────────────────────────────────
# A policy combines the last pattern snapshot with the semantic result.

FinalPolicy = Callable[[Snapshot | None, list[Range]], list[Range]]


def replace_final(previous: Snapshot | None, semantic: list[Range]) -> list[Range]:
    """Final set is the semantic result alone."""
    return semantic


def union_final(previous: Snapshot | None, semantic: list[Range]) -> list[Range]:
    """Final set keeps every earlier mask and adds the semantic ones."""
    earlier = list(previous.ranges) if previous is not None else []
    return merge([*earlier, *semantic])


POLICIES: dict[str, FinalPolicy] = {
    "replace": replace_final,
    "union": union_final,
}


class Reconciler:
    """Owns one StreamBuffer and publishes snapshots for it."""

    __slots__ = (
        "_masker", "_on_snapshot", "_policy", "_threshold",
        "_buffer", "_state", "_latest",
    )

    def __init__(
        self,
        masker: Masker,
        *,
        on_snapshot: Callable[[Snapshot], None] | None = None,
        policy: FinalPolicy | None = None,
        pattern_scan_threshold: int | None = None,
    ) -> None:
        self._masker = masker
        self._on_snapshot = on_snapshot
        self._policy = policy or POLICIES[masker.config.final_policy]
        self._threshold = pattern_scan_threshold or masker.config.pattern_scan_threshold
        self._buffer: StreamBuffer | None = None
        self._state = State.IDLE
        self._latest: Snapshot | None = None

    @property
    def state(self) -> State:
        return self._state

    @property
    def latest(self) -> Snapshot | None:
        """The currently published snapshot."""
        return self._latest

    @property
    def text(self) -> str:
        return self._buffer.text if self._buffer is not None else ""

    def feed(self, chunk: str) -> Snapshot | None:
        """Append a chunk; returns a snapshot if this chunk triggered a scan."""
        if self._state is State.ABORTED:
            return None
        if self._state in (State.FINALIZING, State.DONE):
            raise StreamClosed(f"chunk fed to a {self._state.value} stream")
        if not isinstance(chunk, str):
            logger.warning("ignoring non-string chunk of type %s", type(chunk).__name__)
            return None

        if self._state is State.IDLE:
            self._buffer = StreamBuffer()
            self._state = State.STREAMING

        buf = self._buffer
        buf.text += chunk
        length = len(buf.text)
        if length - buf.last_pattern_scan_length < self._threshold:
            return None

        logger.debug("pattern scan at length %d (last %d)", length, buf.last_pattern_scan_length)
        snapshot = Snapshot(tuple(self._masker.quick_scan(buf.text)), length)
        buf.last_pattern_scan_length = length
        return self._offer(snapshot)

    async def finalize(self) -> Snapshot | None:
        """Run the semantic pass once and publish the final snapshot.

        Returns None if the stream was aborted before the result arrived.
        """
        if self._state is State.ABORTED:
            return None
        if self._state in (State.FINALIZING, State.DONE):
            raise StreamClosed(f"stream already {self._state.value}")
        if self._buffer is None:
            self._buffer = StreamBuffer()
        self._state = State.FINALIZING

        text = self._buffer.text
        try:
            semantic = await self._masker.scan(text)
        except asyncio.CancelledError:
            self.abort()
            raise
        except Exception:
            logger.exception("semantic and fallback passes failed, keeping last pattern snapshot")
            if self._state is State.ABORTED:
                return None
            self._state = State.DONE
            previous = self._latest
            ranges = previous.ranges if previous is not None else ()
            length = previous.length if previous is not None else 0
            return self._offer(Snapshot(ranges, length, final=True))

        # check-before-emit: abort() may have run while we were suspended
        if self._state is State.ABORTED:
            logger.debug("stream aborted during finalization, dropping result")
            return None

        ranges = self._policy(self._latest, semantic)
        self._state = State.DONE
        return self._offer(Snapshot(tuple(ranges), len(text), final=True))

    def abort(self) -> None:
        """Cancel the stream: discard the buffer, emit nothing further."""
        if self._state is State.DONE:
            return
        if self._state is not State.ABORTED:
            logger.debug("stream aborted in state %s", self._state.value)
        self._state = State.ABORTED
        self._buffer = None

    def _offer(self, snapshot: Snapshot) -> Snapshot | None:
        """Publish a snapshot unless it is older than the current one."""
        current = self._latest
        if current is not None and snapshot.length < current.length:
            logger.debug("discarding stale snapshot (%d < %d)", snapshot.length, current.length)
            return None
        if current is not None and current.final:
            return None
        self._latest = snapshot
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)
        return snapshot


async def reconcile_stream(
    chunks: AsyncIterable[str],
    reconciler: Reconciler,
) -> AsyncIterator[Snapshot]:
    """Drive a reconciler from an async chunk source, yielding snapshots.

    The reconciler is aborted if the source raises ``StreamAborted``, the
    task is cancelled, or the consumer stops iterating early.
    """
    finished = False
    try:
        async for chunk in chunks:
            snapshot = reconciler.feed(chunk)
            if snapshot is not None:
                yield snapshot
        final = await reconciler.finalize()
        finished = True
        if final is not None:
            yield final
    except StreamAborted:
        logger.debug("upstream aborted the stream")
        reconciler.abort()
    finally:
        if not finished:
            reconciler.abort()
