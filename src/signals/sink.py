"""Fire-and-forget signal sink: bounded queue drained into the signal store."""

import asyncio

import structlog

from observability import metrics
from shared_types import SignalType

from .store import LearningSignal, LearningSignalStore

logger = structlog.get_logger()


class SignalSink:
    """Non-blocking emitter for learning signals.

    ``emit`` never waits and never raises: when the queue is full the signal is
    dropped and counted. A single consumer task writes queued signals to the
    store; write failures are logged and skipped.
    """

    def __init__(self, store: LearningSignalStore, maxsize: int = 256):
        self.store = store
        self._queue: asyncio.Queue[LearningSignal] = asyncio.Queue(maxsize=maxsize)
        self._consumer: asyncio.Task | None = None

    def emit(self, user_id: str, signal_type: SignalType, data: dict | None = None) -> bool:
        """Queue a signal. Returns False if it was dropped."""
        signal = LearningSignal(user_id=user_id, signal_type=signal_type, signal_data=data or {})
        try:
            self._queue.put_nowait(signal)
        except asyncio.QueueFull:
            metrics.counter("signals.dropped")
            logger.warning("signals.dropped", user_id=user_id, signal_type=signal_type.value)
            return False
        self._ensure_consumer()
        return True

    def _ensure_consumer(self) -> None:
        if self._consumer is not None and not self._consumer.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the queue is drained by the next start() or flush()
            return
        self._consumer = loop.create_task(self._run())

    def start(self) -> None:
        self._ensure_consumer()

    async def _run(self) -> None:
        while True:
            signal = await self._queue.get()
            try:
                await asyncio.to_thread(self.store.record, signal)
                metrics.counter("signals.recorded")
            except Exception as e:
                logger.warning(
                    "signals.record_failed",
                    user_id=signal.user_id,
                    signal_type=signal.signal_type.value,
                    error=str(e),
                )
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued signal has been written (or failed)."""
        if not self._queue.empty():
            self._ensure_consumer()
        await self._queue.join()

    async def close(self) -> None:
        await self.flush()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()
