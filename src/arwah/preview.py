from __future__ import annotations

import asyncio
import logging
from typing import Callable

from arwah.config import settings
from arwah.errors import CompositorError

logger = logging.getLogger(__name__)

RenderJob = Callable[[], bytes]
ResultCallback = Callable[[bytes | None], None]


class PreviewDriver:
    """
    Debounced preview rendering.

    Every schedule() re-arms a single timer, so a burst of slider moves renders
    once, `delay` seconds after the last move. The job runs in a worker thread;
    its PNG is handed to `on_result` only if nothing was scheduled in the
    meantime. Renders already running are left to finish and their result is
    dropped when stale.
    """

    def __init__(self, on_result: ResultCallback, delay: float | None = None) -> None:
        self.delay = settings.preview_debounce_ms / 1000.0 if delay is None else delay
        self._on_result = on_result
        self._timer: asyncio.TimerHandle | None = None
        self._generation = 0
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self, job: RenderJob) -> int:
        loop = asyncio.get_running_loop()
        self._disarm()
        self._generation += 1
        gen = self._generation
        self._timer = loop.call_later(self.delay, self._fire, gen, job)
        logger.debug("preview %d scheduled in %.0f ms", gen, self.delay * 1000)
        return gen

    def cancel(self) -> None:
        """Drop the pending render and any result still on its way."""
        self._disarm()
        self._generation += 1

    async def wait_idle(self) -> None:
        while self._timer is not None or self._inflight:
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
            else:
                await asyncio.sleep(self.delay / 2 or 0)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, gen: int, job: RenderJob) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._run(gen, job))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run(self, gen: int, job: RenderJob) -> None:
        try:
            result: bytes | None = await asyncio.to_thread(job)
        except CompositorError as exc:
            logger.warning("preview %d produced no output: %s", gen, exc)
            result = None
        except Exception:
            logger.exception("preview %d failed", gen)
            result = None

        if gen != self._generation:
            logger.debug("discarding stale preview %d (latest is %d)", gen, self._generation)
            return
        self._on_result(result)
