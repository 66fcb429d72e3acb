"""
Live poll cache: the recurring latest-reading feed for a set of devices.

One timer task per active subscription. Each tick fetches the latest reading
for every subscribed device and replaces the entries of devices that answered.
A device answering with no usable reading loses its entry; devices whose fetch
failed keep their previous (stale) entry. Manual refreshes share
the fetch path with the timer and never issue a second concurrent fetch for
the same device.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Protocol, Tuple

from ..models.errors import TransportError
from ..models.readings import Reading, parse_reading
from ..monitoring import EngineMetrics

logger = logging.getLogger(__name__)


class LatestReadingSource(Protocol):
    async def fetch_latest_vitals(self, device_id: str) -> Optional[Dict[str, Any]]: ...


class PollHandle:
    """Handle for one polling subscription."""

    def __init__(self, cache: 'LivePollCache', generation: int, device_ids: FrozenSet[str]):
        self._cache = cache
        self.generation = generation
        self.device_ids = device_ids

    @property
    def active(self) -> bool:
        return self._cache._generation == self.generation and self._cache.active_timers > 0

    async def refresh(self):
        if self._cache._generation == self.generation:
            await self._cache.refresh()

    async def stop(self):
        """Stop this subscription; a no-op if it has already been replaced."""
        if self._cache._generation == self.generation:
            await self._cache.stop()


class LivePollCache:
    """
    Most recent successful reading per device, with per-device last-updated
    instants and loading/error state.
    """

    def __init__(self, source: LatestReadingSource, interval_seconds: float = 3.0,
                 metrics: Optional[EngineMetrics] = None):
        self.source = source
        self.interval_seconds = interval_seconds
        self.metrics = metrics

        self.vitals: Dict[str, Reading] = {}
        self.last_updated: Dict[str, datetime] = {}
        self.loading = False
        self.error: Optional[str] = None

        self._device_ids: FrozenSet[str] = frozenset()
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._in_flight: Dict[str, Tuple[int, asyncio.Task]] = {}
        self._batch_in_flight: Optional[Tuple[int, asyncio.Task]] = None
        self._cycles_running = 0

    @property
    def device_ids(self) -> FrozenSet[str]:
        return self._device_ids

    @property
    def active_timers(self) -> int:
        return 1 if self._task is not None and not self._task.done() else 0

    def get(self, device_id: str) -> Optional[Reading]:
        return self.vitals.get(device_id)

    def clear_error(self):
        self.error = None

    async def start(self, device_ids: Iterable[str],
                    interval_seconds: Optional[float] = None) -> PollHandle:
        """
        Start polling ``device_ids``, replacing any running subscription.

        An empty id set holds no timer and performs no fetch.
        """
        await self.stop()

        if interval_seconds is not None:
            self.interval_seconds = interval_seconds
        self._generation += 1
        self._device_ids = frozenset(device_ids)

        if self._device_ids:
            self._task = asyncio.create_task(self._poll_loop(self._generation))
            logger.info(f"Live polling started for {len(self._device_ids)} devices every {self.interval_seconds}s")
        self._update_timer_gauge()

        return PollHandle(self, self._generation, self._device_ids)

    async def update_device_ids(self, device_ids: Iterable[str]) -> PollHandle:
        """Restart the subscription if the id set changed."""
        new_ids = frozenset(device_ids)
        if new_ids == self._device_ids and (self.active_timers or not new_ids):
            return PollHandle(self, self._generation, self._device_ids)
        return await self.start(new_ids)

    async def stop(self):
        """Cancel the timer. In-flight fetches finish but their results are discarded."""
        task = self._task
        self._task = None
        self._generation += 1
        self._device_ids = frozenset()

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Live polling stopped")
        self._update_timer_gauge()

    async def refresh(self):
        """Run an out-of-band tick immediately."""
        if not self._device_ids:
            return
        await self._run_cycle(self._generation, trigger='manual')

    async def _poll_loop(self, generation: int):
        while True:
            try:
                await self._run_cycle(generation, trigger='timer')
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in live poll cycle: {e}")
                await asyncio.sleep(self.interval_seconds)

    async def _run_cycle(self, generation: int, trigger: str):
        device_ids = sorted(self._device_ids)
        if not device_ids:
            return

        self._cycles_running += 1
        self.loading = True
        self.error = None
        try:
            if hasattr(self.source, 'fetch_latest_vitals_batch'):
                errors = await asyncio.shield(self._batch_task(device_ids, generation))
            else:
                tasks = [self._fetch_task(device_id, generation) for device_id in device_ids]
                results = await asyncio.gather(
                    *(asyncio.shield(t) for t in tasks), return_exceptions=True
                )
                errors = []
                for result in results:
                    if isinstance(result, BaseException):
                        errors.append(str(result) or type(result).__name__)
                    elif result:
                        errors.append(result)

            if generation == self._generation and errors:
                self.error = errors[-1]
        finally:
            self._cycles_running -= 1
            if self._cycles_running == 0:
                self.loading = False

        if self.metrics:
            self.metrics.record_poll_cycle(trigger)

    def _fetch_task(self, device_id: str, generation: int) -> asyncio.Task:
        existing = self._in_flight.get(device_id)
        if existing is not None and existing[0] == generation and not existing[1].done():
            return existing[1]

        task = asyncio.create_task(self._fetch_one(device_id, generation))
        self._in_flight[device_id] = (generation, task)
        task.add_done_callback(lambda t, d=device_id: self._forget(d, t))
        return task

    def _forget(self, device_id: str, task: asyncio.Task):
        current = self._in_flight.get(device_id)
        if current is not None and current[1] is task:
            del self._in_flight[device_id]

    async def _fetch_one(self, device_id: str, generation: int) -> Optional[str]:
        """Fetch and apply one device's reading; returns an error message on failure."""
        try:
            raw = await self.source.fetch_latest_vitals(device_id)
        except TransportError as e:
            logger.warning(f"Failed to fetch vitals for device {device_id}: {e}")
            self._record_fetch(False)
            return f"{device_id}: {e}"

        self._record_fetch(True)
        self._apply(device_id, raw, generation)
        return None

    def _batch_task(self, device_ids: List[str], generation: int) -> asyncio.Task:
        existing = self._batch_in_flight
        if existing is not None and existing[0] == generation and not existing[1].done():
            return existing[1]

        task = asyncio.create_task(self._fetch_batch(device_ids, generation))
        self._batch_in_flight = (generation, task)
        return task

    async def _fetch_batch(self, device_ids: List[str], generation: int) -> List[str]:
        try:
            results = await self.source.fetch_latest_vitals_batch(device_ids)
        except TransportError as e:
            logger.warning(f"Batched vitals fetch failed for {len(device_ids)} devices: {e}")
            for _ in device_ids:
                self._record_fetch(False)
            return [str(e)]

        errors = []
        for device_id in device_ids:
            raw = results.get(device_id)
            if isinstance(raw, Exception):
                logger.warning(f"Failed to fetch vitals for device {device_id}: {raw}")
                self._record_fetch(False)
                errors.append(f"{device_id}: {raw}")
                continue
            self._record_fetch(True)
            self._apply(device_id, raw, generation)
        return errors

    def _apply(self, device_id: str, raw: Optional[Dict[str, Any]], generation: int):
        if generation != self._generation:
            logger.debug(f"Discarding vitals for device {device_id} from a stopped subscription")
            return

        # The device answered; an empty or malformed answer means no live reading
        reading = parse_reading(raw) if raw is not None else None
        if reading is None:
            if self.vitals.pop(device_id, None) is not None:
                logger.debug(f"Device {device_id} returned no valid reading, dropping live entry")
            self.last_updated.pop(device_id, None)
            return

        self.vitals[device_id] = reading
        self.last_updated[device_id] = datetime.now(timezone.utc)

    def _record_fetch(self, success: bool):
        if self.metrics:
            self.metrics.record_poll_fetch(success)

    def _update_timer_gauge(self):
        if self.metrics:
            self.metrics.set_active_poll_timers(self.active_timers)
