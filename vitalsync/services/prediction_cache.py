"""
Prediction cache: latest risk assessment per patient with a fixed TTL.

Staleness is measured from local cache time: ``put`` always stamps
``last_updated`` with the local clock, whatever the remote service reported,
and an entry is stale once ``now - max(last_updated, predicted_at)`` exceeds
the TTL. Eviction is lazy (on read) plus a one-pass ``evict_stale`` run on
load. Losing the store only ever means "no prediction available".
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol, Tuple, Union

import redis.asyncio as redis

from ..models.patient import Patient
from ..models.prediction import PredictionEntry
from ..monitoring import EngineMetrics
from .timestamps import parse_timestamp, reference_time

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_STORAGE_KEY = "vitalsync:patient_predictions"


class PredictionStore(Protocol):
    async def load(self) -> Dict[str, Any]: ...

    async def save(self, entries: Dict[str, Any]) -> None: ...


class InMemoryPredictionStore:
    """Process-local store; survives view switches but not restarts."""

    def __init__(self):
        self._document: Optional[str] = None

    async def load(self) -> Dict[str, Any]:
        if self._document is None:
            return {}
        return json.loads(self._document)

    async def save(self, entries: Dict[str, Any]) -> None:
        self._document = json.dumps(entries)


class RedisPredictionStore:
    """Persists the whole cache as one JSON document under a single Redis key."""

    def __init__(self, redis_client: redis.Redis, key: str = DEFAULT_STORAGE_KEY):
        self.redis_client = redis_client
        self.key = key

    @classmethod
    def from_url(cls, url: str, key: str = DEFAULT_STORAGE_KEY) -> 'RedisPredictionStore':
        return cls(redis.from_url(url, decode_responses=True), key=key)

    async def load(self) -> Dict[str, Any]:
        try:
            raw = await self.redis_client.get(self.key)
        except redis.RedisError as e:
            logger.warning(f"Failed to load predictions from Redis: {e}")
            return {}

        if not raw:
            return {}
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding corrupt prediction cache document at {self.key}")
            return {}
        return data if isinstance(data, dict) else {}

    async def save(self, entries: Dict[str, Any]) -> None:
        try:
            await self.redis_client.set(self.key, json.dumps(entries))
        except redis.RedisError as e:
            logger.warning(f"Failed to save predictions to Redis: {e}")


class PredictionCache:
    """Keyed store of the latest risk-assessment result per patient."""

    def __init__(self, store: Optional[PredictionStore] = None,
                 ttl_seconds: int = DEFAULT_TTL_SECONDS,
                 metrics: Optional[EngineMetrics] = None):
        self.store = store or InMemoryPredictionStore()
        self.ttl = timedelta(seconds=ttl_seconds)
        self.metrics = metrics
        self._entries: Dict[str, PredictionEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, patient_id: str) -> bool:
        return patient_id in self._entries

    async def load(self, now: Optional[datetime] = None) -> int:
        """
        Replace in-memory entries with the persisted ones and evict stale entries.

        Returns:
            Number of entries kept
        """
        try:
            raw_entries = await self.store.load()
        except ValueError:
            logger.warning("Persisted prediction cache is unreadable, starting empty")
            raw_entries = {}

        async with self._lock:
            self._entries = {
                patient_id: PredictionEntry.from_dict(data)
                for patient_id, data in raw_entries.items()
                if isinstance(data, dict)
            }

        await self.evict_stale(now)
        return len(self._entries)

    def is_stale(self, entry: PredictionEntry, now: datetime) -> bool:
        instants = [
            t for t in (parse_timestamp(entry.last_updated), parse_timestamp(entry.predicted_at))
            if t is not None
        ]
        if not instants:
            return True
        return reference_time(now) - max(instants) > self.ttl

    async def get(self, patient_id: str, now: Optional[datetime] = None) -> Optional[PredictionEntry]:
        """Cached entry for ``patient_id``, or None if absent or stale."""
        now = reference_time(now)
        evicted = False
        async with self._lock:
            entry = self._entries.get(patient_id)
            if entry is not None and self.is_stale(entry, now):
                del self._entries[patient_id]
                evicted = True
                entry = None

        if self.metrics:
            self.metrics.record_prediction_lookup(entry is not None)
            self.metrics.record_prediction_evictions(1 if evicted else 0)
        if evicted:
            logger.debug(f"Evicted stale prediction for patient {patient_id}")
            await self._persist()
        return entry

    async def put(self, patient_id: str,
                  entry: Union[PredictionEntry, Dict[str, Any]],
                  now: Optional[datetime] = None) -> PredictionEntry:
        """
        Store a prediction, stamping ``last_updated`` with the local clock.

        Args:
            patient_id: Patient identifier
            entry: A ``PredictionEntry`` or a raw remote prediction payload
            now: Local cache time (defaults to current UTC time)
        """
        now = reference_time(now)
        if not isinstance(entry, PredictionEntry):
            entry = PredictionEntry.from_payload(entry)
        entry = entry.stamped(now)

        async with self._lock:
            self._entries[patient_id] = entry
        await self._persist()
        return entry

    async def evict_stale(self, now: Optional[datetime] = None) -> int:
        """
        Remove every stale entry in one pass.

        Returns:
            Number of entries removed
        """
        now = reference_time(now)
        async with self._lock:
            stale = [pid for pid, entry in self._entries.items() if self.is_stale(entry, now)]
            for patient_id in stale:
                del self._entries[patient_id]

        if stale:
            logger.info(f"Prediction cache cleanup: {len(stale)} stale entries removed")
            if self.metrics:
                self.metrics.record_prediction_evictions(len(stale))
            await self._persist()
        return len(stale)

    async def invalidate(self, patient_id: str) -> bool:
        async with self._lock:
            removed = self._entries.pop(patient_id, None) is not None
        if removed:
            await self._persist()
        return removed

    async def clear(self):
        async with self._lock:
            cleared_count = len(self._entries)
            self._entries.clear()
        await self._persist()
        logger.info(f"Prediction cache cleared: {cleared_count} entries removed")

    async def _persist(self):
        async with self._lock:
            document = {pid: entry.to_dict() for pid, entry in self._entries.items()}
        await self.store.save(document)


async def resolve_prediction(patient: Patient, cache: PredictionCache,
                             now: Optional[datetime] = None) -> Tuple[Optional[PredictionEntry], bool]:
    """
    Prediction to show for a patient and whether it is a fresh (cached) result.

    A fresh cache entry always wins over the snapshot embedded in the patient
    directory record.
    """
    fresh = await cache.get(patient.patient_id, now=now)
    if fresh is not None:
        return fresh, True

    snapshot = patient.prediction
    if snapshot is None:
        return None, False

    return PredictionEntry(
        risk_level=snapshot.risk_level or 'Unknown',
        risk_score=snapshot.risk_score or 0,
        confidence=snapshot.confidence or 0,
        recommendations=[],
        predicted_at=snapshot.predicted_at,
    ), False
