"""
Current-vitals resolution for a patient.

Live data is freshest but may be momentarily absent after a device re-pairs;
patient-scoped storage is the steady-state source; the legacy bucket and the
exhaustive scan tolerate partially migrated or misassigned device records.
The sources are tried as an ordered list of extraction strategies and the
first one that yields a valid ``VitalReading`` wins.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from ..models.device import Device, latest_in_bucket
from ..models.readings import Reading, VitalReading, is_vital_reading
from ..monitoring import EngineMetrics
from .device_resolver import DeviceResolver

logger = logging.getLogger(__name__)


class LiveReadings(Protocol):
    def get(self, device_id: str) -> Optional[Reading]: ...


@dataclass
class MergeContext:
    patient_id: str
    devices: Dict[str, Device]
    device: Optional[Device]
    live: Optional[LiveReadings]


@dataclass(frozen=True)
class VitalsResolution:
    reading: Optional[VitalReading]
    source: Optional[str] = None
    device_id: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.source == LIVE


LIVE = "live"
PATIENT_BUCKET = "patient_bucket"
LEGACY_BUCKET = "legacy_bucket"
EXHAUSTIVE_SCAN = "exhaustive_scan"


def _vital(reading: Optional[Reading]) -> Optional[VitalReading]:
    return reading if is_vital_reading(reading) else None


def from_live_cache(ctx: MergeContext):
    if ctx.device is None or ctx.live is None:
        return None
    return _vital(ctx.live.get(ctx.device.device_id)), ctx.device.device_id


def from_patient_bucket(ctx: MergeContext):
    if ctx.device is None:
        return None
    bucket = ctx.device.patient_vitals.get(ctx.patient_id)
    return _vital(latest_in_bucket(bucket)), ctx.device.device_id


def from_legacy_bucket(ctx: MergeContext):
    if ctx.device is None:
        return None
    return _vital(latest_in_bucket(ctx.device.legacy_vitals)), ctx.device.device_id


def from_exhaustive_scan(ctx: MergeContext):
    for device in ctx.devices.values():
        reading = _vital(latest_in_bucket(device.patient_vitals.get(ctx.patient_id)))
        if reading is not None:
            logger.debug(f"Found vitals for patient {ctx.patient_id} in alternate device {device.device_id}")
            return reading, device.device_id
    return None


Strategy = Callable[[MergeContext], object]


class VitalsMerger:
    """Resolves the single current reading surfaced for a patient."""

    def __init__(self, resolver: Optional[DeviceResolver] = None,
                 metrics: Optional[EngineMetrics] = None):
        self.resolver = resolver or DeviceResolver()
        self.metrics = metrics
        self.strategies: List[tuple] = [
            (LIVE, from_live_cache),
            (PATIENT_BUCKET, from_patient_bucket),
            (LEGACY_BUCKET, from_legacy_bucket),
            (EXHAUSTIVE_SCAN, from_exhaustive_scan),
        ]

    def add_strategy(self, name: str, strategy: Strategy):
        """Append a strategy; it runs after every existing one."""
        self.strategies.append((name, strategy))

    def resolve(self, patient_id: str, devices: Dict[str, Device],
                live: Optional[LiveReadings] = None) -> VitalsResolution:
        ctx = MergeContext(
            patient_id=patient_id,
            devices=devices,
            device=self.resolver.resolve(patient_id, devices),
            live=live,
        )

        for name, strategy in self.strategies:
            result = strategy(ctx)
            if not result:
                continue
            reading, device_id = result
            if reading is not None:
                self._record(name)
                return VitalsResolution(reading=reading, source=name, device_id=device_id)

        self._record("none")
        logger.debug(f"No valid vitals found for patient {patient_id}")
        return VitalsResolution(reading=None)

    def _record(self, source: str):
        if self.metrics:
            self.metrics.record_vitals_resolution(source)


_default_merger = VitalsMerger()


def current_vitals(patient_id: str, devices: Dict[str, Device],
                   live: Optional[LiveReadings] = None) -> Optional[VitalReading]:
    """The patient's current vital reading, or None if nothing valid exists anywhere."""
    return _default_merger.resolve(patient_id, devices, live).reading
