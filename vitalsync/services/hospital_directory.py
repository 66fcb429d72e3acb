import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

from ..models.device import Device, parse_device_directory
from ..models.errors import TransportError
from ..models.patient import Patient, parse_patient_directory
from ..monitoring import EngineMetrics

logger = logging.getLogger(__name__)


class DirectorySource(Protocol):
    async def get_patients(self) -> Dict[str, Any]: ...

    async def get_devices(self) -> Dict[str, Any]: ...


class HospitalDirectory:
    """
    Patient and device directories, passed explicitly to the resolver,
    merger and aggregator.

    The two maps are refreshed independently and replaced wholesale. A failed
    refresh keeps the previous map and records the error message.
    """

    def __init__(self, source: DirectorySource, metrics: Optional[EngineMetrics] = None):
        self.source = source
        self.metrics = metrics
        self.patients: Dict[str, Patient] = {}
        self.devices: Dict[str, Device] = {}
        self.loading = False
        self.error: Optional[str] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_records(cls, patients: Dict[str, Any], devices: Dict[str, Any],
                     source: Optional[DirectorySource] = None) -> 'HospitalDirectory':
        """Directory pre-populated from raw records."""
        directory = cls(source)
        directory.patients = parse_patient_directory(patients)
        directory.devices = parse_device_directory(devices)
        return directory

    async def refresh(self) -> bool:
        """Re-fetch patients and devices concurrently. Returns True if both succeeded."""
        self.loading = True
        try:
            patients_ok, devices_ok = await asyncio.gather(
                self._refresh_patients(), self._refresh_devices()
            )
        finally:
            self.loading = False
        if patients_ok and devices_ok:
            self.error = None
        return patients_ok and devices_ok

    async def refresh_alerts_only(self) -> bool:
        """Re-fetch the device directory only; alerts and vitals live there."""
        ok = await self._refresh_devices()
        if ok:
            self.error = None
        return ok

    async def _refresh_patients(self) -> bool:
        try:
            raw = await self.source.get_patients()
        except TransportError as e:
            return self._failed('patients', e)

        patients = parse_patient_directory(raw)
        async with self._lock:
            self.patients = patients
        self._record('patients', True)
        logger.debug(f"Patient directory refreshed: {len(patients)} patients")
        return True

    async def _refresh_devices(self) -> bool:
        try:
            raw = await self.source.get_devices()
        except TransportError as e:
            return self._failed('devices', e)

        devices = parse_device_directory(raw)
        async with self._lock:
            self.devices = devices
        self._record('devices', True)
        logger.debug(f"Device directory refreshed: {len(devices)} devices")
        return True

    def _failed(self, directory: str, error: TransportError) -> bool:
        self.error = f"Failed to fetch {directory}: {error}"
        logger.warning(self.error)
        self._record(directory, False)
        return False

    def _record(self, directory: str, success: bool):
        if self.metrics:
            self.metrics.record_directory_refresh(directory, success)

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self.patients.get(patient_id)

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.devices.get(device_id)

    def device_ids(self) -> List[str]:
        return list(self.devices.keys())

    def critical_patients(self) -> List[Patient]:
        return [p for p in self.patients.values() if p.is_critical]
