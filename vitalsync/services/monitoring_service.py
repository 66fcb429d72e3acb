"""
Patient monitoring service.

Wires the directory, live poll cache, prediction cache and alert feed into a
single object and produces per-patient snapshots for risk badges and vitals
cards.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..client.api_client import HospitalApiClient
from ..config import EngineConfig, configure_logging
from ..models.device import latest_environmental
from ..models.errors import TransportError
from ..models.patient import Patient
from ..models.prediction import PredictionEntry
from ..models.readings import EnvironmentalReading, VitalReading
from ..monitoring import EngineMetrics
from .alert_aggregator import ActiveAlert, AlertCallback, AlertFeed, active_alerts, sorted_by_recency
from .hospital_directory import HospitalDirectory
from .live_poll_cache import LivePollCache
from .prediction_cache import PredictionCache, PredictionStore, RedisPredictionStore, resolve_prediction
from .timestamps import NO_DATA_LABEL, format_timestamp
from .vitals_merger import VitalsMerger

logger = logging.getLogger(__name__)

NO_DEVICE_LABEL = "No device assigned"


@dataclass
class PatientSnapshot:
    """Everything a monitoring card needs for one patient at one instant."""
    patient: Patient
    vitals: Optional[VitalReading]
    vitals_source: Optional[str]
    device_id: Optional[str]
    is_live: bool
    last_live_update: Optional[datetime]
    prediction: Optional[PredictionEntry]
    prediction_is_fresh: bool
    prediction_loading: bool = False
    prediction_error: Optional[str] = None

    @property
    def vitals_status(self) -> str:
        if self.vitals is not None:
            return "live" if self.is_live else "stored"
        return "no_device" if self.device_id is None else "no_data"

    def to_dict(self) -> Dict[str, Any]:
        if self.vitals is None:
            vitals_label = NO_DEVICE_LABEL if self.device_id is None else NO_DATA_LABEL
        else:
            vitals_label = format_timestamp(self.vitals.timestamp)

        return {
            "patient_id": self.patient.patient_id,
            "name": self.patient.personal_info.name,
            "diagnosis": self.patient.current_status.diagnosis,
            "status": self.patient.current_status.status.value,
            "device_id": self.device_id,
            "vitals": self.vitals.to_dict() if self.vitals else None,
            "vitals_source": self.vitals_source,
            "vitals_status": self.vitals_status,
            "vitals_label": vitals_label,
            "last_live_update": self.last_live_update.isoformat() if self.last_live_update else None,
            "prediction": self.prediction.to_dict() if self.prediction else None,
            "prediction_source": ("fresh" if self.prediction_is_fresh else "directory") if self.prediction else None,
            "prediction_loading": self.prediction_loading,
            "prediction_error": self.prediction_error,
        }


class PatientMonitoringService:
    """Service for reconciling live monitoring data per patient"""

    def __init__(self,
                 client: HospitalApiClient,
                 config: Optional[EngineConfig] = None,
                 metrics: Optional[EngineMetrics] = None,
                 prediction_store: Optional[PredictionStore] = None,
                 on_new_alert: Optional[AlertCallback] = None,
                 on_alert_resolved: Optional[AlertCallback] = None):
        self.config = config or EngineConfig()
        self.client = client
        self.metrics = metrics

        self.directory = HospitalDirectory(client, metrics=metrics)
        self.poll_cache = LivePollCache(client, self.config.poll_interval_seconds, metrics=metrics)
        self.prediction_cache = PredictionCache(
            prediction_store,
            ttl_seconds=self.config.prediction_ttl_seconds,
            metrics=metrics
        )
        self.merger = VitalsMerger(metrics=metrics)
        self.alert_feed = AlertFeed(
            self.directory,
            interval_seconds=self.config.alert_refresh_interval_seconds,
            on_new_alert=on_new_alert,
            on_alert_resolved=on_alert_resolved,
            on_refresh=self.sync_poll_subscription
        )

        self._prediction_loading: Dict[str, bool] = {}
        self._prediction_errors: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs) -> 'PatientMonitoringService':
        """Build the service and its collaborators from configuration, applying its log level."""
        configure_logging(config.log_level)
        client = HospitalApiClient(config.api_base_url, timeout_seconds=config.request_timeout_seconds)
        metrics = EngineMetrics() if config.metrics_enabled else None

        store = None
        if config.prediction_store == "redis":
            store = RedisPredictionStore.from_url(config.redis_url, key=config.prediction_storage_key)

        return cls(client, config=config, metrics=metrics, prediction_store=store, **kwargs)

    async def start(self):
        """Load cached predictions, fetch directories and start both timers."""
        await self.prediction_cache.load()
        await self.directory.refresh()
        await self.sync_poll_subscription()
        self.alert_feed.start()
        logger.info(
            f"Monitoring started: {len(self.directory.patients)} patients, "
            f"{len(self.directory.devices)} devices"
        )

    async def stop(self):
        await self.alert_feed.stop()
        await self.poll_cache.stop()
        logger.info("Monitoring stopped")

    async def close(self):
        await self.stop()
        await self.client.close()

    async def refresh_directory(self) -> bool:
        ok = await self.directory.refresh()
        await self.sync_poll_subscription()
        return ok

    async def sync_poll_subscription(self):
        """Point the live poll at the current device set (restarts only on change)."""
        await self.poll_cache.update_device_ids(self.directory.device_ids())

    async def refresh_vitals(self):
        await self.poll_cache.refresh()

    async def get_patient_snapshot(self, patient_id: str,
                                   now: Optional[datetime] = None) -> Optional[PatientSnapshot]:
        patient = self.directory.get_patient(patient_id)
        if patient is None:
            return None
        return await self._snapshot(patient, now)

    async def list_snapshots(self, search: Optional[str] = None,
                             now: Optional[datetime] = None) -> List[PatientSnapshot]:
        """Snapshots for every patient, optionally filtered by name or diagnosis."""
        patients = list(self.directory.patients.values())
        if search:
            term = search.lower()
            patients = [
                p for p in patients
                if term in p.personal_info.name.lower()
                or term in (p.current_status.diagnosis or '').lower()
            ]
        return [await self._snapshot(p, now) for p in patients]

    async def _snapshot(self, patient: Patient, now: Optional[datetime]) -> PatientSnapshot:
        resolution = self.merger.resolve(patient.patient_id, self.directory.devices, self.poll_cache)
        device = self.merger.resolver.resolve(patient.patient_id, self.directory.devices)
        device_id = device.device_id if device else resolution.device_id
        prediction, is_fresh = await resolve_prediction(patient, self.prediction_cache, now=now)

        return PatientSnapshot(
            patient=patient,
            vitals=resolution.reading,
            vitals_source=resolution.source,
            device_id=device_id,
            is_live=resolution.is_live,
            last_live_update=self.poll_cache.last_updated.get(device_id) if resolution.is_live else None,
            prediction=prediction,
            prediction_is_fresh=is_fresh,
            prediction_loading=self._prediction_loading.get(patient.patient_id, False),
            prediction_error=self._prediction_errors.get(patient.patient_id),
        )

    async def request_prediction(self, patient_id: str,
                                 now: Optional[datetime] = None) -> Optional[PredictionEntry]:
        """
        Call the remote risk service for one patient and cache the result.

        A failure is scoped to this patient: it is recorded for display and
        None is returned.
        """
        self._prediction_loading[patient_id] = True
        try:
            payload = await self.client.get_risk_prediction(patient_id)
        except TransportError as e:
            self._prediction_errors[patient_id] = str(e)
            logger.warning(f"Failed to get health prediction for patient {patient_id}: {e}")
            return None
        finally:
            self._prediction_loading[patient_id] = False

        self._prediction_errors.pop(patient_id, None)
        entry = await self.prediction_cache.put(patient_id, payload, now=now)
        logger.info(f"Prediction stored for patient {patient_id}: {entry.risk_level}")
        return entry

    def dismiss_errors(self):
        self.poll_cache.clear_error()
        self._prediction_errors.clear()

    def room_environment(self, room_id: str) -> Optional[EnvironmentalReading]:
        return latest_environmental(self.directory.devices, room_id)

    def active_alerts(self) -> List[ActiveAlert]:
        return sorted_by_recency(active_alerts(self.directory.devices))

    def status(self) -> Dict[str, Any]:
        return {
            "patients": len(self.directory.patients),
            "devices": len(self.directory.devices),
            "devices_online": sum(1 for d in self.directory.devices.values() if d.is_online),
            "polling": self.poll_cache.active_timers > 0,
            "vitals_loading": self.poll_cache.loading,
            "vitals_error": self.poll_cache.error,
            "directory_error": self.directory.error,
            "alerts_error": self.alert_feed.error,
            "cached_predictions": len(self.prediction_cache),
        }
