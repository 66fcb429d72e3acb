from .timestamps import normalize, parse_timestamp, format_timestamp, reference_time, to_sentinel
from .device_resolver import DeviceResolver, ResolutionRule, resolve_device
from .vitals_merger import VitalsMerger, VitalsResolution, current_vitals
from .live_poll_cache import LivePollCache, PollHandle
from .alert_aggregator import (
    ActiveAlert,
    AlertChangeTracker,
    AlertFeed,
    active_alerts,
    sorted_by_recency,
    prioritized,
    critical_only,
    warning_only,
)
from .prediction_cache import PredictionCache, InMemoryPredictionStore, RedisPredictionStore, resolve_prediction
from .hospital_directory import HospitalDirectory
from .monitoring_service import PatientMonitoringService, PatientSnapshot

__all__ = [
    'normalize',
    'parse_timestamp',
    'format_timestamp',
    'reference_time',
    'to_sentinel',
    'DeviceResolver',
    'ResolutionRule',
    'resolve_device',
    'VitalsMerger',
    'VitalsResolution',
    'current_vitals',
    'LivePollCache',
    'PollHandle',
    'ActiveAlert',
    'AlertChangeTracker',
    'AlertFeed',
    'active_alerts',
    'sorted_by_recency',
    'prioritized',
    'critical_only',
    'warning_only',
    'PredictionCache',
    'InMemoryPredictionStore',
    'RedisPredictionStore',
    'resolve_prediction',
    'HospitalDirectory',
    'PatientMonitoringService',
    'PatientSnapshot'
]
