from .readings import (
    BloodPressure,
    DeviceStatus,
    EnvironmentalReading,
    Reading,
    ReadingKind,
    VitalReading,
    is_vital_reading,
    parse_reading,
)
from .device import (
    Device,
    DeviceAlert,
    DeviceInfo,
    DeviceType,
    AlertType,
    latest_environmental,
    latest_in_bucket,
    parse_device_directory,
)
from .patient import Patient, PatientStatus, PersonalInfo, CurrentStatus, MedicalHistory, PredictionSnapshot, parse_patient_directory
from .prediction import PredictionEntry
from .errors import VitalSyncError, TransportError, ConfigurationError

__all__ = [
    'BloodPressure',
    'DeviceStatus',
    'EnvironmentalReading',
    'Reading',
    'ReadingKind',
    'VitalReading',
    'is_vital_reading',
    'parse_reading',
    'Device',
    'DeviceAlert',
    'DeviceInfo',
    'DeviceType',
    'AlertType',
    'latest_environmental',
    'latest_in_bucket',
    'parse_device_directory',
    'Patient',
    'PatientStatus',
    'PersonalInfo',
    'CurrentStatus',
    'MedicalHistory',
    'PredictionSnapshot',
    'parse_patient_directory',
    'PredictionEntry',
    'VitalSyncError',
    'TransportError',
    'ConfigurationError'
]
