import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .readings import DeviceStatus, EnvironmentalReading, Reading, looks_like_reading, parse_reading

logger = logging.getLogger(__name__)


class DeviceType(Enum):
    VITALS_MONITOR = "vitals_monitor"
    ENVIRONMENTAL_SENSOR = "environmental_sensor"
    BED_SENSOR = "bed_sensor"
    INFUSION_PUMP = "infusion_pump"
    VENTILATOR = "ventilator"
    UNKNOWN = "unknown"


class AlertType(Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class DeviceAlert:
    alert_type: AlertType
    message: str
    timestamp: Optional[str]
    resolved: bool = False
    resolved_by: Optional[str] = None
    resolved_at: Optional[str] = None
    assigned_to: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceAlert':
        try:
            alert_type = AlertType(data.get('type'))
        except ValueError:
            alert_type = AlertType.INFO

        timestamp = data.get('timestamp')
        return cls(
            alert_type=alert_type,
            message=data.get('message') or 'No message',
            timestamp=timestamp if isinstance(timestamp, str) else None,
            resolved=bool(data.get('resolved', False)),
            resolved_by=data.get('resolvedBy'),
            resolved_at=data.get('resolvedAt'),
            assigned_to=data.get('assignedTo'),
        )

    def to_dict(self) -> dict:
        return {
            "type": self.alert_type.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "resolved": self.resolved,
            "resolvedBy": self.resolved_by,
            "resolvedAt": self.resolved_at,
            "assignedTo": self.assigned_to,
        }


@dataclass
class DeviceInfo:
    device_type: DeviceType
    room_id: Optional[str] = None
    bed_id: Optional[str] = None
    current_patient_id: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceInfo':
        try:
            device_type = DeviceType(data.get('type'))
        except ValueError:
            device_type = DeviceType.UNKNOWN

        return cls(
            device_type=device_type,
            room_id=data.get('roomId'),
            bed_id=data.get('bedId'),
            current_patient_id=data.get('currentPatientId') or None,
            manufacturer=data.get('manufacturer'),
            model=data.get('model'),
        )


@dataclass
class Device:
    """
    A monitoring or sensor device as held in the device directory.

    Vitals are split at parse time into the patient-scoped structure
    (``patient_vitals[patient_id][timestamp]``) and the legacy single
    aggregate bucket (``legacy_vitals[timestamp]``).
    """
    device_id: str
    info: DeviceInfo
    patient_vitals: Dict[str, Dict[str, Reading]] = field(default_factory=dict)
    legacy_vitals: Dict[str, Reading] = field(default_factory=dict)
    alerts: Dict[str, DeviceAlert] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, device_id: str, data: Dict[str, Any]) -> 'Device':
        info_data = data.get('deviceInfo')
        info = DeviceInfo.from_dict(info_data if isinstance(info_data, dict) else {})

        patient_vitals: Dict[str, Dict[str, Reading]] = {}
        legacy_vitals: Dict[str, Reading] = {}
        raw_vitals = data.get('vitals')
        if isinstance(raw_vitals, dict):
            for key, value in raw_vitals.items():
                if looks_like_reading(value):
                    reading = parse_reading(value)
                    if reading is not None:
                        legacy_vitals[key] = reading
                elif isinstance(value, dict):
                    bucket = {}
                    for timestamp, raw_reading in value.items():
                        reading = parse_reading(raw_reading)
                        if reading is not None:
                            bucket[timestamp] = reading
                    patient_vitals[key] = bucket

        alerts: Dict[str, DeviceAlert] = {}
        raw_alerts = data.get('alerts')
        if isinstance(raw_alerts, dict):
            for alert_id, raw_alert in raw_alerts.items():
                if isinstance(raw_alert, dict):
                    alerts[alert_id] = DeviceAlert.from_dict(raw_alert)

        return cls(
            device_id=device_id,
            info=info,
            patient_vitals=patient_vitals,
            legacy_vitals=legacy_vitals,
            alerts=alerts,
        )

    @property
    def current_patient_id(self) -> Optional[str]:
        return self.info.current_patient_id

    @property
    def is_environmental_sensor(self) -> bool:
        return self.info.device_type == DeviceType.ENVIRONMENTAL_SENSOR

    @property
    def status(self) -> DeviceStatus:
        """Status reported by the latest reading; offline when there is none."""
        latest = self.latest_reading()
        return latest.device_status if latest is not None else DeviceStatus.OFFLINE

    @property
    def is_online(self) -> bool:
        return self.status == DeviceStatus.ONLINE

    def iter_readings(self) -> Iterator[Tuple[str, Reading]]:
        """Yield every (timestamp, reading) pair across the legacy and patient buckets."""
        yield from self.legacy_vitals.items()
        for bucket in self.patient_vitals.values():
            yield from bucket.items()

    def latest_reading(self) -> Optional[Reading]:
        """The device's single most recent reading across all buckets."""
        latest_key = None
        latest = None
        for timestamp, reading in self.iter_readings():
            if latest_key is None or timestamp > latest_key:
                latest_key = timestamp
                latest = reading
        return latest

    def patient_ids(self) -> List[str]:
        return list(self.patient_vitals.keys())


def latest_in_bucket(bucket: Optional[Dict[str, Reading]]) -> Optional[Reading]:
    """
    Latest reading in a timestamp-keyed bucket.

    Sentinel timestamps (``YYYY-MM-DD_HH-MM-SS``) are zero padded, so
    lexicographic order equals chronological order.
    """
    if not bucket:
        return None
    return bucket[max(bucket)]


def latest_environmental(devices: Dict[str, Device], room_id: str) -> Optional[EnvironmentalReading]:
    """
    Latest environmental reading for a room.

    Only the first environmental sensor assigned to the room is consulted; if
    its latest reading is not environmental the room has no data.
    """
    for device in devices.values():
        if device.is_environmental_sensor and device.info.room_id == room_id:
            latest = device.latest_reading()
            return latest if isinstance(latest, EnvironmentalReading) else None
    return None


def parse_device_directory(raw: Any) -> Dict[str, Device]:
    """Parse the device directory payload; non-mapping records are skipped."""
    devices: Dict[str, Device] = {}
    if not isinstance(raw, dict):
        return devices

    for device_id, data in raw.items():
        if not isinstance(data, dict):
            logger.debug(f"Skipping malformed device record {device_id}")
            continue
        devices[device_id] = Device.from_dict(device_id, data)
    return devices
