import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


class ReadingKind(Enum):
    VITAL = "vital"
    ENVIRONMENTAL = "environmental"


class DeviceStatus(Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"

    @classmethod
    def parse(cls, value: Any) -> 'DeviceStatus':
        try:
            return cls(value)
        except ValueError:
            return cls.OFFLINE


def is_number(value: Any) -> bool:
    """True for int/float values; bools are rejected even though they subclass int."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _optional_number(value: Any) -> Optional[float]:
    return value if is_number(value) else None


@dataclass(frozen=True)
class BloodPressure:
    systolic: float
    diastolic: float

    def to_dict(self) -> dict:
        return {"systolic": self.systolic, "diastolic": self.diastolic}


@dataclass(frozen=True)
class VitalReading:
    heart_rate: float
    oxygen_level: float
    temperature: float
    blood_pressure: BloodPressure
    device_status: DeviceStatus = DeviceStatus.OFFLINE
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    timestamp: Optional[str] = None
    respiratory_rate: Optional[float] = None
    glucose: Optional[float] = None
    patient_id: Optional[str] = None

    kind = ReadingKind.VITAL

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['VitalReading']:
        """Build a reading from the camelCase wire shape, or None if any vital field is malformed."""
        bp = data.get('bloodPressure')
        if not isinstance(bp, dict):
            return None

        required = (
            data.get('heartRate'),
            data.get('oxygenLevel'),
            data.get('temperature'),
            bp.get('systolic'),
            bp.get('diastolic'),
        )
        if not all(is_number(v) for v in required):
            return None

        patient_id = data.get('patientId')
        return cls(
            heart_rate=data['heartRate'],
            oxygen_level=data['oxygenLevel'],
            temperature=data['temperature'],
            blood_pressure=BloodPressure(systolic=bp['systolic'], diastolic=bp['diastolic']),
            device_status=DeviceStatus.parse(data.get('deviceStatus')),
            battery_level=_optional_number(data.get('batteryLevel')),
            signal_strength=_optional_number(data.get('signalStrength')),
            timestamp=data.get('timestamp') if isinstance(data.get('timestamp'), str) else None,
            respiratory_rate=_optional_number(data.get('respiratoryRate')),
            glucose=_optional_number(data.get('glucose')),
            patient_id=patient_id if isinstance(patient_id, str) and patient_id else None,
        )

    def to_dict(self) -> dict:
        result = {
            "kind": self.kind.value,
            "heartRate": self.heart_rate,
            "oxygenLevel": self.oxygen_level,
            "temperature": self.temperature,
            "bloodPressure": self.blood_pressure.to_dict(),
            "deviceStatus": self.device_status.value,
            "batteryLevel": self.battery_level,
            "signalStrength": self.signal_strength,
            "timestamp": self.timestamp,
        }
        if self.respiratory_rate is not None:
            result["respiratoryRate"] = self.respiratory_rate
        if self.glucose is not None:
            result["glucose"] = self.glucose
        if self.patient_id is not None:
            result["patientId"] = self.patient_id
        return result


@dataclass(frozen=True)
class EnvironmentalReading:
    temperature: float
    humidity: float
    air_quality: Optional[float] = None
    co2_level: Optional[float] = None
    light_level: Optional[float] = None
    noise_level: Optional[float] = None
    pressure: Optional[float] = None
    device_status: DeviceStatus = DeviceStatus.OFFLINE
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    timestamp: Optional[str] = None

    kind = ReadingKind.ENVIRONMENTAL

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['EnvironmentalReading']:
        if not (is_number(data.get('temperature')) and is_number(data.get('humidity'))):
            return None

        return cls(
            temperature=data['temperature'],
            humidity=data['humidity'],
            air_quality=_optional_number(data.get('airQuality')),
            co2_level=_optional_number(data.get('co2Level')),
            light_level=_optional_number(data.get('lightLevel')),
            noise_level=_optional_number(data.get('noiseLevel')),
            pressure=_optional_number(data.get('pressure')),
            device_status=DeviceStatus.parse(data.get('deviceStatus')),
            battery_level=_optional_number(data.get('batteryLevel')),
            signal_strength=_optional_number(data.get('signalStrength')),
            timestamp=data.get('timestamp') if isinstance(data.get('timestamp'), str) else None,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "airQuality": self.air_quality,
            "co2Level": self.co2_level,
            "lightLevel": self.light_level,
            "noiseLevel": self.noise_level,
            "pressure": self.pressure,
            "deviceStatus": self.device_status.value,
            "batteryLevel": self.battery_level,
            "signalStrength": self.signal_strength,
            "timestamp": self.timestamp,
        }


Reading = Union[VitalReading, EnvironmentalReading]


def looks_like_reading(data: Any) -> bool:
    """Whether a raw mapping carries one of the reading discriminants."""
    return isinstance(data, dict) and ('heartRate' in data or 'humidity' in data)


def parse_reading(data: Any) -> Optional[Reading]:
    """
    Parse a raw reading into the tagged union.

    An explicit ``kind`` field wins; otherwise the presence of ``heartRate``
    or ``humidity`` decides. Malformed payloads return None and are treated
    as absent by every caller.
    """
    if isinstance(data, (VitalReading, EnvironmentalReading)):
        return data
    if not isinstance(data, dict):
        return None

    kind = data.get('kind')
    if kind == ReadingKind.VITAL.value or (kind is None and 'heartRate' in data):
        reading = VitalReading.from_dict(data)
    elif kind == ReadingKind.ENVIRONMENTAL.value or (kind is None and 'humidity' in data):
        reading = EnvironmentalReading.from_dict(data)
    else:
        reading = None

    if reading is None:
        logger.debug(f"Dropping malformed reading with keys {sorted(data.keys())}")
    return reading


def is_vital_reading(reading: Any) -> bool:
    return isinstance(reading, VitalReading)
