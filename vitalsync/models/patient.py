import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class PatientStatus(Enum):
    CRITICAL = "critical"
    STABLE = "stable"
    RECOVERING = "recovering"
    DISCHARGED = "discharged"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> 'PatientStatus':
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        return cls.UNKNOWN


@dataclass
class PersonalInfo:
    name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    room_id: Optional[str] = None
    bed_id: Optional[str] = None
    ward: Optional[str] = None
    admission_date: Optional[str] = None


@dataclass
class CurrentStatus:
    diagnosis: Optional[str] = None
    status: PatientStatus = PatientStatus.UNKNOWN
    last_updated: Optional[str] = None


@dataclass
class MedicalHistory:
    conditions: List[str] = field(default_factory=list)
    medications: List[Dict[str, Any]] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)


@dataclass
class PredictionSnapshot:
    """Prediction embedded in the patient record by the backend."""
    risk_level: Optional[str] = None
    risk_score: Optional[float] = None
    confidence: Optional[float] = None
    predicted_at: Optional[str] = None
    factors: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PredictionSnapshot':
        factors = data.get('factors')
        return cls(
            risk_level=data.get('riskLevel') or data.get('risk_level'),
            risk_score=data.get('riskScore', data.get('risk_score')),
            confidence=data.get('confidence'),
            predicted_at=data.get('predictedAt') or data.get('predicted_at'),
            factors=list(factors) if isinstance(factors, list) else [],
        )


@dataclass
class Patient:
    patient_id: str
    personal_info: PersonalInfo
    current_status: CurrentStatus = field(default_factory=CurrentStatus)
    medical_history: MedicalHistory = field(default_factory=MedicalHistory)
    prediction: Optional[PredictionSnapshot] = None

    @classmethod
    def from_dict(cls, patient_id: str, data: Dict[str, Any]) -> 'Patient':
        personal = _section(data, 'personalInfo')
        status = _section(data, 'currentStatus')
        history = _section(data, 'medicalHistory')
        predictions = data.get('predictions')

        age = personal.get('age')
        return cls(
            patient_id=patient_id,
            personal_info=PersonalInfo(
                name=personal.get('name') or patient_id,
                age=age if isinstance(age, int) and not isinstance(age, bool) else None,
                gender=personal.get('gender'),
                room_id=personal.get('roomId'),
                bed_id=personal.get('bedId'),
                ward=personal.get('ward'),
                admission_date=personal.get('admissionDate'),
            ),
            current_status=CurrentStatus(
                diagnosis=status.get('diagnosis'),
                status=PatientStatus.parse(status.get('status')),
                last_updated=status.get('lastUpdated'),
            ),
            medical_history=MedicalHistory(
                conditions=list(history.get('conditions') or []),
                medications=list(history.get('medications') or []),
                allergies=list(history.get('allergies') or []),
            ),
            prediction=PredictionSnapshot.from_dict(predictions) if isinstance(predictions, dict) and predictions else None,
        )

    @property
    def is_critical(self) -> bool:
        return self.current_status.status == PatientStatus.CRITICAL


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def parse_patient_directory(raw: Any) -> Dict[str, Patient]:
    """Parse the patient directory payload; non-mapping records are skipped."""
    patients: Dict[str, Patient] = {}
    if not isinstance(raw, dict):
        return patients

    for patient_id, data in raw.items():
        if not isinstance(data, dict):
            logger.debug(f"Skipping malformed patient record {patient_id}")
            continue
        patients[patient_id] = Patient.from_dict(patient_id, data)
    return patients
