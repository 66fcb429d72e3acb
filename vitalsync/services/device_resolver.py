"""
Device-patient resolution.

Devices were originally single-patient, with the patient id embedded in each
reading; newer records carry an explicit ``currentPatientId`` assignment.
Both association signals are honored, explicit assignment first.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..models.device import Device
from ..models.readings import VitalReading

logger = logging.getLogger(__name__)


class ResolutionRule(Enum):
    ASSIGNMENT = "assignment"
    LEGACY_READING = "legacy_reading"


def _assigned_to(device: Device, patient_id: str) -> bool:
    return device.current_patient_id == patient_id


def _latest_reading_references(device: Device, patient_id: str) -> bool:
    latest = device.latest_reading()
    return isinstance(latest, VitalReading) and latest.patient_id == patient_id


class DeviceResolver:
    """
    Ordered chain of association rules.

    Each rule is evaluated over every device before the next rule is tried,
    so an explicit assignment anywhere beats a legacy reference elsewhere.
    """

    def __init__(self):
        self.rules: List[Tuple[ResolutionRule, Callable[[Device, str], bool]]] = [
            (ResolutionRule.ASSIGNMENT, _assigned_to),
            (ResolutionRule.LEGACY_READING, _latest_reading_references),
        ]

    def resolve_with_rule(self, patient_id: str,
                          devices: Dict[str, Device]) -> Tuple[Optional[Device], Optional[ResolutionRule]]:
        if not patient_id:
            return None, None

        for rule, matches in self.rules:
            for device in devices.values():
                if matches(device, patient_id):
                    logger.debug(f"Resolved patient {patient_id} to device {device.device_id} via {rule.value}")
                    return device, rule

        logger.debug(f"No device found for patient {patient_id}")
        return None, None

    def resolve(self, patient_id: str, devices: Dict[str, Device]) -> Optional[Device]:
        device, _ = self.resolve_with_rule(patient_id, devices)
        return device


_default_resolver = DeviceResolver()


def resolve_device(patient_id: str, devices: Dict[str, Device]) -> Optional[Device]:
    """Device currently serving ``patient_id``, or None."""
    return _default_resolver.resolve(patient_id, devices)
