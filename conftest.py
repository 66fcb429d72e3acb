"""
Global pytest configuration for VitalSync.

Registers markers and provides shared fixtures: raw directory records in the
backend's wire shape, parsed directories and a mock Redis client.
"""

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from vitalsync.models import parse_device_directory, parse_patient_directory


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring multiple components"
    )
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add automatic markers."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        if "unit" in item.nodeid:
            item.add_marker(pytest.mark.unit)


def pytest_runtest_setup(item):
    if item.get_closest_marker("integration"):
        if os.environ.get("SKIP_INTEGRATION_TESTS", "false").lower() == "true":
            pytest.skip("Integration tests skipped in this environment")


def make_vitals(heart_rate=72, oxygen_level=98, temperature=36.8,
                systolic=120, diastolic=80, timestamp="2024-05-01_10-00-00",
                patient_id=None, **extra):
    """Raw vital reading in the backend's camelCase wire shape."""
    data = {
        "heartRate": heart_rate,
        "oxygenLevel": oxygen_level,
        "temperature": temperature,
        "bloodPressure": {"systolic": systolic, "diastolic": diastolic},
        "deviceStatus": "online",
        "batteryLevel": 87,
        "signalStrength": 92,
        "timestamp": timestamp,
    }
    if patient_id is not None:
        data["patientId"] = patient_id
    data.update(extra)
    return data


@pytest.fixture
def vitals_factory():
    return make_vitals


@pytest.fixture
def raw_devices():
    """Device directory covering both vitals layouts and mixed alert states."""
    return {
        "MON-1": {
            "deviceInfo": {"type": "vitals_monitor", "roomId": "R101", "currentPatientId": "P1"},
            "vitals": {
                "P1": {
                    "2024-05-01_10-00-00": make_vitals(heart_rate=70, timestamp="2024-05-01_10-00-00"),
                    "2024-05-01_11-00-00": make_vitals(heart_rate=75, timestamp="2024-05-01_11-00-00"),
                },
            },
            "alerts": {
                "A1": {"type": "warning", "message": "Low battery", "timestamp": "2024-05-01_09-00-00"},
                "A2": {"type": "critical", "message": "SpO2 low", "timestamp": "2024-05-01T10:00:00Z"},
                "A3": {"type": "info", "message": "Cleared", "timestamp": "2024-05-01_12-00-00",
                       "resolved": True, "resolvedBy": "nurse-1"},
            },
        },
        "MON-2": {
            "deviceInfo": {"type": "vitals_monitor", "roomId": "R102"},
            "vitals": {
                "2024-05-01_08-00-00": make_vitals(heart_rate=88, timestamp="2024-05-01_08-00-00",
                                                   patient_id="P2"),
            },
            "alerts": {},
        },
        "ENV-1": {
            "deviceInfo": {"type": "environmental_sensor", "roomId": "R101"},
            "vitals": {
                "2024-05-01_10-00-00": {"temperature": 21.5, "humidity": 40,
                                         "timestamp": "2024-05-01_10-00-00"},
            },
        },
    }


@pytest.fixture
def raw_patients():
    return {
        "P1": {
            "personalInfo": {"name": "Ada Lovelace", "age": 36, "roomId": "R101"},
            "currentStatus": {"diagnosis": "Pneumonia", "status": "critical"},
            "predictions": {"riskLevel": "High", "riskScore": 0.82, "confidence": 0.9,
                            "predictedAt": "2024-05-01T09:00:00Z"},
        },
        "P2": {
            "personalInfo": {"name": "Alan Turing", "age": 41, "roomId": "R102"},
            "currentStatus": {"diagnosis": "Post-operative", "status": "stable"},
        },
        "P3": {
            "personalInfo": {"name": "Grace Hopper", "age": 79},
            "currentStatus": {"diagnosis": "Observation", "status": "recovering"},
        },
    }


@pytest.fixture
def devices(raw_devices):
    return parse_device_directory(raw_devices)


@pytest.fixture
def patients(raw_patients):
    return parse_patient_directory(raw_patients)


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    mock = AsyncMock()
    mock.get.return_value = None
    mock.set.return_value = True
    mock.delete.return_value = 1
    return mock


@pytest.fixture
def test_timestamp():
    """Standard test timestamp."""
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
