import pytest
from datetime import datetime, timezone

from vitalsync.models import (
    AlertType,
    Device,
    DeviceAlert,
    DeviceStatus,
    DeviceType,
    EnvironmentalReading,
    PatientStatus,
    PredictionEntry,
    ReadingKind,
    VitalReading,
    latest_environmental,
    latest_in_bucket,
    parse_device_directory,
    parse_patient_directory,
    parse_reading,
)


class TestReadingParsing:
    """Tagged-union parsing of raw device readings."""

    def test_vital_reading_from_wire_shape(self, vitals_factory):
        reading = parse_reading(vitals_factory(heart_rate=81, patient_id="P1", respiratoryRate=16))

        assert isinstance(reading, VitalReading)
        assert reading.kind == ReadingKind.VITAL
        assert reading.heart_rate == 81
        assert reading.blood_pressure.systolic == 120
        assert reading.device_status == DeviceStatus.ONLINE
        assert reading.patient_id == "P1"
        assert reading.respiratory_rate == 16

    def test_environmental_reading_by_discriminant(self):
        reading = parse_reading({"temperature": 21.0, "humidity": 45, "co2Level": 600})

        assert isinstance(reading, EnvironmentalReading)
        assert reading.co2_level == 600
        assert reading.device_status == DeviceStatus.OFFLINE

    def test_explicit_kind_wins(self, vitals_factory):
        raw = vitals_factory(humidity=40, kind="environmental")
        assert isinstance(parse_reading(raw), EnvironmentalReading)

    @pytest.mark.parametrize("mutation", [
        {"heartRate": "72"},
        {"heartRate": True},
        {"oxygenLevel": None},
        {"bloodPressure": "120/80"},
        {"bloodPressure": {"systolic": 120}},
    ])
    def test_malformed_vital_reading_is_dropped(self, vitals_factory, mutation):
        raw = vitals_factory()
        raw.update(mutation)
        assert parse_reading(raw) is None

    @pytest.mark.parametrize("raw", [None, "reading", 42, [], {}, {"foo": 1}])
    def test_non_reading_inputs(self, raw):
        assert parse_reading(raw) is None

    def test_unknown_device_status_defaults_offline(self, vitals_factory):
        reading = parse_reading(vitals_factory(deviceStatus="exploded"))
        assert reading.device_status == DeviceStatus.OFFLINE

    def test_to_dict_uses_camel_case(self, vitals_factory):
        data = parse_reading(vitals_factory(patient_id="P1")).to_dict()
        assert data["kind"] == "vital"
        assert data["bloodPressure"] == {"systolic": 120, "diastolic": 80}
        assert data["patientId"] == "P1"


class TestDeviceModel:

    def test_vitals_split_into_patient_and_legacy_buckets(self, devices):
        mon1 = devices["MON-1"]
        mon2 = devices["MON-2"]

        assert set(mon1.patient_vitals["P1"]) == {"2024-05-01_10-00-00", "2024-05-01_11-00-00"}
        assert mon1.legacy_vitals == {}
        assert mon2.patient_vitals == {}
        assert mon2.latest_reading().patient_id == "P2"

    def test_device_info(self, devices):
        assert devices["MON-1"].current_patient_id == "P1"
        assert devices["MON-2"].current_patient_id is None
        assert devices["ENV-1"].is_environmental_sensor
        assert devices["MON-1"].info.device_type == DeviceType.VITALS_MONITOR

    def test_unknown_device_type(self):
        device = Device.from_dict("X", {"deviceInfo": {"type": "toaster"}})
        assert device.info.device_type == DeviceType.UNKNOWN

    def test_alert_defaults(self):
        alert = DeviceAlert.from_dict({"type": "siren"})
        assert alert.alert_type == AlertType.INFO
        assert alert.message == "No message"
        assert alert.resolved is False

    def test_malformed_readings_dropped_from_bucket(self, vitals_factory):
        device = Device.from_dict("X", {
            "vitals": {
                "P1": {
                    "2024-05-01_10-00-00": vitals_factory(heart_rate=70),
                    "2024-05-01_11-00-00": vitals_factory(heart_rate="fast"),
                }
            }
        })
        assert list(device.patient_vitals["P1"]) == ["2024-05-01_10-00-00"]

    def test_latest_in_bucket_is_lexicographic(self, devices):
        assert latest_in_bucket(devices["MON-1"].patient_vitals["P1"]).heart_rate == 75
        assert latest_in_bucket({}) is None
        assert latest_in_bucket(None) is None

    def test_status_follows_latest_reading(self, devices, vitals_factory):
        assert devices["MON-1"].status == DeviceStatus.ONLINE
        assert devices["MON-1"].is_online
        # no deviceStatus on the sensor's only reading
        assert devices["ENV-1"].status == DeviceStatus.OFFLINE

        device = Device.from_dict("X", {
            "vitals": {
                "P1": {
                    "2024-05-01_10-00-00": vitals_factory(deviceStatus="online"),
                    "2024-05-01_11-00-00": vitals_factory(deviceStatus="maintenance"),
                }
            }
        })
        assert device.status == DeviceStatus.MAINTENANCE
        assert not device.is_online

    def test_device_without_readings_is_offline(self):
        device = Device.from_dict("X", {"deviceInfo": {"type": "vitals_monitor"}})
        assert device.status == DeviceStatus.OFFLINE
        assert not device.is_online

    def test_directory_skips_non_mapping_records(self):
        devices = parse_device_directory({"A": {}, "B": "broken", "C": None})
        assert list(devices) == ["A"]
        assert parse_device_directory(["not", "a", "map"]) == {}


class TestLatestEnvironmental:
    """Room environment lookup from environmental sensors."""

    def test_room_with_sensor(self, devices):
        reading = latest_environmental(devices, "R101")

        assert isinstance(reading, EnvironmentalReading)
        assert reading.temperature == 21.5
        assert reading.humidity == 40

    def test_room_without_sensor(self, devices):
        assert latest_environmental(devices, "R102") is None
        assert latest_environmental(devices, "R999") is None

    def test_first_sensor_in_room_is_used(self):
        devices = parse_device_directory({
            "ENV-A": {"deviceInfo": {"type": "environmental_sensor", "roomId": "R1"}},
            "ENV-B": {
                "deviceInfo": {"type": "environmental_sensor", "roomId": "R1"},
                "vitals": {"2024-05-01_10-00-00": {"temperature": 20, "humidity": 35}},
            },
        })
        assert latest_environmental(devices, "R1") is None

    def test_sensor_latest_reading_must_be_environmental(self, vitals_factory):
        devices = parse_device_directory({
            "ENV-A": {
                "deviceInfo": {"type": "environmental_sensor", "roomId": "R1"},
                "vitals": {
                    "2024-05-01_09-00-00": {"temperature": 20, "humidity": 35},
                    "2024-05-01_10-00-00": vitals_factory(),
                },
            },
        })
        assert latest_environmental(devices, "R1") is None


class TestPatientModel:

    def test_patient_fields(self, patients):
        p1 = patients["P1"]
        assert p1.personal_info.name == "Ada Lovelace"
        assert p1.current_status.status == PatientStatus.CRITICAL
        assert p1.is_critical
        assert p1.prediction.risk_level == "High"
        assert patients["P2"].prediction is None

    def test_defaults_for_sparse_record(self):
        patients = parse_patient_directory({"P9": {"personalInfo": {"age": "old"}}})
        p9 = patients["P9"]
        assert p9.personal_info.name == "P9"
        assert p9.personal_info.age is None
        assert p9.current_status.status == PatientStatus.UNKNOWN


class TestPredictionEntry:

    @pytest.mark.parametrize("payload", [
        {"riskLevel": "High", "riskScore": 0.8, "confidence": 0.9},
        {"prediction": {"risk_level": "High", "risk_score": 0.8, "confidence": 0.9}},
        {"prediction_details": {"riskLevel": "High", "riskScore": 0.8, "confidence": 0.9}},
    ])
    def test_payload_envelopes(self, payload):
        entry = PredictionEntry.from_payload(payload)
        assert entry.risk_level == "High"
        assert entry.risk_score == 0.8
        assert entry.confidence == 0.9

    def test_missing_values_fall_back(self):
        entry = PredictionEntry.from_payload({"prediction": {"riskScore": "n/a"}})
        assert entry.risk_level == "Unknown"
        assert entry.risk_score == 0.0

    def test_stamped_fills_predicted_at(self):
        now = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        entry = PredictionEntry("Low", 0.1, 0.9).stamped(now)
        assert entry.last_updated == now
        assert entry.predicted_at == now.isoformat()

    def test_stamped_keeps_remote_predicted_at(self):
        now = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        entry = PredictionEntry("Low", 0.1, 0.9, predicted_at="2024-05-01T11:00:00Z").stamped(now)
        assert entry.predicted_at == "2024-05-01T11:00:00Z"

    def test_dict_round_trip_keeps_last_updated(self):
        now = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        entry = PredictionEntry("Low", 0.1, 0.9, ["Rest"]).stamped(now)
        restored = PredictionEntry.from_dict(entry.to_dict())
        assert restored == entry
