"""
Asynchronous client for the hospital JSON API.

Only the endpoints the reconciliation engine consumes are covered: the
patient and device directories, the per-device latest reading, the remote
risk prediction and monitor assignment.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..models.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_TIMEOUT_SECONDS = 30.0


class Endpoints:
    patients = "/patients/"
    devices = "/iotData/"

    @staticmethod
    def latest_vitals(device_id: str) -> str:
        return f"/iotData/{device_id}/vitals/latest/"

    @staticmethod
    def risk_prediction(patient_id: str) -> str:
        return f"/predict/risk/{patient_id}/"

    @staticmethod
    def assign_patient(device_id: str) -> str:
        return f"/iotData/{device_id}/assign-patient/"

    @staticmethod
    def unassign_patient(device_id: str) -> str:
        return f"/iotData/{device_id}/unassign-patient/"


@dataclass
class AssignmentResult:
    success: bool
    message: str
    error: Optional[str] = None


def _flatten_validation_errors(detail: Any) -> Dict[str, List[str]]:
    """Group FastAPI 422 ``detail`` items by the last element of their ``loc``."""
    if not isinstance(detail, list):
        return {"general": [str(detail)]}

    errors: Dict[str, List[str]] = {}
    for item in detail:
        if not isinstance(item, dict):
            continue
        loc = item.get('loc') or ['general']
        errors.setdefault(str(loc[-1]), []).append(str(item.get('msg', '')))
    return errors


class HospitalApiClient:
    """Thin aiohttp wrapper; every failure surfaces as ``TransportError``."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL,
                 timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> 'HospitalApiClient':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None if self._owns_session else self._session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'}
            )
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        url = f"{self.base_url}{path}"
        return url if url.endswith('/') else f"{url}/"

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, self._url(path), json=payload, timeout=self.timeout) as response:
                return await self._handle_response(response)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Network error on {method} {path}: {e}") from e

    async def _handle_response(self, response: aiohttp.ClientResponse) -> Any:
        status = response.status
        content_type = response.headers.get('Content-Type', '')

        if 'application/json' not in content_type:
            if status >= 400:
                raise TransportError(f"HTTP {status}", status=status)
            raise TransportError(f"Invalid response format: {content_type}", status=status)

        try:
            data = await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            raise TransportError("Failed to parse response", status=status) from e

        if status == 422 and isinstance(data, dict) and 'detail' in data:
            raise TransportError(
                "Validation Error",
                status=status,
                validation_errors=_flatten_validation_errors(data['detail'])
            )

        if status >= 400:
            detail = data.get('detail') if isinstance(data, dict) else None
            raise TransportError(f"HTTP {status}: {detail or 'request failed'}", status=status)

        return data

    async def get_patients(self) -> Dict[str, Any]:
        data = await self._request('GET', Endpoints.patients)
        return data if isinstance(data, dict) else {}

    async def get_devices(self) -> Dict[str, Any]:
        data = await self._request('GET', Endpoints.devices)
        return data if isinstance(data, dict) else {}

    async def fetch_latest_vitals(self, device_id: str) -> Optional[Dict[str, Any]]:
        """
        Latest reading for one device.

        The endpoint answers ``{"timestamp": ..., "data": {...}}``; only the
        reading is returned, or None when the device has nothing yet.
        """
        data = await self._request('GET', Endpoints.latest_vitals(device_id))
        if not isinstance(data, dict):
            return None
        reading = data.get('data')
        return reading if isinstance(reading, dict) else None

    async def get_risk_prediction(self, patient_id: str) -> Dict[str, Any]:
        data = await self._request('GET', Endpoints.risk_prediction(patient_id))
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected prediction payload for patient {patient_id}")
        return data

    async def assign_patient_to_monitor(self, device_id: str, patient_id: str) -> AssignmentResult:
        try:
            data = await self._request('POST', Endpoints.assign_patient(device_id), {'patientId': patient_id})
        except TransportError as e:
            logger.warning(f"Failed to assign patient {patient_id} to monitor {device_id}: {e}")
            return AssignmentResult(False, 'Failed to assign patient to monitor', str(e))

        message = data.get('message') if isinstance(data, dict) else None
        return AssignmentResult(True, message or 'Patient assigned to monitor successfully')

    async def unassign_patient_from_monitor(self, device_id: str) -> AssignmentResult:
        try:
            data = await self._request('DELETE', Endpoints.unassign_patient(device_id))
        except TransportError as e:
            logger.warning(f"Failed to unassign patient from monitor {device_id}: {e}")
            return AssignmentResult(False, 'Failed to unassign patient from monitor', str(e))

        message = data.get('message') if isinstance(data, dict) else None
        return AssignmentResult(True, message or 'Patient unassigned from monitor successfully')
