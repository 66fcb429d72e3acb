from typing import Dict, List, Optional


class VitalSyncError(Exception):
    """Base exception for the reconciliation engine"""
    pass


class TransportError(VitalSyncError):
    """Raised when a call to the hospital API fails (network, timeout, non-2xx, bad body)"""

    def __init__(self, message: str, status: Optional[int] = None,
                 validation_errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.status = status
        self.validation_errors = validation_errors or {}


class ConfigurationError(VitalSyncError):
    """Raised when engine configuration fails validation"""
    pass
