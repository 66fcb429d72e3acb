from .api_client import HospitalApiClient, AssignmentResult, Endpoints

__all__ = [
    'HospitalApiClient',
    'AssignmentResult',
    'Endpoints'
]
