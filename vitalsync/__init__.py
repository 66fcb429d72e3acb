"""
VitalSync - live clinical data reconciliation engine.
"""

__version__ = "1.0.0"
