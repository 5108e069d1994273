"""
Clients package for the Fleet Console.

Contains the Control API REST client.
"""

from .control_api import ControlApiClient, ControlApiError

__all__ = [
    "ControlApiClient",
    "ControlApiError",
]
