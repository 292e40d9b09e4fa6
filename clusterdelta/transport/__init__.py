"""Control plane transport."""

from clusterdelta.transport.client import API_KEY_HEADER, ControlPlaneClient
from clusterdelta.transport.errors import ControlPlaneError, EnvelopeError, RetriesExhaustedError

__all__ = [
    "API_KEY_HEADER",
    "ControlPlaneClient",
    "ControlPlaneError",
    "EnvelopeError",
    "RetriesExhaustedError",
]
