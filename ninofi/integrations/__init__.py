"""External service clients.

Each client implements ``BaseIntegration`` and falls back to mock responses
when its API key is a ``mock_`` placeholder.
"""

from ninofi.integrations.base import BaseIntegration
from ninofi.integrations.maps import MapsClient
from ninofi.integrations.stripe_client import StripeClient

__all__ = [
    "BaseIntegration",
    "MapsClient",
    "StripeClient",
]
