"""
Connectors Package for the Login Management Engine.

This package provides the partner identity API integration and its
in-memory mock backend.
"""

from typing import Any, Dict, Optional

from ..auth.token_cache import TokenCache
from .base_connector import BasePartnerConnector, ConnectorResult, MockPartnerConnector
from .partner_connector import PartnerConnector


def build_connector(
    config: Optional[Dict[str, Any]] = None,
    token_cache: Optional[TokenCache] = None,
    mock: bool = False,
) -> BasePartnerConnector:
    """Build the real connector, or the mock backend when asked for one."""
    if mock:
        return MockPartnerConnector(config)
    if token_cache is None:
        raise ValueError("A TokenCache is required for the partner connector")
    return PartnerConnector(token_cache, config)


__all__ = [
    "BasePartnerConnector",
    "MockPartnerConnector",
    "PartnerConnector",
    "ConnectorResult",
    "build_connector",
]
