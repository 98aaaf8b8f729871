"""
Authentication Package.

Provides the access-token cache shared by every partner API call.
"""

from .token_cache import TokenCache, token_preview

__all__ = [
    "TokenCache",
    "token_preview",
]
