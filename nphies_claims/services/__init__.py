"""
Services Layer for NPHIES Claims Encoding.

Exports the orchestration service.
"""

from nphies_claims.services.nphies.nphies_service import (
    EncodeResult,
    EncodeStatus,
    NphiesService,
    get_nphies_service,
)

__all__ = [
    "EncodeResult",
    "EncodeStatus",
    "NphiesService",
    "get_nphies_service",
]
