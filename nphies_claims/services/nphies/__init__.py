"""
NPHIES Exchange Services.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Provides NPHIES FHIR message encoding and decoding:
- Category encoders (professional, institutional, dental, vision, pharmacy)
- Encoder registry and category inference
- Batch claim encoder
- Cancel-request (Task) encoder
- Adjudication response decoder
"""

from nphies_claims.services.nphies.fhir_base import (
    BundleResourceIds,
    EncodeContext,
    NphiesDecodeError,
    NphiesValidationError,
    UnknownCategoryError,
)
from nphies_claims.services.nphies.encoder_base import ClaimEncoder
from nphies_claims.services.nphies.professional_encoder import ProfessionalEncoder
from nphies_claims.services.nphies.institutional_encoder import InstitutionalEncoder
from nphies_claims.services.nphies.oral_encoder import OralEncoder
from nphies_claims.services.nphies.vision_encoder import VisionEncoder
from nphies_claims.services.nphies.pharmacy_encoder import PharmacyEncoder
from nphies_claims.services.nphies.registry import (
    EncoderRegistry,
    build_default_registry,
    infer_category,
    normalize_category,
)
from nphies_claims.services.nphies.batch_encoder import (
    MAX_BATCH_SIZE,
    MIN_BATCH_SIZE,
    BatchClaimEncoder,
    BatchEncoding,
    validate_batch,
)
from nphies_claims.services.nphies.cancel_encoder import CancelEncoder, map_cancel_reason
from nphies_claims.services.nphies.response_decoder import (
    AdjudicationEntry,
    AdjudicationResult,
    BatchAdjudicationResult,
    ItemResult,
    ResponseDecoder,
    ResponseIssue,
    TotalEntry,
    TransferInfo,
    ValidationReport,
    validate_response_bundle,
)
from nphies_claims.services.nphies.nphies_service import (
    BatchEncodeResult,
    EncodeResult,
    EncodeStatus,
    NphiesService,
    get_nphies_service,
)

__all__ = [
    # Base
    "BundleResourceIds",
    "EncodeContext",
    "NphiesDecodeError",
    "NphiesValidationError",
    "UnknownCategoryError",
    "ClaimEncoder",
    # Encoders
    "ProfessionalEncoder",
    "InstitutionalEncoder",
    "OralEncoder",
    "VisionEncoder",
    "PharmacyEncoder",
    # Registry
    "EncoderRegistry",
    "build_default_registry",
    "infer_category",
    "normalize_category",
    # Batch
    "MAX_BATCH_SIZE",
    "MIN_BATCH_SIZE",
    "BatchClaimEncoder",
    "BatchEncoding",
    "validate_batch",
    # Cancel
    "CancelEncoder",
    "map_cancel_reason",
    # Decoder
    "AdjudicationEntry",
    "AdjudicationResult",
    "BatchAdjudicationResult",
    "ItemResult",
    "ResponseDecoder",
    "ResponseIssue",
    "TotalEntry",
    "TransferInfo",
    "ValidationReport",
    "validate_response_bundle",
    # Service
    "BatchEncodeResult",
    "EncodeResult",
    "EncodeStatus",
    "NphiesService",
    "get_nphies_service",
]
