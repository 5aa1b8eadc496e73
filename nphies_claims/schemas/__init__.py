"""
Pydantic Schemas for NPHIES Encoding.

This module exports the request input models consumed by the encoders.
"""

from nphies_claims.schemas.nphies import (
    AttachmentInput,
    CancelRequestInput,
    ClaimInput,
    CoverageInput,
    DiagnosisInput,
    EncodeRequest,
    InsurerInput,
    ItemDetailInput,
    ItemInput,
    LensSpecificationInput,
    PatientInput,
    PolicyHolderInput,
    PractitionerInput,
    PrismInput,
    ProviderInput,
    SupportingInfoInput,
    VisionPrescriptionInput,
)

__all__ = [
    "AttachmentInput",
    "CancelRequestInput",
    "ClaimInput",
    "CoverageInput",
    "DiagnosisInput",
    "EncodeRequest",
    "InsurerInput",
    "ItemDetailInput",
    "ItemInput",
    "LensSpecificationInput",
    "PatientInput",
    "PolicyHolderInput",
    "PractitionerInput",
    "PrismInput",
    "ProviderInput",
    "SupportingInfoInput",
    "VisionPrescriptionInput",
]
