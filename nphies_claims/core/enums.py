"""
Core Enumerations for the NPHIES Encoding Subsystem.
Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19
"""

from enum import Enum


# =============================================================================
# Request Enums
# =============================================================================


class ClaimCategory(str, Enum):
    """Claim categories, one encoder each."""

    PROFESSIONAL = "professional"
    INSTITUTIONAL = "institutional"
    DENTAL = "dental"  # Encoded as claim type "oral"
    VISION = "vision"
    PHARMACY = "pharmacy"


class RequestUse(str, Enum):
    """Claim.use values."""

    PREAUTHORIZATION = "preauthorization"  # Before service delivery
    CLAIM = "claim"  # Billing after service delivery


class EncounterClass(str, Enum):
    """Internal encounter class keys (mapped to v3-ActCode)."""

    AMBULATORY = "ambulatory"
    OUTPATIENT = "outpatient"
    EMERGENCY = "emergency"
    HOME = "home"
    INPATIENT = "inpatient"
    DAYCASE = "daycase"
    TELEMEDICINE = "telemedicine"
    VIRTUAL = "virtual"


class ClaimSubType(str, Enum):
    """claim-subtype codes."""

    INPATIENT = "ip"
    OUTPATIENT = "op"
    EMERGENCY = "emr"


class MessageEvent(str, Enum):
    """ksa-message-events codes."""

    PRIORAUTH_REQUEST = "priorauth-request"
    PRIORAUTH_RESPONSE = "priorauth-response"
    CLAIM_REQUEST = "claim-request"
    CLAIM_RESPONSE = "claim-response"
    CANCEL_REQUEST = "cancel-request"
    CANCEL_RESPONSE = "cancel-response"
    BATCH_RESPONSE = "batch-response"


# =============================================================================
# Response Enums
# =============================================================================


class ResponseOutcome(str, Enum):
    """ClaimResponse.outcome values."""

    QUEUED = "queued"
    COMPLETE = "complete"
    PARTIAL = "partial"
    ERROR = "error"


class AdjudicationOutcome(str, Enum):
    """extension-adjudication-outcome codes."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIAL = "partial"
    PENDED = "pended"


class CancelReason(str, Enum):
    """task-reason-code values for cancellation."""

    WRONG_INFORMATION = "WI"
    NOT_PERFORMED = "NP"
    ALREADY_SUBMITTED = "TAS"
    SERVICE_UNAVAILABLE = "SU"
    RESUBMISSION = "resubmission"
