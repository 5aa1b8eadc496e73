"""
NPHIES Encoder Registry.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Maps claim categories (and their synonyms) to encoder instances:
- normalize_category: free-text key -> ClaimCategory
- infer_category: request content -> ClaimCategory
- EncoderRegistry: explicit category -> encoder mapping, built once and
  passed to whoever needs it
"""

from typing import Dict, List, Mapping, Optional, Union

from nphies_claims.core.config import NphiesSettings
from nphies_claims.core.enums import ClaimCategory, EncounterClass
from nphies_claims.schemas.nphies import EncodeRequest
from nphies_claims.services.nphies.encoder_base import ClaimEncoder, coerce_request
from nphies_claims.services.nphies.fhir_base import UnknownCategoryError
from nphies_claims.services.nphies.institutional_encoder import InstitutionalEncoder
from nphies_claims.services.nphies.oral_encoder import OralEncoder
from nphies_claims.services.nphies.pharmacy_encoder import PharmacyEncoder
from nphies_claims.services.nphies.professional_encoder import ProfessionalEncoder
from nphies_claims.services.nphies.vision_encoder import VisionEncoder
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

CategoryKey = Union[ClaimCategory, str, None]


# =============================================================================
# Category Resolution
# =============================================================================


CATEGORY_SYNONYMS: Dict[str, ClaimCategory] = {
    "professional": ClaimCategory.PROFESSIONAL,
    "institutional": ClaimCategory.INSTITUTIONAL,
    "inpatient": ClaimCategory.INSTITUTIONAL,
    "daycase": ClaimCategory.INSTITUTIONAL,
    "dental": ClaimCategory.DENTAL,
    "oral": ClaimCategory.DENTAL,
    "vision": ClaimCategory.VISION,
    "ophthalmic": ClaimCategory.VISION,
    "optical": ClaimCategory.VISION,
    "pharmacy": ClaimCategory.PHARMACY,
    "medication": ClaimCategory.PHARMACY,
    "rx": ClaimCategory.PHARMACY,
}


def normalize_category(key: CategoryKey) -> ClaimCategory:
    """Map a category key or synonym to a category; unknown keys are professional."""
    if isinstance(key, ClaimCategory):
        return key
    if not key:
        return ClaimCategory.PROFESSIONAL
    category = CATEGORY_SYNONYMS.get(key.strip().lower())
    if category is None:
        logger.debug(f"Unknown category key '{key}', defaulting to professional")
        return ClaimCategory.PROFESSIONAL
    return category


def infer_category(request: EncodeRequest) -> ClaimCategory:
    """
    Category from request content.

    Checked in order: explicit auth type, inpatient/daycase class, vision
    prescription, dental markers, pharmacy markers, then professional.
    """
    claim = request.claim
    auth_type = claim.auth_type or request.auth_type
    if auth_type:
        return normalize_category(auth_type)

    encounter_class = (claim.encounter_class or request.encounter_class or "").lower()
    if encounter_class in (EncounterClass.INPATIENT.value, EncounterClass.DAYCASE.value):
        return ClaimCategory.INSTITUTIONAL

    if claim.vision_prescription is not None or request.vision_prescription is not None:
        return ClaimCategory.VISION

    if claim.service_event_type or any(item.tooth_number for item in claim.items):
        return ClaimCategory.DENTAL

    if (
        claim.days_supply
        or request.days_supply
        or any(item.days_supply or item.medication_code for item in claim.items)
    ):
        return ClaimCategory.PHARMACY

    return ClaimCategory.PROFESSIONAL


# =============================================================================
# Registry
# =============================================================================


class EncoderRegistry:
    """
    Explicit category -> encoder mapping.

    Usage:
        registry = build_default_registry()
        encoder = registry.resolve("oral")
        bundle = encoder.encode(payload, use="claim")
    """

    def __init__(self):
        self._encoders: Dict[ClaimCategory, ClaimEncoder] = {}

    def register(self, encoder: ClaimEncoder) -> None:
        if encoder.category in self._encoders:
            logger.debug(f"Replacing encoder for {encoder.category.value}")
        self._encoders[encoder.category] = encoder

    def get(self, category: ClaimCategory) -> ClaimEncoder:
        try:
            return self._encoders[category]
        except KeyError as e:
            raise UnknownCategoryError(
                "No encoder registered for category",
                category=getattr(category, "value", str(category)),
            ) from e

    def resolve(
        self, key_or_request: Union[CategoryKey, EncodeRequest, Mapping]
    ) -> ClaimEncoder:
        """Encoder for a category key, or for the category inferred from a request."""
        if isinstance(key_or_request, (EncodeRequest, Mapping)):
            category = infer_category(coerce_request(key_or_request))
        else:
            category = normalize_category(key_or_request)
        return self.get(category)

    def categories(self) -> List[ClaimCategory]:
        return list(self._encoders)

    def __contains__(self, category: ClaimCategory) -> bool:
        return category in self._encoders


def build_default_registry(settings: Optional[NphiesSettings] = None) -> EncoderRegistry:
    """Registry holding one encoder per category."""
    registry = EncoderRegistry()
    for encoder_cls in (
        ProfessionalEncoder,
        InstitutionalEncoder,
        OralEncoder,
        VisionEncoder,
        PharmacyEncoder,
    ):
        registry.register(encoder_cls(settings))
    return registry
