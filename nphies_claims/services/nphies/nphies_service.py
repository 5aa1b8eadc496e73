"""
NPHIES Service - Orchestrates request encoding and response decoding.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Provides high-level NPHIES operations:
- Build prior-authorization / claim bundles for any category
- Build cancel-request bundles
- Build batch claim bundles
- Validate and decode adjudication responses
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from nphies_claims.core.config import NphiesSettings
from nphies_claims.core.enums import ClaimCategory, RequestUse
from nphies_claims.services.nphies.batch_encoder import BatchClaimEncoder
from nphies_claims.services.nphies.cancel_encoder import CancelEncoder, CancelPayload
from nphies_claims.services.nphies.encoder_base import RequestPayload, coerce_request
from nphies_claims.services.nphies.fhir_base import (
    Clock,
    DateInput,
    IdGenerator,
    NphiesValidationError,
)
from nphies_claims.services.nphies.registry import (
    CategoryKey,
    EncoderRegistry,
    build_default_registry,
)
from nphies_claims.services.nphies.response_decoder import (
    AdjudicationResult,
    BatchAdjudicationResult,
    ResponseDecoder,
    ValidationReport,
    validate_response_bundle,
)
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Result Models
# =============================================================================


class EncodeStatus(str, Enum):
    """Outcome of a build call."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class EncodeResult:
    """Bundle plus the metadata a caller needs to submit or report it."""

    status: EncodeStatus
    bundle: Optional[Dict[str, Any]] = None
    category: Optional[ClaimCategory] = None
    use: Optional[RequestUse] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == EncodeStatus.SUCCESS


@dataclass
class BatchEncodeResult:
    """One bundle per claim of a batch, in batch-number order."""

    status: EncodeStatus
    batch_identifier: Optional[str] = None
    bundles: List[Dict[str, Any]] = field(default_factory=list)
    category: Optional[ClaimCategory] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == EncodeStatus.SUCCESS


def _input_errors(error: ValidationError) -> List[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors()]


# =============================================================================
# Service
# =============================================================================


class NphiesService:
    """
    NPHIES encode/decode service.

    Handles:
    - Category resolution via the encoder registry
    - Bundle encoding with warnings collected per call
    - Cancel-request encoding
    - Batch claim encoding
    - Response validation and decoding

    Usage:
        service = NphiesService()
        result = service.build_request(payload, use="claim")
        if result.success:
            submit(result.bundle)

        decoded = service.parse_response(response_bundle)
    """

    def __init__(
        self,
        registry: Optional[EncoderRegistry] = None,
        decoder: Optional[ResponseDecoder] = None,
        cancel_encoder: Optional[CancelEncoder] = None,
        settings: Optional[NphiesSettings] = None,
    ):
        self.registry = registry or build_default_registry(settings)
        self.decoder = decoder or ResponseDecoder()
        self.cancel_encoder = cancel_encoder or CancelEncoder(settings)
        self.batch_encoder = BatchClaimEncoder(self.registry)

    def build_request(
        self,
        payload: RequestPayload,
        category: CategoryKey = None,
        use: Union[RequestUse, str, None] = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> EncodeResult:
        """
        Encode a prior authorization or claim.

        Args:
            payload: EncodeRequest or raw dict
            category: Explicit category key; inferred from the payload when None
            use: preauthorization or claim; falls back to claim.use

        Returns:
            EncodeResult; caller errors are reported as FAILED, not raised
        """
        try:
            request = coerce_request(payload)
            encoder = self.registry.resolve(category if category else request)
            ctx = encoder.new_context(use or request.claim.use, id_generator, clock)
            bundle = encoder.encode_request(request, ctx)
        except ValidationError as e:
            logger.warning(f"Rejected encode request: {e.error_count()} input errors")
            return EncodeResult(status=EncodeStatus.FAILED, errors=_input_errors(e))
        except NphiesValidationError as e:
            logger.warning(f"Encode failed: {e}")
            return EncodeResult(status=EncodeStatus.FAILED, errors=[str(e)])

        logger.info(
            f"Built {ctx.category.value} {ctx.use.value} bundle {bundle['id']} "
            f"({len(ctx.warnings)} warnings)"
        )
        return EncodeResult(
            status=EncodeStatus.SUCCESS,
            bundle=bundle,
            category=ctx.category,
            use=ctx.use,
            warnings=list(ctx.warnings),
        )

    def build_cancel_request(
        self,
        payload: CancelPayload,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> EncodeResult:
        """Encode a cancel-request bundle."""
        try:
            bundle = self.cancel_encoder.encode(payload, id_generator=id_generator, clock=clock)
        except ValidationError as e:
            logger.warning(f"Rejected cancel request: {e.error_count()} input errors")
            return EncodeResult(status=EncodeStatus.FAILED, errors=_input_errors(e))
        except NphiesValidationError as e:
            logger.warning(f"Cancel encode failed: {e}")
            return EncodeResult(status=EncodeStatus.FAILED, errors=[str(e)])
        return EncodeResult(status=EncodeStatus.SUCCESS, bundle=bundle)

    def build_batch_claims(
        self,
        payloads: Sequence[RequestPayload],
        batch_identifier: str,
        batch_period_start: DateInput = None,
        batch_period_end: DateInput = None,
        category: CategoryKey = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> BatchEncodeResult:
        """
        Encode 2-200 claims as one batch.

        Returns:
            BatchEncodeResult; batch rule violations are reported as FAILED
        """
        try:
            batch = self.batch_encoder.encode(
                payloads,
                batch_identifier,
                batch_period_start=batch_period_start,
                batch_period_end=batch_period_end,
                category=category,
                id_generator=id_generator,
                clock=clock,
            )
        except ValidationError as e:
            logger.warning(f"Rejected batch request: {e.error_count()} input errors")
            return BatchEncodeResult(
                status=EncodeStatus.FAILED, batch_identifier=batch_identifier, errors=_input_errors(e)
            )
        except NphiesValidationError as e:
            logger.warning(f"Batch encode failed: {e}")
            return BatchEncodeResult(
                status=EncodeStatus.FAILED, batch_identifier=batch_identifier, errors=[str(e)]
            )
        return BatchEncodeResult(
            status=EncodeStatus.SUCCESS,
            batch_identifier=batch.batch_identifier,
            bundles=batch.bundles,
            category=batch.category,
            warnings=batch.warnings,
        )

    def parse_response(self, bundle: Any) -> AdjudicationResult:
        return self.decoder.decode(bundle)

    def parse_batch_response(self, bundle: Any) -> BatchAdjudicationResult:
        return self.decoder.decode_batch(bundle)

    def validate_response(self, bundle: Any) -> ValidationReport:
        return validate_response_bundle(bundle, self.decoder.expected_events)


# =============================================================================
# Factory Function
# =============================================================================


_nphies_service: Optional[NphiesService] = None


def get_nphies_service() -> NphiesService:
    """
    Get or create the NPHIES service instance.

    Returns:
        NphiesService instance
    """
    global _nphies_service

    if _nphies_service is None:
        _nphies_service = NphiesService()

    return _nphies_service
