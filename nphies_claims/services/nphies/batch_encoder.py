"""
NPHIES Batch Claim Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Submits several claims as one batch:
- 2 to 200 claims, all for the same insurer, provider and category
- one claim-request bundle per claim, each with a single-focus MessageHeader
- every Claim carries batch-identifier, batch-number (position in the
  batch, from 1) and batch-period extensions
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from nphies_claims.core.enums import ClaimCategory, RequestUse
from nphies_claims.schemas.nphies import EncodeRequest
from nphies_claims.services.nphies.encoder_base import ClaimEncoder, RequestPayload, coerce_request
from nphies_claims.services.nphies.fhir_base import (
    Clock,
    DateInput,
    IdGenerator,
    NphiesValidationError,
    default_clock,
    to_date_only,
)
from nphies_claims.services.nphies.registry import CategoryKey, EncoderRegistry
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

MIN_BATCH_SIZE = 2
MAX_BATCH_SIZE = 200


@dataclass
class BatchEncoding:
    """Claim bundles of one batch, in batch-number order."""

    batch_identifier: str
    category: ClaimCategory
    bundles: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _insurer_key(request: EncodeRequest) -> Optional[str]:
    return request.insurer.insurer_id or request.insurer.nphies_id


def _provider_key(request: EncodeRequest) -> Optional[str]:
    return request.provider.provider_id or request.provider.nphies_id


def validate_batch(
    requests: Sequence[EncodeRequest], categories: Sequence[ClaimCategory]
) -> List[str]:
    """
    Batch constraints.

    Claims without an insurer or provider key are not compared.

    Returns:
        Error messages; empty when the batch is acceptable
    """
    errors = []
    if len(requests) < MIN_BATCH_SIZE:
        errors.append(f"Batch must contain at least {MIN_BATCH_SIZE} claims")
    if len(requests) > MAX_BATCH_SIZE:
        errors.append(f"Batch cannot exceed {MAX_BATCH_SIZE} claims. Current: {len(requests)}")

    insurers = {_insurer_key(r) for r in requests} - {None}
    if len(insurers) > 1:
        errors.append("All claims in a batch must be for the same insurer")
    providers = {_provider_key(r) for r in requests} - {None}
    if len(providers) > 1:
        errors.append("All claims in a batch must be from the same provider")
    kinds = sorted({c.value for c in categories})
    if len(kinds) > 1:
        errors.append(f"All claims in a batch must be of the same type. Found: {', '.join(kinds)}")
    return errors


def default_batch_period(requests: Sequence[EncodeRequest], today: DateInput) -> List[str]:
    """[start, end] spanning the claims' service dates, else today."""
    dates = sorted(to_date_only(r.claim.service_date) for r in requests if r.claim.service_date)
    if not dates:
        return [to_date_only(today)] * 2
    return [dates[0], dates[-1]]


class BatchClaimEncoder:
    """
    Batch claim encoder built on the category encoders.

    Usage:
        encoder = BatchClaimEncoder(build_default_registry())
        batch = encoder.encode(payloads, batch_identifier="BATCH-2026-10")
        for bundle in batch.bundles:
            submit(bundle)
    """

    def __init__(self, registry: EncoderRegistry):
        self.registry = registry

    def encode(
        self,
        payloads: Sequence[RequestPayload],
        batch_identifier: str,
        *,
        batch_period_start: DateInput = None,
        batch_period_end: DateInput = None,
        category: CategoryKey = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> BatchEncoding:
        """
        Encode every payload as a claim of one batch.

        Raises:
            NphiesValidationError: when the batch breaks a size or grouping rule
        """
        if not batch_identifier:
            raise NphiesValidationError("Batch identifier is required", field="batch_identifier")
        requests = [coerce_request(p) for p in payloads]
        encoders: List[ClaimEncoder] = [
            self.registry.resolve(category if category else r) for r in requests
        ]
        errors = validate_batch(requests, [e.category for e in encoders])
        if errors:
            raise NphiesValidationError(f"Batch validation failed: {'; '.join(errors)}", field="claims")

        start, end = default_batch_period(requests, (clock or default_clock)())
        stamp = {
            "batch_identifier": batch_identifier,
            "batch_period_start": batch_period_start or start,
            "batch_period_end": batch_period_end or batch_period_start or end,
        }

        batch = BatchEncoding(batch_identifier=batch_identifier, category=encoders[0].category)
        for number, (request, encoder) in enumerate(zip(requests, encoders), start=1):
            claim = request.claim.model_copy(update={**stamp, "batch_number": number})
            ctx = encoder.new_context(RequestUse.CLAIM, id_generator, clock)
            batch.bundles.append(encoder.encode_request(request.model_copy(update={"claim": claim}), ctx))
            batch.warnings.extend(f"Claim {number}: {w}" for w in ctx.warnings)

        logger.info(
            f"Built batch {batch_identifier} of {len(batch.bundles)} {batch.category.value} claims "
            f"({len(batch.warnings)} warnings)"
        )
        return batch
