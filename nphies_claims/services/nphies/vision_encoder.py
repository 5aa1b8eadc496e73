"""
NPHIES Vision Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Vision requests carry a VisionPrescription in place of an Encounter and
have no Practitioner or care team.
"""

from typing import Any, Dict, Optional, Sequence

from nphies_claims.core.enums import ClaimCategory, ClaimSubType
from nphies_claims.schemas.nphies import EncodeRequest, ItemInput
from nphies_claims.services.nphies.encoder_base import (
    ClaimEncoder,
    Entry,
    allocate_ids,
    assemble_bundle,
    build_claim_entry,
    build_parties,
    reference,
)
from nphies_claims.services.nphies.fhir_base import EncodeContext, extension_url
from nphies_claims.services.nphies.items import (
    ItemParts,
    procedure_system,
    product_or_service,
    require_product_code,
)
from nphies_claims.services.nphies.resources import build_vision_prescription
from nphies_claims.services.nphies.supporting_info import SupportingInfoRecord


class VisionEncoder(ClaimEncoder):
    """Vision claims and prior authorizations."""

    category = ClaimCategory.VISION

    def encode_request(self, request: EncodeRequest, ctx: EncodeContext) -> Dict[str, Any]:
        allocate_ids(ctx, request, encounter=False, practitioner=False)
        prescription = build_vision_prescription(
            ctx,
            request.claim.vision_prescription or request.vision_prescription,
            request.provider,
            request.practitioner,
        )
        claim = self.encode_claim_resource(request, ctx, self.encode_encounter(request, ctx))
        parties = build_parties(ctx, request, practitioner=False)
        return assemble_bundle(
            request,
            ctx,
            claim,
            [
                claim,
                prescription,
                parties.coverage,
                parties.provider,
                parties.insurer,
                parties.patient,
                parties.mother,
            ],
        )

    def encode_encounter(self, request: EncodeRequest, ctx: EncodeContext) -> Optional[Entry]:
        return None

    def _item_parts(self, ctx: EncodeContext):
        def parts(
            item: ItemInput, sequence: int, records: Sequence[SupportingInfoRecord]
        ) -> Optional[ItemParts]:
            return ItemParts(
                product=product_or_service(
                    item.product_or_service_system or procedure_system(),
                    require_product_code(ctx, item, sequence),
                    item.product_or_service_display,
                    item.shadow_system,
                    item.shadow_code,
                    item.shadow_display,
                ),
                care_team=False,
            )

        return parts

    def encode_claim_resource(
        self, request: EncodeRequest, ctx: EncodeContext, encounter: Optional[Entry]
    ) -> Entry:
        """Requires the VisionPrescription id to be allocated already."""
        prescription = reference("VisionPrescription", ctx.ids.get("vision_prescription"))
        requested_subtype = (request.claim.sub_type or "").lower()
        if requested_subtype and requested_subtype != ClaimSubType.OUTPATIENT.value:
            ctx.warn(f"Subtype '{requested_subtype}' not allowed for vision; using op")
        return build_claim_entry(
            request,
            ctx,
            subtype=ClaimSubType.OUTPATIENT,
            encounter=None,
            item_parts=self._item_parts(ctx),
            extra_extensions=[
                {"url": extension_url("prescription"), "valueReference": dict(prescription)}
            ],
            prescription=prescription,
        )
