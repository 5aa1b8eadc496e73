"""
NPHIES Oral (Dental) Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Dental requests are always ambulatory outpatient encounters. Items carry
the FDI tooth as bodySite and tooth surfaces as subSite.
"""

from typing import Any, Dict, List, Optional, Sequence

from nphies_claims.core.enums import ClaimCategory, ClaimSubType
from nphies_claims.schemas.nphies import EncodeRequest, ItemInput
from nphies_claims.services.nphies import terminology
from nphies_claims.services.nphies.encoder_base import (
    ClaimEncoder,
    Entry,
    allocate_ids,
    assemble_bundle,
    build_claim_entry,
    build_encounter_base,
    build_parties,
    coded_extension,
    encounter_class_of,
    encounter_entry,
    reference,
    service_type,
)
from nphies_claims.services.nphies.fhir_base import (
    EncodeContext,
    code_system,
    codeable,
    extension_url,
)
from nphies_claims.services.nphies.items import ItemParts, product_or_service, require_product_code
from nphies_claims.services.nphies.supporting_info import SupportingInfoRecord

ORAL_CLASSES = ("ambulatory", "outpatient")
DEFAULT_PRACTICE_CODE = "22.00"


def tooth_surfaces(value: Optional[str]) -> List[str]:
    """'M, O,D' -> ['M', 'O', 'D']"""
    if not value:
        return []
    return [s.strip().upper() for s in value.split(",") if s.strip()]


class OralEncoder(ClaimEncoder):
    """Dental claims and prior authorizations."""

    category = ClaimCategory.DENTAL

    def encode_request(self, request: EncodeRequest, ctx: EncodeContext) -> Dict[str, Any]:
        allocate_ids(ctx, request, encounter=True, practitioner=True)
        encounter = self.encode_encounter(request, ctx)
        claim = self.encode_claim_resource(request, ctx, encounter)
        parties = build_parties(ctx, request, practitioner=True, default_practice_code=DEFAULT_PRACTICE_CODE)
        return assemble_bundle(
            request,
            ctx,
            claim,
            [
                claim,
                encounter,
                parties.coverage,
                parties.practitioner,
                parties.provider,
                parties.insurer,
                parties.patient,
                parties.mother,
            ],
        )

    def encode_encounter(self, request: EncodeRequest, ctx: EncodeContext) -> Optional[Entry]:
        claim = request.claim
        requested = encounter_class_of(request)
        if requested and requested not in ORAL_CLASSES:
            ctx.warn(f"Encounter class '{requested}' not allowed for dental; using ambulatory")
        requested_subtype = (claim.sub_type or "").lower()
        if requested_subtype and requested_subtype != ClaimSubType.OUTPATIENT.value:
            ctx.warn(f"Subtype '{requested_subtype}' not allowed for dental; using op")

        resource = build_encounter_base(
            request,
            ctx,
            encounter_class="ambulatory",
            status="finished" if ctx.is_claim else "planned",
            extensions=[
                coded_extension(
                    "serviceEventType",
                    "service-event-type",
                    claim.service_event_type or "ICSE",
                    terminology.SERVICE_EVENT_TYPE_DISPLAYS,
                )
            ],
        )
        resource["serviceType"] = service_type("dental-care")
        resource["subject"] = reference("Patient", ctx.ids.get("patient"))
        # dental encounters never carry a period end
        resource["period"] = {"start": ctx.local_datetime(claim.encounter_start or claim.service_date)}
        resource["serviceProvider"] = reference("Organization", ctx.ids.get("provider"))
        return encounter_entry(ctx, resource)

    def _item_parts(self, ctx: EncodeContext):
        def parts(
            item: ItemInput, sequence: int, records: Sequence[SupportingInfoRecord]
        ) -> Optional[ItemParts]:
            result = ItemParts(
                product=product_or_service(
                    item.product_or_service_system or code_system("oral-health-op"),
                    require_product_code(ctx, item, sequence),
                    item.product_or_service_display,
                    item.shadow_system,
                    item.shadow_code,
                    item.shadow_display,
                )
            )
            if item.tooth_number:
                result.body_site = codeable(
                    code_system("fdi-oral-region"),
                    item.tooth_number,
                    terminology.fdi_tooth_display(item.tooth_number),
                )
            surfaces = tooth_surfaces(item.tooth_surface)
            if surfaces:
                result.sub_site = [
                    codeable(
                        code_system("fdi-tooth-surface"),
                        surface,
                        terminology.tooth_surface_display(surface),
                    )
                    for surface in surfaces
                ]
            return result

        return parts

    def encode_claim_resource(
        self, request: EncodeRequest, ctx: EncodeContext, encounter: Optional[Entry]
    ) -> Entry:
        claim = request.claim
        extra = []
        if ctx.is_claim and claim.pre_auth_ref:
            insurer = request.insurer.nphies_id or "insurer"
            extra.append(
                {
                    "url": extension_url("priorauthresponse"),
                    "valueReference": {
                        "identifier": {
                            "system": claim.pre_auth_ref_system
                            or f"http://{insurer}.com.sa/identifiers/claimresponse",
                            "value": claim.pre_auth_ref,
                        }
                    },
                }
            )
        practitioner = request.practitioner
        practice_code = (
            claim.practice_code
            or (practitioner.practice_code if practitioner else None)
            or DEFAULT_PRACTICE_CODE
        )
        return build_claim_entry(
            request,
            ctx,
            subtype=ClaimSubType.OUTPATIENT,
            encounter=encounter,
            item_parts=self._item_parts(ctx),
            extra_extensions=extra,
            practice_code=practice_code,
            encounter_period=encounter["resource"]["period"] if encounter else None,
        )
