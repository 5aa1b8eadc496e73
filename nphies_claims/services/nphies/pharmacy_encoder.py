"""
NPHIES Pharmacy Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Medication and medical-device dispensing:
- prior authorizations carry a date-only AMB encounter, claims none
- no Practitioner and no care team
- claims add batch and authorization-offline-date extensions
- each medication item points at the days-supply entry matching its supply
- a line without a medication or device code fails a claim; a prior auth
  skips it with a warning
"""

from typing import Any, Dict, List, Optional, Sequence

from nphies_claims.core.enums import ClaimCategory, ClaimSubType
from nphies_claims.schemas.nphies import ClaimInput, EncodeRequest, ItemInput
from nphies_claims.services.nphies import terminology
from nphies_claims.services.nphies.encoder_base import (
    ClaimEncoder,
    Entry,
    allocate_ids,
    assemble_bundle,
    build_claim_entry,
    build_encounter_base,
    build_parties,
    encounter_entry,
    reference,
    service_type,
)
from nphies_claims.services.nphies.fhir_base import (
    EncodeContext,
    NphiesValidationError,
    code_system,
    codeable,
    extension_url,
    to_date_only,
)
from nphies_claims.services.nphies.items import ItemParts, product_or_service
from nphies_claims.services.nphies.supporting_info import (
    DAYS_SUPPLY,
    SupportingInfoRecord,
    is_device_item,
    item_days_supply,
)


def days_supply_sequence(
    item: ItemInput, claim: ClaimInput, records: Sequence[SupportingInfoRecord]
) -> List[int]:
    """Sequence of the days-supply entry for this item, else the first one."""
    supply = [r for r in records if r.category == DAYS_SUPPLY]
    if not supply:
        return []
    wanted = item_days_supply(item, claim)
    for record in supply:
        if record.value_quantity == wanted:
            return [record.sequence]
    return [supply[0].sequence]


class PharmacyEncoder(ClaimEncoder):
    """Pharmacy claims and prior authorizations."""

    category = ClaimCategory.PHARMACY

    def encode_request(self, request: EncodeRequest, ctx: EncodeContext) -> Dict[str, Any]:
        allocate_ids(ctx, request, encounter=not ctx.is_claim, practitioner=False)
        encounter = self.encode_encounter(request, ctx)
        claim = self.encode_claim_resource(request, ctx, encounter)
        parties = build_parties(ctx, request, practitioner=False)
        return assemble_bundle(
            request,
            ctx,
            claim,
            [
                claim,
                encounter,
                parties.coverage,
                parties.provider,
                parties.insurer,
                parties.patient,
                parties.mother,
            ],
        )

    def encode_encounter(self, request: EncodeRequest, ctx: EncodeContext) -> Optional[Entry]:
        if ctx.is_claim:
            return None
        claim = request.claim
        resource = build_encounter_base(request, ctx, encounter_class="ambulatory", status="planned")
        if claim.service_type:
            resource["serviceType"] = service_type(claim.service_type)
        resource["subject"] = reference("Patient", ctx.ids.get("patient"))
        resource["period"] = {"start": to_date_only(claim.encounter_start or claim.service_date or ctx.now)}
        resource["serviceProvider"] = reference("Organization", ctx.ids.get("provider"))
        return encounter_entry(ctx, resource)

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    @staticmethod
    def _medication_extensions(item: ItemInput, code: str) -> List[Dict[str, Any]]:
        reason = item.pharmacist_selection_reason or "patient-request"
        extensions = [
            {
                "url": extension_url("prescribed-Medication"),
                "valueCodeableConcept": codeable(
                    code_system("medication-codes"), item.prescribed_medication_code or code
                ),
            },
            {
                "url": extension_url("pharmacist-Selection-Reason"),
                "valueCodeableConcept": codeable(
                    code_system("pharmacist-selection-reason"),
                    reason,
                    terminology.display_for(terminology.PHARMACIST_SELECTION_REASON_DISPLAYS, reason),
                ),
            },
        ]
        if item.pharmacist_substitute:
            extensions.append(
                {
                    "url": extension_url("pharmacist-substitute"),
                    "valueCodeableConcept": codeable(
                        code_system("pharmacist-substitute"),
                        item.pharmacist_substitute,
                        terminology.display_for(
                            terminology.PHARMACIST_SUBSTITUTE_DISPLAYS, item.pharmacist_substitute
                        ),
                    ),
                }
            )
        return extensions

    def _item_parts(self, request: EncodeRequest, ctx: EncodeContext):
        def parts(
            item: ItemInput, sequence: int, records: Sequence[SupportingInfoRecord]
        ) -> Optional[ItemParts]:
            device = is_device_item(item)
            if device:
                code = item.device_code
                display = item.device_display or item.product_or_service_display
                default_system = code_system("medical-devices")
            else:
                code = item.medication_code or item.product_or_service_code
                display = item.medication_display or item.product_or_service_display
                default_system = code_system("medication-codes")
            if not code:
                if ctx.is_claim:
                    raise NphiesValidationError(
                        "Medication code is required for pharmacy item",
                        field="items.medication_code",
                        category=ctx.category.value,
                        item_sequence=sequence,
                    )
                ctx.warn(f"Item {sequence} has no medication or device code; skipped")
                return None

            result = ItemParts(
                product=product_or_service(
                    item.product_or_service_system or default_system,
                    code,
                    display,
                    item.shadow_system,
                    item.shadow_code,
                    item.shadow_display,
                ),
                care_team=False,
            )
            if device:
                result.information_sequence = list(item.information_sequences or [])
            else:
                result.extensions = self._medication_extensions(item, code)
                result.information_sequence = list(
                    item.information_sequences
                    or days_supply_sequence(item, request.claim, records)
                )
            return result

        return parts

    # -------------------------------------------------------------------------
    # Claim
    # -------------------------------------------------------------------------

    @staticmethod
    def _claim_extensions(request: EncodeRequest, ctx: EncodeContext) -> List[Dict[str, Any]]:
        claim = request.claim
        return [
            {
                "url": extension_url("authorization-offline-date"),
                "valueDateTime": ctx.local_datetime(
                    claim.authorization_offline_date or claim.service_date
                ),
            }
        ]

    def encode_claim_resource(
        self, request: EncodeRequest, ctx: EncodeContext, encounter: Optional[Entry]
    ) -> Entry:
        requested_subtype = (request.claim.sub_type or "").lower()
        if requested_subtype and requested_subtype != ClaimSubType.OUTPATIENT.value:
            ctx.warn(f"Subtype '{requested_subtype}' not allowed for pharmacy; using op")
        return build_claim_entry(
            request,
            ctx,
            subtype=ClaimSubType.OUTPATIENT,
            encounter=encounter,
            item_parts=self._item_parts(request, ctx),
            extra_extensions=self._claim_extensions(request, ctx) if ctx.is_claim else (),
            encounter_period=encounter["resource"]["period"] if encounter else None,
        )
