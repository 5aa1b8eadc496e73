"""
NPHIES Institutional Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Inpatient and day-case stays:
- class restricted to inpatient | daycase, subtype always ip
- hospitalization block (admission specialty, admit source, length of stay,
  discharge details on claims)
- diagnoses carry onAdmission; claims add condition-onset
"""

from typing import Any, Dict, Optional, Sequence

from nphies_claims.core.enums import ClaimCategory, ClaimSubType, EncounterClass
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
from nphies_claims.services.nphies.fhir_base import EncodeContext, code_system, codeable, extension_url
from nphies_claims.services.nphies.items import (
    ItemParts,
    procedure_system,
    product_or_service,
    require_product_code,
)
from nphies_claims.services.nphies.supporting_info import SupportingInfoRecord

INSTITUTIONAL_CLASSES = (EncounterClass.INPATIENT.value, EncounterClass.DAYCASE.value)
DEFAULT_PRACTICE_CODE = "08.00"


def resolve_class(request: EncodeRequest) -> Optional[str]:
    """Requested class, or None when it is not inpatient/daycase."""
    encounter_class = encounter_class_of(request)
    if encounter_class in INSTITUTIONAL_CLASSES:
        return encounter_class
    return None


class InstitutionalEncoder(ClaimEncoder):
    """Institutional claims and prior authorizations."""

    category = ClaimCategory.INSTITUTIONAL

    def encode_request(self, request: EncodeRequest, ctx: EncodeContext) -> Dict[str, Any]:
        allocate_ids(ctx, request, encounter=True, practitioner=True)
        encounter = self.encode_encounter(request, ctx)
        claim = self.encode_claim_resource(request, ctx, encounter)
        parties = build_parties(ctx, request, practitioner=True)
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

    def _practice_code(self, request: EncodeRequest) -> str:
        practitioner = request.practitioner
        return (
            request.claim.practice_code
            or (practitioner.practice_code if practitioner else None)
            or DEFAULT_PRACTICE_CODE
        )

    def _hospitalization(
        self, request: EncodeRequest, ctx: EncodeContext, encounter_class: str
    ) -> Dict[str, Any]:
        claim = request.claim
        specialty = claim.admission_specialty or self._practice_code(request)
        extensions = [
            {
                "url": extension_url("admissionSpecialty"),
                "valueCodeableConcept": codeable(
                    code_system("practice-codes"),
                    specialty,
                    terminology.practice_code_display(specialty),
                ),
            }
        ]
        if ctx.is_claim:
            stay = claim.intended_length_of_stay_code or ("ISD" if encounter_class == "daycase" else "IO")
            extensions.append(
                coded_extension(
                    "intendedLengthOfStay",
                    "intended-length-of-stay",
                    stay,
                    terminology.INTENDED_LENGTH_OF_STAY_DISPLAYS,
                )
            )
            if claim.encounter_end:
                discharge = claim.discharge_specialty or specialty
                extensions.append(
                    {
                        "url": extension_url("dischargeSpecialty"),
                        "valueCodeableConcept": codeable(
                            code_system("practice-codes"),
                            discharge,
                            terminology.practice_code_display(discharge),
                        ),
                    }
                )

        admit_source = claim.admit_source or "WKIN"
        hospitalization: Dict[str, Any] = {
            "extension": extensions,
            "admitSource": codeable(
                code_system("admit-source"),
                admit_source,
                terminology.display_for(terminology.ADMIT_SOURCE_DISPLAYS, admit_source),
            ),
        }
        if ctx.is_claim and claim.encounter_end:
            disposition = claim.discharge_disposition or "home"
            hospitalization["dischargeDisposition"] = codeable(
                code_system("discharge-disposition"),
                disposition,
                terminology.display_for(terminology.DISCHARGE_DISPOSITION_DISPLAYS, disposition),
            )
        return hospitalization

    def encode_encounter(self, request: EncodeRequest, ctx: EncodeContext) -> Optional[Entry]:
        claim = request.claim
        encounter_class = resolve_class(request)
        if encounter_class is None:
            requested = encounter_class_of(request)
            if requested:
                ctx.warn(f"Encounter class '{requested}' not allowed for institutional; using daycase")
            encounter_class = EncounterClass.DAYCASE.value
        requested_subtype = (claim.sub_type or "").lower()
        if requested_subtype and requested_subtype != ClaimSubType.INPATIENT.value:
            ctx.warn(f"Subtype '{requested_subtype}' not allowed for institutional; using ip")

        resource = build_encounter_base(
            request,
            ctx,
            encounter_class=encounter_class,
            status="finished" if ctx.is_claim else "planned",
        )
        default_service = "acute-care" if ctx.is_claim else "sub-acute-care"
        resource["serviceType"] = service_type(claim.service_type or default_service)
        resource["subject"] = reference("Patient", ctx.ids.get("patient"))
        period = {"start": ctx.local_datetime(claim.encounter_start or claim.service_date)}
        if claim.encounter_end:
            period["end"] = ctx.local_datetime(claim.encounter_end)
        resource["period"] = period
        resource["hospitalization"] = self._hospitalization(request, ctx, encounter_class)
        resource["serviceProvider"] = reference("Organization", ctx.ids.get("provider"))
        return encounter_entry(ctx, resource)

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
                )
            )

        return parts

    def encode_claim_resource(
        self, request: EncodeRequest, ctx: EncodeContext, encounter: Optional[Entry]
    ) -> Entry:
        return build_claim_entry(
            request,
            ctx,
            subtype=terminology.claim_subtype_for_class(
                resolve_class(request) or EncounterClass.DAYCASE.value
            ),
            encounter=encounter,
            item_parts=self._item_parts(ctx),
            practice_code=self._practice_code(request),
            on_admission=True,
            condition_onset=ctx.is_claim,
            encounter_period=encounter["resource"]["period"] if encounter else None,
        )
