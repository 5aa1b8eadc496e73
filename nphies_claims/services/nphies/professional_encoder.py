"""
NPHIES Professional Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Outpatient, emergency, home and virtual visits:
- class in {ambulatory, emergency, home, telemedicine/virtual}
- subtype op or emr; emr forces the emergency class and vice versa
- emergency triage / arrival extensions and EM priority
- facility reference for ambulatory and virtual visits
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

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
from nphies_claims.services.nphies.fhir_base import (
    HL7_CODE_SYSTEM,
    EncodeContext,
    code_system,
    codeable,
    extension_url,
    to_date_only,
)
from nphies_claims.services.nphies.items import (
    ItemParts,
    procedure_system,
    product_or_service,
    require_product_code,
)
from nphies_claims.services.nphies.supporting_info import SupportingInfoRecord

PROFESSIONAL_CLASSES = (
    EncounterClass.AMBULATORY.value,
    EncounterClass.EMERGENCY.value,
    EncounterClass.HOME.value,
    EncounterClass.TELEMEDICINE.value,
    EncounterClass.VIRTUAL.value,
)
FACILITY_CLASS_CODES = ("AMB", "VR")
DEFAULT_PRACTICE_CODE = "08.00"


def resolve_class_and_subtype(request: EncodeRequest) -> Tuple[str, ClaimSubType, List[str]]:
    """
    Encounter class and claim subtype for a professional request.

    Returns:
        (class, subtype, notes) where notes describe any coercion applied
    """
    notes: List[str] = []
    ambulatory = EncounterClass.AMBULATORY.value
    emergency = EncounterClass.EMERGENCY.value
    encounter_class = encounter_class_of(request) or ambulatory
    if encounter_class == EncounterClass.OUTPATIENT.value:
        encounter_class = ambulatory
    if encounter_class not in PROFESSIONAL_CLASSES:
        notes.append(f"Encounter class '{encounter_class}' not allowed for professional; using ambulatory")
        encounter_class = ambulatory

    requested = (request.claim.sub_type or "").lower()
    if requested == ClaimSubType.EMERGENCY.value and encounter_class != emergency:
        notes.append(f"Subtype emr forces emergency class (was {encounter_class})")
        encounter_class = emergency
    elif requested and requested not in (ClaimSubType.OUTPATIENT.value, ClaimSubType.EMERGENCY.value):
        notes.append(f"Subtype '{requested}' not allowed for professional")

    return encounter_class, terminology.claim_subtype_for_class(encounter_class), notes


def _datetime_extension(ctx: EncodeContext, name: str, value: Any) -> Dict[str, Any]:
    return {"url": extension_url(name), "valueDateTime": ctx.local_datetime(value)}


class ProfessionalEncoder(ClaimEncoder):
    """Professional claims and prior authorizations."""

    category = ClaimCategory.PROFESSIONAL

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
                parties.provider,
                parties.insurer,
                claim,
                encounter,
                parties.coverage,
                parties.practitioner,
                parties.patient,
                parties.mother,
            ],
        )

    # -------------------------------------------------------------------------
    # Encounter
    # -------------------------------------------------------------------------

    def _encounter_extensions(
        self, request: EncodeRequest, ctx: EncodeContext, emergency: bool
    ) -> List[Dict[str, Any]]:
        claim = request.claim
        extensions: List[Dict[str, Any]] = []
        if emergency:
            extensions.append(
                coded_extension(
                    "triageCategory",
                    "triage-category",
                    claim.triage_category or "U",
                    terminology.TRIAGE_CATEGORY_DISPLAYS,
                )
            )
            extensions.append(
                _datetime_extension(ctx, "triageDate", claim.triage_date or claim.encounter_start)
            )
            if ctx.is_claim:
                extensions.append(
                    coded_extension(
                        "emergencyArrivalCode",
                        "emergency-arrival-code",
                        claim.emergency_arrival_code or "WKIN",
                        terminology.EMERGENCY_ARRIVAL_DISPLAYS,
                    )
                )
                extensions.append(
                    _datetime_extension(
                        ctx,
                        "emergencyServiceStart",
                        claim.emergency_service_start or claim.encounter_start,
                    )
                )
        extensions.append(
            coded_extension(
                "serviceEventType",
                "service-event-type",
                claim.service_event_type or "ICSE",
                terminology.SERVICE_EVENT_TYPE_DISPLAYS,
            )
        )
        return extensions

    def _period(self, request: EncodeRequest, ctx: EncodeContext, emergency: bool) -> Dict[str, str]:
        claim = request.claim
        start = claim.encounter_start or claim.service_date
        if emergency:
            period = {"start": ctx.local_datetime(start)}
            if claim.encounter_end:
                period["end"] = ctx.local_datetime(claim.encounter_end)
            return period
        period = {"start": to_date_only(start or ctx.now)}
        if claim.encounter_end:
            period["end"] = to_date_only(claim.encounter_end)
        return period

    def encode_encounter(self, request: EncodeRequest, ctx: EncodeContext) -> Optional[Entry]:
        encounter_class, _, notes = resolve_class_and_subtype(request)
        for note in notes:
            ctx.warn(note)
        emergency = encounter_class == "emergency"

        resource = build_encounter_base(
            request,
            ctx,
            encounter_class=encounter_class,
            status="finished" if ctx.is_claim else "in-progress",
            extensions=self._encounter_extensions(request, ctx, emergency),
        )
        if request.claim.service_type:
            resource["serviceType"] = service_type(request.claim.service_type)
        if emergency:
            resource["priority"] = codeable(
                f"{HL7_CODE_SYSTEM}/v3-ActPriority",
                "EM",
                terminology.ENCOUNTER_PRIORITY_DISPLAYS["EM"],
            )
        resource["subject"] = reference("Patient", ctx.ids.get("patient"))
        resource["period"] = self._period(request, ctx, emergency)
        resource["serviceProvider"] = reference("Organization", ctx.ids.get("provider"))
        return encounter_entry(ctx, resource)

    # -------------------------------------------------------------------------
    # Claim
    # -------------------------------------------------------------------------

    def _item_parts(self, ctx: EncodeContext):
        def parts(
            item: ItemInput, sequence: int, records: Sequence[SupportingInfoRecord]
        ) -> Optional[ItemParts]:
            result = ItemParts(
                product=product_or_service(
                    item.product_or_service_system or procedure_system(),
                    require_product_code(ctx, item, sequence),
                    item.product_or_service_display,
                    item.shadow_system,
                    item.shadow_code,
                    item.shadow_display,
                )
            )
            if item.body_site:
                result.body_site = codeable(
                    code_system("body-site"),
                    item.body_site,
                    terminology.display_for(terminology.BODY_SITE_DISPLAYS, item.body_site),
                )
            if item.sub_site:
                result.sub_site = [codeable(code_system("sub-site"), item.sub_site)]
            return result

        return parts

    def encode_claim_resource(
        self, request: EncodeRequest, ctx: EncodeContext, encounter: Optional[Entry]
    ) -> Entry:
        claim = request.claim
        encounter_class, subtype, _ = resolve_class_and_subtype(request)

        extra = []
        if ctx.is_claim and claim.pre_auth_ref:
            extra.append(
                _datetime_extension(
                    ctx,
                    "authorization-offline-date",
                    claim.authorization_offline_date or claim.service_date,
                )
            )

        facility = None
        if terminology.encounter_class_code(encounter_class) in FACILITY_CLASS_CODES:
            facility = {"reference": ctx.full_url("Organization", ctx.ids.get("provider"))}

        practitioner = request.practitioner
        practice_code = (
            claim.practice_code
            or (practitioner.practice_code if practitioner else None)
            or DEFAULT_PRACTICE_CODE
        )
        period = encounter["resource"]["period"] if encounter else None
        return build_claim_entry(
            request,
            ctx,
            subtype=subtype,
            encounter=encounter,
            item_parts=self._item_parts(ctx),
            extra_extensions=extra,
            practice_code=practice_code,
            facility=facility,
            encounter_period=period,
        )
