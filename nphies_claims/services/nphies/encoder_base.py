"""
NPHIES Claim Encoder Base.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Strategy interface shared by the five category encoders plus the claim
skeleton helpers they compose:
- request identifiers, claim type/subtype, parties, insurance
- conditional claim extensions (encounter, eligibility, accounting period,
  episode, transfer, newborn)
- diagnoses, supporting info, items and total
- bundle assembly (MessageHeader first, Binary attachments last for prior
  authorizations only)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from nphies_claims.core.config import NphiesSettings
from nphies_claims.core.enums import ClaimCategory, ClaimSubType, MessageEvent, RequestUse
from nphies_claims.schemas.nphies import ClaimInput, EncodeRequest, ItemInput
from nphies_claims.services.nphies import terminology
from nphies_claims.services.nphies.fhir_base import (
    CATEGORY_SLUGS,
    HL7_CODE_SYSTEM,
    Clock,
    EncodeContext,
    IdGenerator,
    NphiesValidationError,
    claim_profile_url,
    code_system,
    codeable,
    extension_url,
    first_of_month,
    money,
    profile_url,
    to_date_only,
    to_date_time,
)
from nphies_claims.services.nphies.items import ItemParts, build_item, compute_total
from nphies_claims.services.nphies.resources import (
    build_binary_attachment,
    build_coverage,
    build_insurer_org,
    build_message_header,
    build_patient,
    build_practitioner,
    build_provider_org,
    build_related,
    provider_identifier_system,
)
from nphies_claims.services.nphies.supporting_info import (
    SupportingInfoRecord,
    build_supporting_info,
    diagnosis_system,
    to_fhir,
)
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

Entry = Dict[str, Any]
RequestPayload = Union[EncodeRequest, Mapping[str, Any]]
ItemPartsBuilder = Callable[
    [ItemInput, int, Sequence[SupportingInfoRecord]], Optional[ItemParts]
]


# =============================================================================
# Input normalization
# =============================================================================


def coerce_request(payload: RequestPayload) -> EncodeRequest:
    """Accept either a validated model or a raw dict."""
    if isinstance(payload, EncodeRequest):
        return payload
    return EncodeRequest.model_validate(payload)


def normalize_use(value: Union[RequestUse, str, None]) -> RequestUse:
    if isinstance(value, RequestUse):
        return value
    if not value:
        return RequestUse.PREAUTHORIZATION
    try:
        return RequestUse(value.strip().lower())
    except ValueError as e:
        raise NphiesValidationError(f"Invalid request use: {value}", field="use") from e


def encounter_class_of(request: EncodeRequest) -> Optional[str]:
    value = request.claim.encounter_class or request.encounter_class
    return value.lower() if value else None


def currency_of(request: EncodeRequest, ctx: EncodeContext) -> str:
    return request.claim.currency or ctx.settings.DEFAULT_CURRENCY


# =============================================================================
# Parties
# =============================================================================


@dataclass
class Parties:
    """Party entries for one bundle."""

    provider: Entry
    insurer: Entry
    patient: Entry
    coverage: Entry
    practitioner: Optional[Entry] = None
    mother: Optional[Entry] = None


def allocate_ids(
    ctx: EncodeContext,
    request: EncodeRequest,
    encounter: bool,
    practitioner: bool,
) -> None:
    """Allocate correlation ids in a fixed order so output is reproducible."""
    ctx.ids.allocate("claim")
    ctx.ids.allocate("patient", request.patient.patient_id)
    ctx.ids.allocate("provider", request.provider.provider_id)
    ctx.ids.allocate("insurer", request.insurer.insurer_id)
    ctx.ids.allocate("coverage", request.coverage.coverage_id if request.coverage else None)
    if encounter:
        ctx.ids.allocate("encounter")
    if practitioner:
        ctx.ids.allocate(
            "practitioner",
            request.practitioner.practitioner_id if request.practitioner else None,
        )
    if request.claim.is_newborn and request.mother_patient is not None:
        ctx.ids.allocate("mother_patient", request.mother_patient.patient_id)


def build_parties(
    ctx: EncodeContext,
    request: EncodeRequest,
    practitioner: bool,
    default_practice_code: str = "08.00",
) -> Parties:
    parties = Parties(
        provider=build_provider_org(ctx, request.provider),
        insurer=build_insurer_org(ctx, request.insurer),
        patient=build_patient(ctx, request.patient),
        coverage=build_coverage(ctx, request.coverage, request.patient, request.policy_holder),
    )
    if practitioner:
        parties.practitioner = build_practitioner(
            ctx,
            request.practitioner,
            request.claim.practice_code or default_practice_code,
        )
    if request.claim.is_newborn and request.mother_patient is not None:
        parties.mother = build_patient(ctx, request.mother_patient, role="mother_patient")
    return parties


# =============================================================================
# Claim skeleton
# =============================================================================


def request_identifier(ctx: EncodeContext, request: EncodeRequest) -> Dict[str, str]:
    claim = request.claim
    suffix = "claim" if ctx.is_claim else "authorization"
    value = claim.request_number or claim.claim_number or f"req_{ctx.ids.get('claim')[:8]}"
    return {
        "system": f"{provider_identifier_system(request.provider)}/{suffix}",
        "value": value,
    }


def reference(resource_type: str, resource_id: str) -> Dict[str, str]:
    return {"reference": f"{resource_type}/{resource_id}"}


def _reference_extension(name: str, value: Dict[str, Any]) -> Dict[str, Any]:
    return {"url": extension_url(name), "valueReference": value}


def _insurer_authority(request: EncodeRequest, ctx: EncodeContext) -> str:
    return (request.insurer.nphies_id or ctx.settings.INSURER_ID).lower()


def eligibility_response_extension(
    request: EncodeRequest, ctx: EncodeContext
) -> Optional[Dict[str, Any]]:
    """Identifier-based when an eligibility response id is known, else reference-based."""
    claim = request.claim
    default_system = (
        f"http://{_insurer_authority(request, ctx)}.com.sa/identifiers/coverageeligibilityresponse"
    )
    if claim.eligibility_response_id:
        return _reference_extension(
            "eligibility-response",
            {
                "identifier": {
                    "system": claim.eligibility_response_system or default_system,
                    "value": claim.eligibility_response_id,
                }
            },
        )
    if claim.eligibility_ref:
        if "/" in claim.eligibility_ref:
            return _reference_extension("eligibility-response", {"reference": claim.eligibility_ref})
        return _reference_extension(
            "eligibility-response",
            {"identifier": {"system": default_system, "value": claim.eligibility_ref}},
        )
    return None


def accounting_period_date(claim: ClaimInput, ctx: EncodeContext) -> str:
    return first_of_month(
        claim.accounting_period_start or claim.service_date or claim.request_date or ctx.now
    )


def episode_identifier(request: EncodeRequest, ctx: EncodeContext) -> Dict[str, str]:
    claim = request.claim
    number = claim.claim_number or claim.request_number or ctx.ids.get("claim")[:8]
    owner = request.provider.nphies_id or "provider"
    return {
        "system": f"{provider_identifier_system(request.provider)}/episode",
        "value": claim.episode_identifier or f"{owner}_EpisodeID_{number}",
    }


def batch_extensions(request: EncodeRequest, ctx: EncodeContext) -> List[Dict[str, Any]]:
    """
    batch-identifier, batch-number and batch-period for a claim.

    Without a batch identifier the claim forms a batch of one keyed on its
    claim number.
    """
    claim = request.claim
    batch_id = claim.batch_identifier or f"batch-{claim.claim_number or ctx.ids.get('claim')[:8]}"
    batch_start = claim.batch_period_start or claim.service_date or ctx.now
    batch_end = claim.batch_period_end or batch_start
    return [
        {
            "url": extension_url("batch-identifier"),
            "valueIdentifier": {
                "system": f"{provider_identifier_system(request.provider)}/batch",
                "value": batch_id,
            },
        },
        {"url": extension_url("batch-number"), "valuePositiveInt": claim.batch_number or 1},
        {
            "url": extension_url("batch-period"),
            "valuePeriod": {"start": to_date_only(batch_start), "end": to_date_only(batch_end)},
        },
    ]


def claim_extensions(
    request: EncodeRequest,
    ctx: EncodeContext,
    encounter: Optional[Entry],
    extra: Sequence[Dict[str, Any]] = (),
) -> List[Dict[str, Any]]:
    """
    Claim-level extensions in exchange order.

    accountingPeriod is first on claims; episode closes the common block.
    Batch extensions follow on pharmacy claims and on any claim submitted as
    part of a batch, then the category extensions.
    """
    claim = request.claim
    extensions: List[Dict[str, Any]] = []
    if ctx.is_claim:
        extensions.append(
            {"url": extension_url("accountingPeriod"), "valueDate": accounting_period_date(claim, ctx)}
        )
    if encounter is not None:
        extensions.append(
            _reference_extension("encounter", reference("Encounter", ctx.ids.get("encounter")))
        )
    if claim.eligibility_offline_ref:
        extensions.append(
            {
                "url": extension_url("eligibility-offline-reference"),
                "valueString": claim.eligibility_offline_ref,
            }
        )
    if claim.eligibility_offline_date:
        extensions.append(
            {
                "url": extension_url("eligibility-offline-date"),
                "valueDateTime": to_date_only(claim.eligibility_offline_date),
            }
        )
    if claim.is_transfer:
        extensions.append({"url": extension_url("transfer"), "valueBoolean": True})
    if claim.is_newborn:
        extensions.append({"url": extension_url("newborn"), "valueBoolean": True})
    eligibility = eligibility_response_extension(request, ctx)
    if eligibility is not None:
        extensions.append(eligibility)
    if ctx.is_claim:
        extensions.append(
            {"url": extension_url("episode"), "valueIdentifier": episode_identifier(request, ctx)}
        )
        if claim.batch_identifier or ctx.category == ClaimCategory.PHARMACY:
            extensions.extend(batch_extensions(request, ctx))
    extensions.extend(extra)
    return extensions


def care_team(ctx: EncodeContext, practice_code: str) -> List[Dict[str, Any]]:
    return [
        {
            "sequence": 1,
            "provider": reference("Practitioner", ctx.ids.get("practitioner")),
            "role": codeable(f"{HL7_CODE_SYSTEM}/claimcareteamrole", "primary"),
            "qualification": codeable(code_system("practice-codes"), practice_code),
        }
    ]


def build_diagnoses(
    request: EncodeRequest,
    ctx: EncodeContext,
    on_admission: bool = False,
    condition_onset: bool = False,
) -> List[Dict[str, Any]]:
    diagnoses = []
    for index, diagnosis in enumerate(request.claim.diagnoses, start=1):
        entry: Dict[str, Any] = {}
        if condition_onset:
            onset = diagnosis.condition_onset or "NR"
            entry["extension"] = [
                {
                    "url": extension_url("condition-onset"),
                    "valueCodeableConcept": codeable(code_system("condition-onset"), onset),
                }
            ]
        entry["sequence"] = index
        entry["diagnosisCodeableConcept"] = codeable(
            diagnosis_system(diagnosis.diagnosis_system),
            diagnosis.diagnosis_code,
            diagnosis.diagnosis_display,
        )
        entry["type"] = [codeable(code_system("diagnosis-type"), diagnosis.diagnosis_type or "principal")]
        if on_admission:
            admitted = diagnosis.on_admission is not False
            entry["onAdmission"] = codeable(
                code_system("diagnosis-on-admission"),
                "y" if admitted else "n",
                "Yes" if admitted else "No",
            )
        diagnoses.append(entry)
    return diagnoses


def build_insurance(request: EncodeRequest, ctx: EncodeContext) -> List[Dict[str, Any]]:
    insurance: Dict[str, Any] = {
        "sequence": 1,
        "focal": True,
        "coverage": reference("Coverage", ctx.ids.get("coverage")),
    }
    if ctx.is_claim and request.claim.pre_auth_ref:
        insurance["preAuthRef"] = [request.claim.pre_auth_ref]
    return [insurance]


def build_claim_entry(
    request: EncodeRequest,
    ctx: EncodeContext,
    *,
    subtype: ClaimSubType,
    encounter: Optional[Entry],
    item_parts: ItemPartsBuilder,
    extra_extensions: Sequence[Dict[str, Any]] = (),
    practice_code: Optional[str] = None,
    facility: Optional[Dict[str, str]] = None,
    prescription: Optional[Dict[str, str]] = None,
    on_admission: bool = False,
    condition_onset: bool = False,
    encounter_period: Optional[Dict[str, str]] = None,
) -> Entry:
    """
    Claim resource in exchange field order.

    practice_code is None for categories without a care team.
    """
    claim = request.claim
    claim_id = ctx.ids.get("claim")
    provider_system = provider_identifier_system(request.provider)
    identifier = request_identifier(ctx, request)
    currency = currency_of(request, ctx)

    records = build_supporting_info(claim, ctx)
    diagnoses = build_diagnoses(request, ctx, on_admission, condition_onset)

    resource: Dict[str, Any] = {
        "resourceType": "Claim",
        "id": claim_id,
        "meta": {"profile": [claim_profile_url(ctx.category, ctx.use)]},
    }
    extensions = claim_extensions(request, ctx, encounter, extra_extensions)
    if extensions:
        resource["extension"] = extensions
    resource["identifier"] = [identifier]
    resource["status"] = "active"
    resource["type"] = codeable(
        f"{HL7_CODE_SYSTEM}/claim-type", terminology.claim_type_code(ctx.category)
    )
    resource["subType"] = codeable(code_system("claim-subtype"), subtype.value)
    resource["use"] = ctx.use.value
    resource["patient"] = reference("Patient", ctx.ids.get("patient"))
    resource["created"] = ctx.local_datetime(claim.request_date)
    resource["insurer"] = reference("Organization", ctx.ids.get("insurer"))
    resource["provider"] = reference("Organization", ctx.ids.get("provider"))
    if facility is not None:
        resource["facility"] = facility
    resource["priority"] = codeable(f"{HL7_CODE_SYSTEM}/processpriority", claim.priority or "normal")
    resource["payee"] = {"type": codeable(f"{HL7_CODE_SYSTEM}/payeetype", "provider")}
    related = build_related(claim, provider_system)
    if related:
        resource["related"] = related
    if prescription is not None:
        resource["prescription"] = prescription
    if practice_code is not None:
        resource["careTeam"] = care_team(ctx, practice_code)
    if records:
        resource["supportingInfo"] = to_fhir(records, ctx)
    if diagnoses:
        resource["diagnosis"] = diagnoses
    resource["insurance"] = build_insurance(request, ctx)

    all_info = [r.sequence for r in records]
    all_diagnoses = list(range(1, len(diagnoses) + 1))
    items: List[Dict[str, Any]] = []
    nets: List[Decimal] = []
    for item in claim.items:
        # skipped lines do not consume a sequence
        sequence = item.sequence or len(items) + 1
        parts = item_parts(item, sequence, records)
        if parts is None:
            continue
        entry, net = build_item(
            ctx,
            item,
            sequence,
            parts,
            currency=currency,
            provider_system=provider_system,
            request_number=identifier["value"],
            diagnosis_sequences=all_diagnoses,
            information_sequences=all_info,
            encounter_period=encounter_period,
        )
        items.append(entry)
        nets.append(net)
    if items:
        resource["item"] = items
    resource["total"] = money(compute_total(nets, claim.total_amount), currency)

    return {"fullUrl": ctx.full_url("Claim", claim_id), "resource": resource}


# =============================================================================
# Encounter skeleton
# =============================================================================


def encounter_identifier(request: EncodeRequest, ctx: EncodeContext) -> Dict[str, str]:
    domain = "".join(ch for ch in ctx.settings.PROVIDER_DOMAIN.lower() if ch.isalnum()) or "provider"
    claim = request.claim
    value = (
        claim.encounter_identifier
        or claim.request_number
        or claim.claim_number
        or f"ENC-{ctx.ids.get('encounter')[:8]}"
    )
    return {"system": f"http://{domain}.com.sa/identifiers/encounter", "value": value}


def build_encounter_base(
    request: EncodeRequest,
    ctx: EncodeContext,
    *,
    encounter_class: str,
    status: str,
    extensions: Sequence[Dict[str, Any]] = (),
) -> Dict[str, Any]:
    """Encounter up to and including class; callers add the rest in order."""
    resource: Dict[str, Any] = {
        "resourceType": "Encounter",
        "id": ctx.ids.get("encounter"),
        "meta": {"profile": [profile_url("encounter")]},
    }
    if extensions:
        resource["extension"] = list(extensions)
    resource["identifier"] = [encounter_identifier(request, ctx)]
    resource["status"] = status
    resource["class"] = {
        "system": f"{HL7_CODE_SYSTEM}/v3-ActCode",
        "code": terminology.encounter_class_code(encounter_class),
        "display": terminology.encounter_class_display(encounter_class),
    }
    return resource


def service_type(code: str) -> Dict[str, Any]:
    return codeable(
        code_system("service-type"),
        code,
        terminology.display_for(terminology.SERVICE_TYPE_DISPLAYS, code),
    )


def coded_extension(name: str, system_name: str, code: str, table: Dict[str, str]) -> Dict[str, Any]:
    return {
        "url": extension_url(name),
        "valueCodeableConcept": codeable(
            code_system(system_name), code, terminology.display_for(table, code)
        ),
    }


def encounter_entry(ctx: EncodeContext, resource: Dict[str, Any]) -> Entry:
    return {"fullUrl": ctx.full_url("Encounter", resource["id"]), "resource": resource}


# =============================================================================
# Bundle
# =============================================================================


def event_code(ctx: EncodeContext) -> str:
    if ctx.is_claim:
        return MessageEvent.CLAIM_REQUEST.value
    return MessageEvent.PRIORAUTH_REQUEST.value


def assemble_bundle(
    request: EncodeRequest,
    ctx: EncodeContext,
    claim_entry: Entry,
    entries: Sequence[Optional[Entry]],
) -> Dict[str, Any]:
    """
    Message bundle: MessageHeader, then the category-ordered entries.

    Prior authorizations append Binary entries for attachments; claims embed
    attachments in supportingInfo only.
    """
    header = build_message_header(
        ctx, request.provider, request.insurer, event_code(ctx), claim_entry["fullUrl"]
    )
    bundle_entries = [header] + [e for e in entries if e is not None]
    if not ctx.is_claim:
        bundle_entries.extend(build_binary_attachment(ctx, a) for a in request.claim.attachments)
    bundle = {
        "resourceType": "Bundle",
        "id": ctx.new_id(),
        "meta": {"profile": [profile_url("bundle")]},
        "type": "message",
        "timestamp": to_date_time(ctx.now),
        "entry": bundle_entries,
    }
    logger.debug(
        f"Encoded {CATEGORY_SLUGS[ctx.category]} {ctx.use.value} bundle "
        f"with {len(bundle_entries)} entries"
    )
    return bundle


# =============================================================================
# Strategy interface
# =============================================================================


class ClaimEncoder(ABC):
    """
    One encoder per claim category.

    Instances hold only immutable configuration; everything produced during
    an encode call lives in the EncodeContext created for that call.
    """

    category: ClaimCategory

    def __init__(self, settings: Optional[NphiesSettings] = None):
        self.settings = settings

    def new_context(
        self,
        use: Union[RequestUse, str, None] = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> EncodeContext:
        return EncodeContext.create(
            self.category,
            normalize_use(use),
            settings=self.settings,
            id_generator=id_generator,
            clock=clock,
        )

    def encode(
        self,
        payload: RequestPayload,
        *,
        use: Union[RequestUse, str, None] = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> Dict[str, Any]:
        """
        Encode one request into a message bundle.

        The explicit use wins, then claim.use, then preauthorization.
        """
        request = coerce_request(payload)
        ctx = self.new_context(use or request.claim.use, id_generator, clock)
        return self.encode_request(request, ctx)

    @abstractmethod
    def encode_request(self, request: EncodeRequest, ctx: EncodeContext) -> Dict[str, Any]:
        """Build the full bundle."""

    @abstractmethod
    def encode_claim_resource(
        self, request: EncodeRequest, ctx: EncodeContext, encounter: Optional[Entry]
    ) -> Entry:
        """Build the Claim entry."""

    @abstractmethod
    def encode_encounter(self, request: EncodeRequest, ctx: EncodeContext) -> Optional[Entry]:
        """Build the Encounter entry, or None when the category has none."""
