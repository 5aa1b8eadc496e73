"""
NPHIES SupportingInfo Pipeline.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Caller supporting info flows through pure stages, each returning new frozen
records:
1. records_from_inputs    - caller entries to records
2. transform_by_category  - per-category normalization (may drop a record)
3. synthesize_mandatory   - add the entries a category/request kind requires
4. assign_sequences       - 1-based, contiguous, by final position
5. to_fhir                - emit Claim.supportingInfo entries
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from nphies_claims.core.enums import ClaimCategory
from nphies_claims.schemas.nphies import (
    AttachmentInput,
    ClaimInput,
    DiagnosisInput,
    ItemInput,
    SupportingInfoInput,
)
from nphies_claims.services.nphies import terminology
from nphies_claims.services.nphies.fhir_base import (
    ICD10_AM_SYSTEM,
    SNOMED_SYSTEM,
    UCUM_SYSTEM,
    DateInput,
    EncodeContext,
    NphiesValidationError,
    code_system,
    coding,
    fhir_number,
    to_date_only,
    to_date_time,
    to_decimal,
)
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

CHIEF_COMPLAINT = "chief-complaint"
ONSET = "onset"
DAYS_SUPPLY = "days-supply"
BIRTH_WEIGHT = "birth-weight"
LENGTH_OF_STAY = "estimated-length-of-stay"
INVESTIGATION_RESULT = "investigation-result"
ATTACHMENT = "attachment"

VALID_INVESTIGATION_CODES = ("INP", "IRA", "other", "NA", "IRP")
DEFAULT_DAYS_SUPPLY = 30


# =============================================================================
# Record
# =============================================================================


@dataclass(frozen=True)
class SupportingInfoRecord:
    """Immutable supporting info entry; category is the internal lower-case key."""

    category: str
    code: Optional[str] = None
    code_display: Optional[str] = None
    code_system: Optional[str] = None
    code_text: Optional[str] = None
    value_string: Optional[str] = None
    value_quantity: Optional[Decimal] = None
    value_quantity_unit: Optional[str] = None
    value_boolean: Optional[bool] = None
    value_date: DateInput = None
    value_period_start: DateInput = None
    value_period_end: DateInput = None
    value_reference: Optional[str] = None
    timing_date: DateInput = None
    timing_period_start: DateInput = None
    timing_period_end: DateInput = None
    reason_code: Optional[str] = None
    attachment: Optional[AttachmentInput] = None
    sequence: Optional[int] = None


def records_from_inputs(
    entries: Sequence[SupportingInfoInput],
) -> Tuple[SupportingInfoRecord, ...]:
    return tuple(
        SupportingInfoRecord(
            category=terminology.supporting_info_category_key(entry.category),
            code=entry.code or None,
            code_display=entry.code_display,
            code_system=entry.code_system,
            code_text=entry.code_text or None,
            value_string=entry.value_string,
            value_quantity=entry.value_quantity,
            value_quantity_unit=entry.value_quantity_unit,
            value_boolean=entry.value_boolean,
            value_date=entry.value_date,
            value_period_start=entry.value_period_start,
            value_period_end=entry.value_period_end,
            value_reference=entry.value_reference,
            timing_date=entry.timing_date,
            timing_period_start=entry.timing_period_start,
            timing_period_end=entry.timing_period_end,
            reason_code=entry.reason_code,
            attachment=entry.attachment,
        )
        for entry in entries
    )


def has_category(records: Sequence[SupportingInfoRecord], category: str) -> bool:
    return any(r.category == category for r in records)


# =============================================================================
# Stage 2: per-category transforms
# =============================================================================


Transform = Callable[
    [SupportingInfoRecord, ClaimInput, EncodeContext], Optional[SupportingInfoRecord]
]


def _principal_diagnosis(diagnoses: Sequence[DiagnosisInput]) -> Optional[DiagnosisInput]:
    for diagnosis in diagnoses:
        if diagnosis.diagnosis_type == "principal":
            return diagnosis
    return diagnoses[0] if diagnoses else None


def _quantity_from(record: SupportingInfoRecord, default: Optional[Any] = None) -> Optional[Decimal]:
    if record.value_quantity is not None:
        return record.value_quantity
    if record.value_string not in (None, ""):
        return to_decimal(record.value_string)
    if default is None:
        return None
    return to_decimal(default)


def _chief_complaint(record, claim, ctx):
    if record.code_text or (record.value_string and not record.code):
        # Free text goes to code.text; the value is not repeated as valueString
        return replace(
            record, code_text=record.code_text or record.value_string, code=None, value_string=None
        )
    if record.code:
        return record
    ctx.warn("chief-complaint without code or text; using 'Chief complaint'")
    return replace(record, code_text="Chief complaint")


def _onset(record, claim, ctx):
    if record.code:
        return record
    principal = _principal_diagnosis(claim.diagnoses)
    if principal is None:
        logger.info("Dropping onset supporting info: no code and no diagnosis")
        return None
    return replace(
        record,
        code=principal.diagnosis_code,
        code_display=principal.diagnosis_display,
        code_system=diagnosis_system(principal.diagnosis_system),
    )


def _days_supply(record, claim, ctx):
    value = _quantity_from(record, claim.days_supply or DEFAULT_DAYS_SUPPLY)
    return replace(record, value_quantity=value, value_quantity_unit="d", value_string=None)


def _birth_weight(record, claim, ctx):
    value = _quantity_from(record)
    if value is None:
        return record
    unit = (record.value_quantity_unit or "").lower()
    if value > 20 and unit in ("", "g", "gram", "grams"):
        value = value / Decimal(1000)
    return replace(record, value_quantity=value, value_quantity_unit="kg", value_string=None)


def _length_of_stay(record, claim, ctx):
    value = _quantity_from(record, claim.estimated_length_of_stay or 1)
    return replace(record, value_quantity=value, value_quantity_unit="d", value_string=None)


def _investigation_result(record, claim, ctx):
    code = record.code
    if code not in VALID_INVESTIGATION_CODES:
        ctx.warn(f"investigation-result code {code!r} is not valid; using 'NA'")
        code = "NA"
    display = record.code_display if code == record.code else None
    return replace(
        record,
        code=code,
        code_display=display or terminology.INVESTIGATION_RESULT_DISPLAYS[code],
        code_system=code_system("investigation-result"),
        code_text=None,
    )


CATEGORY_TRANSFORMS: Dict[str, Transform] = {
    CHIEF_COMPLAINT: _chief_complaint,
    ONSET: _onset,
    DAYS_SUPPLY: _days_supply,
    BIRTH_WEIGHT: _birth_weight,
    LENGTH_OF_STAY: _length_of_stay,
    INVESTIGATION_RESULT: _investigation_result,
}


def transform_by_category(
    records: Sequence[SupportingInfoRecord], claim: ClaimInput, ctx: EncodeContext
) -> Tuple[SupportingInfoRecord, ...]:
    """Apply the category transform to each record, dropping rejected ones."""
    result = []
    for record in records:
        transform = CATEGORY_TRANSFORMS.get(record.category)
        transformed = transform(record, claim, ctx) if transform else record
        if transformed is not None:
            result.append(transformed)
    return tuple(result)


# =============================================================================
# Stage 3: mandatory synthesis
# =============================================================================


def _placeholder(
    ctx: EncodeContext, record: SupportingInfoRecord, caller_derived: bool
) -> SupportingInfoRecord:
    """Gate a synthesized record through the strictness setting."""
    if caller_derived:
        return record
    if ctx.settings.STRICT_PLACEHOLDERS:
        raise NphiesValidationError(
            f"Missing mandatory supporting info '{record.category}'",
            field="supporting_info",
            category=ctx.category.value,
        )
    ctx.warn(f"Synthesized placeholder supporting info '{record.category}'")
    return record


def _chief_complaint_record(
    ctx: EncodeContext, claim: ClaimInput, default_text: str, coded_default: bool = False
) -> SupportingInfoRecord:
    timing = (claim.request_date or ctx.now) if coded_default else None
    if claim.chief_complaint_code:
        record = SupportingInfoRecord(
            category=CHIEF_COMPLAINT,
            code=claim.chief_complaint_code,
            code_display=claim.chief_complaint,
            code_system=SNOMED_SYSTEM,
            timing_date=timing,
        )
        return _placeholder(ctx, record, True)
    if claim.chief_complaint:
        record = SupportingInfoRecord(
            category=CHIEF_COMPLAINT, code_text=claim.chief_complaint, timing_date=timing
        )
        return _placeholder(ctx, record, True)
    if coded_default:
        record = SupportingInfoRecord(
            category=CHIEF_COMPLAINT,
            code="418799008",
            code_display="General symptom",
            code_system=SNOMED_SYSTEM,
            timing_date=timing,
        )
    else:
        record = SupportingInfoRecord(category=CHIEF_COMPLAINT, code_text=default_text)
    return _placeholder(ctx, record, False)


def _text_record(
    ctx: EncodeContext, category: str, value: Optional[str], default: str
) -> SupportingInfoRecord:
    record = SupportingInfoRecord(category=category, value_string=value or default)
    return _placeholder(ctx, record, bool(value))


def _investigation_record(ctx: EncodeContext, claim: ClaimInput) -> SupportingInfoRecord:
    record = _investigation_result(
        SupportingInfoRecord(category=INVESTIGATION_RESULT, code=claim.investigation_result_code or "NA"),
        claim,
        ctx,
    )
    return _placeholder(ctx, record, bool(claim.investigation_result_code))


def _clinical_text_records(
    ctx: EncodeContext,
    records: Sequence[SupportingInfoRecord],
    claim: ClaimInput,
    defaults: Dict[str, str],
) -> List[SupportingInfoRecord]:
    values = {
        "patient-history": claim.patient_history,
        "treatment-plan": claim.treatment_plan,
        "physical-examination": claim.physical_examination,
        "history-of-present-illness": claim.history_of_present_illness,
    }
    added = []
    if not has_category(records, INVESTIGATION_RESULT):
        added.append(_investigation_record(ctx, claim))
    for category, default in defaults.items():
        if not has_category(records, category):
            added.append(_text_record(ctx, category, values[category], default))
    return added


PROFESSIONAL_CLAIM_TEXT_DEFAULTS = {
    "patient-history": "No systemic disease",
    "treatment-plan": "Analgesic Drugs",
    "physical-examination": "Stable",
    "history-of-present-illness": "No history",
}

PHARMACY_CLAIM_TEXT_DEFAULTS = {
    "patient-history": "No significant past medical history",
    "treatment-plan": "Medication therapy as prescribed",
}


def item_days_supply(item: ItemInput, claim: ClaimInput) -> Decimal:
    return Decimal(item.days_supply or claim.days_supply or DEFAULT_DAYS_SUPPLY)


def is_device_item(item: ItemInput) -> bool:
    return bool(item.device_code) and not item.medication_code


def has_dispensed_code(item: ItemInput) -> bool:
    return bool(item.medication_code or item.product_or_service_code or item.device_code)


def _days_supply_records(
    ctx: EncodeContext, records: Sequence[SupportingInfoRecord], claim: ClaimInput
) -> List[SupportingInfoRecord]:
    existing = {r.value_quantity for r in records if r.category == DAYS_SUPPLY}
    wanted: List[Tuple[Decimal, bool]] = []
    for item in claim.items:
        if is_device_item(item) or not has_dispensed_code(item):
            continue
        value = item_days_supply(item, claim)
        if value not in [w[0] for w in wanted]:
            wanted.append((value, bool(item.days_supply or claim.days_supply)))
    if not wanted and not existing:
        wanted.append((Decimal(claim.days_supply or DEFAULT_DAYS_SUPPLY), bool(claim.days_supply)))

    added = []
    for value, caller_derived in wanted:
        if value in existing:
            continue
        record = SupportingInfoRecord(
            category=DAYS_SUPPLY, value_quantity=value, value_quantity_unit="d"
        )
        added.append(_placeholder(ctx, record, caller_derived))
    return added


def synthesize_mandatory(
    records: Sequence[SupportingInfoRecord], claim: ClaimInput, ctx: EncodeContext
) -> Tuple[SupportingInfoRecord, ...]:
    """
    Add the supporting info the category and request kind require.

    Synthesized chief-complaints go first; everything else is appended.
    Caller-supplied entries are never replaced.
    """
    category = ctx.category
    head: List[SupportingInfoRecord] = []
    tail: List[SupportingInfoRecord] = []

    if not has_category(records, CHIEF_COMPLAINT):
        if category == ClaimCategory.INSTITUTIONAL:
            head.append(_chief_complaint_record(ctx, claim, "", coded_default=True))
        elif category == ClaimCategory.PROFESSIONAL:
            head.append(_chief_complaint_record(ctx, claim, "Patient presenting for evaluation"))
        elif category == ClaimCategory.DENTAL:
            head.append(_chief_complaint_record(ctx, claim, "Periodic oral examination"))
        elif category == ClaimCategory.VISION:
            head.append(_chief_complaint_record(ctx, claim, "Vision examination"))

    if category == ClaimCategory.INSTITUTIONAL and not has_category(records, LENGTH_OF_STAY):
        record = SupportingInfoRecord(
            category=LENGTH_OF_STAY,
            value_quantity=claim.estimated_length_of_stay or Decimal(1),
            value_quantity_unit="d",
            timing_date=claim.request_date or ctx.now,
        )
        tail.append(_placeholder(ctx, record, claim.estimated_length_of_stay is not None))

    if category == ClaimCategory.PHARMACY:
        tail.extend(_days_supply_records(ctx, records, claim))

    if ctx.is_claim and category == ClaimCategory.PROFESSIONAL:
        tail.extend(_clinical_text_records(ctx, records, claim, PROFESSIONAL_CLAIM_TEXT_DEFAULTS))
    elif ctx.is_claim and category == ClaimCategory.PHARMACY:
        tail.extend(_clinical_text_records(ctx, records, claim, PHARMACY_CLAIM_TEXT_DEFAULTS))

    if claim.is_newborn and claim.birth_weight is not None and not has_category(records, BIRTH_WEIGHT):
        tail.append(
            _birth_weight(
                SupportingInfoRecord(
                    category=BIRTH_WEIGHT,
                    value_quantity=claim.birth_weight,
                    value_quantity_unit="g",
                ),
                claim,
                ctx,
            )
        )

    if ctx.is_claim:
        for attachment in claim.attachments:
            tail.append(
                SupportingInfoRecord(
                    category=ATTACHMENT,
                    attachment=attachment,
                    timing_date=attachment.creation_date,
                )
            )

    return tuple(head) + tuple(records) + tuple(tail)


# =============================================================================
# Stage 4-5: sequencing and emission
# =============================================================================


def assign_sequences(
    records: Sequence[SupportingInfoRecord],
) -> Tuple[SupportingInfoRecord, ...]:
    return tuple(replace(r, sequence=i) for i, r in enumerate(records, start=1))


def diagnosis_system(system: Optional[str]) -> str:
    if not system or system.rstrip("/").endswith("/icd-10"):
        return ICD10_AM_SYSTEM
    return system


def _attachment_value(ctx_now: DateInput, attachment: AttachmentInput) -> Dict[str, Any]:
    value: Dict[str, Any] = {"contentType": attachment.content_type}
    if attachment.title:
        value["title"] = attachment.title
    value["creation"] = to_date_only(attachment.creation_date or ctx_now)
    value["data"] = attachment.base64_content
    return value


def build_generic_supporting_info(
    record: SupportingInfoRecord, now: DateInput = None
) -> Dict[str, Any]:
    """
    Claim.supportingInfo entry for one sequenced record.

    Only chief-complaint may carry free text as its code; anywhere else free
    text without a coded value is a caller error.
    """
    entry: Dict[str, Any] = {
        "sequence": record.sequence,
        "category": {
            "coding": [
                coding(
                    code_system("claim-information-category"),
                    terminology.supporting_info_category_code(record.category),
                )
            ]
        },
    }

    if record.category == CHIEF_COMPLAINT and record.code_text:
        entry["code"] = {"text": record.code_text}
    elif record.code:
        entry["code"] = {
            "coding": [
                coding(
                    record.code_system
                    or terminology.supporting_info_code_system(record.category),
                    record.code,
                    record.code_display,
                )
            ]
        }
    elif record.code_text:
        raise NphiesValidationError(
            "Free-text code is only allowed for chief-complaint",
            field="supporting_info.code_text",
            category=record.category,
        )

    if record.timing_period_start:
        entry["timingPeriod"] = {
            "start": to_date_time(record.timing_period_start),
            "end": to_date_time(record.timing_period_end or record.timing_period_start),
        }
    elif record.timing_date:
        entry["timingDate"] = to_date_only(record.timing_date)

    if record.value_string is not None:
        entry["valueString"] = record.value_string
    elif record.value_quantity is not None:
        entry["valueQuantity"] = {
            "value": fhir_number(record.value_quantity),
            "system": UCUM_SYSTEM,
            "code": terminology.ucum_code(record.value_quantity_unit),
        }
    elif record.value_boolean is not None:
        entry["valueBoolean"] = record.value_boolean
    elif record.value_date:
        entry["valueDate"] = to_date_only(record.value_date)
    elif record.value_period_start:
        period = {"start": to_date_time(record.value_period_start)}
        if record.value_period_end:
            period["end"] = to_date_time(record.value_period_end)
        entry["valuePeriod"] = period
    elif record.value_reference:
        entry["valueReference"] = {"reference": record.value_reference}
    elif record.attachment is not None:
        entry["valueAttachment"] = _attachment_value(now, record.attachment)

    if record.reason_code:
        entry["reason"] = {
            "coding": [coding(code_system("supporting-info-reason"), record.reason_code)]
        }
    return entry


def to_fhir(
    records: Sequence[SupportingInfoRecord], ctx: EncodeContext
) -> List[Dict[str, Any]]:
    return [build_generic_supporting_info(r, ctx.now) for r in records]


def build_supporting_info(
    claim: ClaimInput, ctx: EncodeContext
) -> Tuple[SupportingInfoRecord, ...]:
    """Run stages 1-4 for a request; returns sequenced records."""
    records = records_from_inputs(claim.supporting_info)
    records = transform_by_category(records, claim, ctx)
    records = synthesize_mandatory(records, claim, ctx)
    return assign_sequences(records)
