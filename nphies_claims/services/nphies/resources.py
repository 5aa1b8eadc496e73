"""
NPHIES Shared Resource Builders.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Builders for the resources every claim category shares:
- Patient, provider and insurer Organizations
- Coverage, Practitioner
- MessageHeader, Binary attachment
- VisionPrescription
- Claim.related for updates and resubmissions

Every builder takes the per-call EncodeContext, reads correlation ids from its
arena and returns a bundle entry ({"fullUrl", "resource"}).
"""

from typing import Any, Dict, List, Optional

from nphies_claims.schemas.nphies import (
    AttachmentInput,
    ClaimInput,
    CoverageInput,
    InsurerInput,
    LensSpecificationInput,
    PatientInput,
    PolicyHolderInput,
    PractitionerInput,
    ProviderInput,
    VisionPrescriptionInput,
)
from nphies_claims.services.nphies import terminology
from nphies_claims.services.nphies.fhir_base import (
    HL7_CODE_SYSTEM,
    PAYER_LICENSE_SYSTEM,
    PRACTITIONER_LICENSE_SYSTEM,
    PRIORAUTH_IDENTIFIER_SYSTEM,
    PROVIDER_LICENSE_SYSTEM,
    UCUM_SYSTEM,
    EncodeContext,
    code_system,
    codeable,
    coding,
    extension_url,
    fhir_number,
    profile_url,
    to_date_only,
    to_date_time,
)

Entry = Dict[str, Any]


# =============================================================================
# Helpers
# =============================================================================


def provider_identifier_system(provider: ProviderInput) -> str:
    """Authority under which the provider issues request identifiers."""
    if provider.identifier_system:
        return provider.identifier_system.rstrip("/")
    name = "".join((provider.provider_name or "provider").split()).lower()
    return f"http://{name}.com.sa/identifiers"


def provider_license(ctx: EncodeContext, provider: ProviderInput) -> str:
    return provider.nphies_id or ctx.settings.PROVIDER_ID


def insurer_license(ctx: EncodeContext, insurer: InsurerInput) -> str:
    return insurer.nphies_id or ctx.settings.INSURER_ID


def split_name(
    full_name: Optional[str],
    family_name: Optional[str] = None,
    given_name: Optional[str] = None,
    default_family: str = "Unknown",
    default_given: str = "Unknown",
) -> Dict[str, Any]:
    """
    FHIR HumanName parts.

    Explicit family/given names win; otherwise the last token of the full name
    is the family name and the rest are given names.
    """
    tokens = (full_name or "").split()
    if family_name or given_name:
        family = family_name or (tokens[-1] if tokens else default_family)
        given = [given_name] if given_name else (tokens[:-1] or [default_given])
    elif len(tokens) > 1:
        family, given = tokens[-1], tokens[:-1]
    elif tokens:
        family, given = tokens[0], [tokens[0]]
    else:
        family, given = default_family, [default_given]
    text = full_name or " ".join(given + [family])
    return {"use": "official", "text": text, "family": family, "given": given}


def _address(text: str, city: Optional[str], use: str) -> List[Dict[str, Any]]:
    return [
        {
            "use": use,
            "text": text,
            "line": [text],
            "city": city or "Riyadh",
            "country": "Saudi Arabia",
        }
    ]


# =============================================================================
# Patient
# =============================================================================


def _resolve_identifier_type(identifier_type: str, value: str) -> str:
    # Saudi ids: 10 digits, national ids start with 1 and iqamas with 2
    if len(value) == 10 and value.isdigit():
        if value.startswith("1"):
            return "national_id"
        if value.startswith("2"):
            return "iqama"
    return identifier_type if identifier_type in terminology.PATIENT_IDENTIFIER_TYPES else "national_id"


def build_patient(
    ctx: EncodeContext, patient: PatientInput, role: str = "patient"
) -> Entry:
    """Patient resource; role is 'patient' or 'mother_patient'."""
    patient_id = ctx.ids.allocate(role, patient.patient_id)
    value = patient.identifier or patient.patient_id or "UNKNOWN"
    id_type = _resolve_identifier_type(patient.identifier_type, value)
    type_code, type_display, system = terminology.PATIENT_IDENTIFIER_TYPES[id_type]
    if system is None:
        system = f"{ctx.base_url}/identifier/mrn"
    gender = (patient.gender or "unknown").lower()

    resource: Dict[str, Any] = {
        "resourceType": "Patient",
        "id": patient_id,
        "meta": {"profile": [profile_url("patient")]},
        "extension": [
            {
                "url": extension_url("occupation"),
                "valueCodeableConcept": codeable(
                    code_system("occupation"), patient.occupation or "business"
                ),
            }
        ],
        "identifier": [
            {
                "extension": [
                    {
                        "url": extension_url("identifier-country"),
                        "valueCodeableConcept": codeable(
                            "urn:iso:std:iso:3166", "SAU", "Saudi Arabia"
                        ),
                    }
                ],
                "type": codeable(f"{HL7_CODE_SYSTEM}/v2-0203", type_code, type_display),
                "system": system,
                "value": value,
            }
        ],
        "active": True,
        "name": [
            split_name(patient.name, patient.family_name, patient.given_name)
        ],
    }
    if patient.phone:
        resource["telecom"] = [{"system": "phone", "value": patient.phone}]
    resource["gender"] = gender
    resource["_gender"] = {
        "extension": [
            {
                "url": extension_url("ksa-administrative-gender"),
                "valueCodeableConcept": codeable(
                    code_system("ksa-administrative-gender"), gender
                ),
            }
        ]
    }
    if patient.birth_date:
        resource["birthDate"] = to_date_only(patient.birth_date)
    resource["deceasedBoolean"] = False
    if patient.address:
        resource["address"] = _address(patient.address, patient.city, "home")
    resource["maritalStatus"] = codeable(
        f"{HL7_CODE_SYSTEM}/v3-MaritalStatus",
        terminology.marital_status_code(patient.marital_status),
    )
    return {"fullUrl": ctx.full_url("Patient", patient_id), "resource": resource}


# =============================================================================
# Organizations
# =============================================================================


def build_provider_org(ctx: EncodeContext, provider: ProviderInput) -> Entry:
    provider_id = ctx.ids.allocate("provider", provider.provider_id)
    type_code = terminology.provider_type_code(provider.provider_type)
    resource: Dict[str, Any] = {
        "resourceType": "Organization",
        "id": provider_id,
        "meta": {"profile": [profile_url("provider-organization")]},
        "extension": [
            {
                "url": extension_url("provider-type"),
                "valueCodeableConcept": codeable(
                    code_system("provider-type"),
                    type_code,
                    terminology.PROVIDER_TYPE_DISPLAYS[type_code],
                ),
            }
        ],
        "identifier": [
            {"system": PROVIDER_LICENSE_SYSTEM, "value": provider_license(ctx, provider)}
        ],
        "active": True,
        "type": [codeable(code_system("organization-type"), "prov")],
        "name": provider.provider_name or "Provider Organization",
    }
    if provider.address:
        resource["address"] = _address(provider.address, provider.city, "work")
    return {"fullUrl": ctx.full_url("Organization", provider_id), "resource": resource}


def build_insurer_org(ctx: EncodeContext, insurer: InsurerInput) -> Entry:
    insurer_id = ctx.ids.allocate("insurer", insurer.insurer_id)
    resource: Dict[str, Any] = {
        "resourceType": "Organization",
        "id": insurer_id,
        "meta": {"profile": [profile_url("insurer-organization")]},
        "identifier": [
            {
                "use": "official",
                "type": codeable(f"{HL7_CODE_SYSTEM}/v2-0203", "NII"),
                "system": PAYER_LICENSE_SYSTEM,
                "value": insurer_license(ctx, insurer),
            }
        ],
        "active": True,
        "type": [
            codeable(code_system("organization-type"), "ins", "Insurance Company")
        ],
        "name": insurer.insurer_name or "Insurance Organization",
    }
    if insurer.address:
        resource["address"] = _address(insurer.address, None, "work")
    return {"fullUrl": ctx.full_url("Organization", insurer_id), "resource": resource}


# =============================================================================
# Coverage / Practitioner
# =============================================================================


def build_coverage(
    ctx: EncodeContext,
    coverage: Optional[CoverageInput],
    patient: PatientInput,
    policy_holder: Optional[PolicyHolderInput] = None,
) -> Entry:
    """Coverage linking the patient (beneficiary) to the insurer (payor)."""
    coverage = coverage or CoverageInput()
    coverage_id = ctx.ids.allocate("coverage", coverage.coverage_id)
    patient_id = ctx.ids.allocate("patient", patient.patient_id)
    insurer_id = ctx.ids.get("insurer")
    holder_id = ctx.ids.allocate("policy_holder", policy_holder.id if policy_holder else patient_id)

    member_id = coverage.member_id or patient.identifier or f"MEM-{coverage_id[:8]}"
    classes = [
        {
            "type": codeable(f"{HL7_CODE_SYSTEM}/coverage-class", "plan"),
            "value": coverage.plan_id or "default-plan",
            "name": coverage.plan_name or "Insurance Plan",
        }
    ]
    if coverage.network:
        classes.append(
            {
                "type": codeable(f"{HL7_CODE_SYSTEM}/coverage-class", "network"),
                "value": coverage.network,
                "name": "Network",
            }
        )

    resource: Dict[str, Any] = {
        "resourceType": "Coverage",
        "id": coverage_id,
        "meta": {"profile": [profile_url("coverage")]},
        "identifier": [{"system": "http://payer.com/memberid", "value": member_id}],
        "status": "active",
        "type": codeable(
            code_system("coverage-type"),
            coverage.coverage_type,
            terminology.display_for(terminology.COVERAGE_TYPE_DISPLAYS, coverage.coverage_type),
        ),
        "policyHolder": {"reference": f"Patient/{holder_id}"},
        "subscriber": {"reference": f"Patient/{patient_id}"},
        "beneficiary": {"reference": f"Patient/{patient_id}"},
        "relationship": codeable(
            f"{HL7_CODE_SYSTEM}/subscriber-relationship",
            coverage.relationship,
            terminology.display_for(terminology.RELATIONSHIP_DISPLAYS, coverage.relationship),
        ),
        "payor": [{"reference": f"Organization/{insurer_id}"}],
        "class": classes,
    }
    if coverage.start_date:
        resource["period"] = {"start": to_date_only(coverage.start_date)}
        if coverage.end_date:
            resource["period"]["end"] = to_date_only(coverage.end_date)
    return {"fullUrl": ctx.full_url("Coverage", coverage_id), "resource": resource}


def build_practitioner(
    ctx: EncodeContext,
    practitioner: Optional[PractitionerInput],
    default_practice_code: str = "08.00",
) -> Entry:
    practitioner = practitioner or PractitionerInput()
    practitioner_id = ctx.ids.allocate("practitioner", practitioner.practitioner_id)
    practice_code = practitioner.practice_code or default_practice_code
    resource = {
        "resourceType": "Practitioner",
        "id": practitioner_id,
        "meta": {"profile": [profile_url("practitioner")]},
        "identifier": [
            {
                "type": codeable(
                    f"{HL7_CODE_SYSTEM}/v2-0203",
                    practitioner.id_type,
                    terminology.practitioner_id_type_display(practitioner.id_type),
                ),
                "system": PRACTITIONER_LICENSE_SYSTEM,
                "value": practitioner.license_number or f"PRACT-{practitioner_id[:8]}",
            }
        ],
        "active": True,
        "name": [
            split_name(
                practitioner.name,
                practitioner.family_name,
                practitioner.given_name,
                default_family="Provider",
                default_given="Healthcare",
            )
        ],
        "qualification": [
            {
                "code": codeable(
                    code_system("practice-codes"),
                    practice_code,
                    terminology.practice_code_display(practice_code),
                )
            }
        ],
    }
    return {"fullUrl": ctx.full_url("Practitioner", practitioner_id), "resource": resource}


# =============================================================================
# Message Header / Binary
# =============================================================================


def build_message_header(
    ctx: EncodeContext,
    provider: ProviderInput,
    insurer: InsurerInput,
    event_code: str,
    focus_full_url: str,
) -> Entry:
    """MessageHeader; always the first bundle entry."""
    header_id = ctx.new_id()
    destination = insurer_license(ctx, insurer)
    resource = {
        "resourceType": "MessageHeader",
        "id": header_id,
        "meta": {"profile": [profile_url("message-header")]},
        "eventCoding": coding(code_system("ksa-message-events"), event_code),
        "destination": [
            {
                "endpoint": f"{PAYER_LICENSE_SYSTEM}/{destination}",
                "receiver": {
                    "type": "Organization",
                    "identifier": {"system": PAYER_LICENSE_SYSTEM, "value": destination},
                },
            }
        ],
        "sender": {
            "type": "Organization",
            "identifier": {
                "system": PROVIDER_LICENSE_SYSTEM,
                "value": provider_license(ctx, provider),
            },
        },
        "source": {"endpoint": ctx.base_url},
        "focus": [{"reference": focus_full_url}],
    }
    return {"fullUrl": f"urn:uuid:{header_id}", "resource": resource}


def build_binary_attachment(ctx: EncodeContext, attachment: AttachmentInput) -> Entry:
    binary_id = attachment.binary_id or f"binary-{ctx.new_id()}"
    resource = {
        "resourceType": "Binary",
        "id": binary_id,
        "contentType": attachment.content_type,
        "data": attachment.base64_content,
    }
    return {"fullUrl": ctx.full_url("Binary", binary_id), "resource": resource}


# =============================================================================
# Related claims
# =============================================================================


def build_related(claim: ClaimInput, provider_system: str) -> Optional[List[Dict[str, Any]]]:
    """
    Claim.related for resubmissions and updates.

    A resubmission points at the original provider request number; an update
    points at the payer's pre-auth reference. Resubmission wins when both apply.
    """
    relationship = codeable(code_system("related-claim-relationship"), "prior")
    if claim.is_resubmission and claim.related_claim_identifier:
        identifier = {
            "system": f"{provider_system}/authorization",
            "value": claim.related_claim_identifier,
        }
    elif claim.is_update and claim.pre_auth_ref:
        identifier = {"system": PRIORAUTH_IDENTIFIER_SYSTEM, "value": claim.pre_auth_ref}
    else:
        return None
    return [{"claim": {"identifier": identifier}, "relationship": relationship}]


# =============================================================================
# Vision Prescription
# =============================================================================


def _lens_specification(
    spec: LensSpecificationInput, eye: Optional[str], product_type: Optional[str]
) -> Dict[str, Any]:
    lens: Dict[str, Any] = {
        # lens-type codes carry no display
        "product": {
            "coding": [
                {"system": code_system("lens-type"), "code": product_type or spec.product_type or "lens"}
            ]
        },
        "eye": eye or spec.eye or "right",
    }
    for attr, key in (
        ("sphere", "sphere"),
        ("cylinder", "cylinder"),
        ("add", "add"),
        ("power", "power"),
        ("back_curve", "backCurve"),
        ("diameter", "diameter"),
    ):
        value = getattr(spec, attr)
        if value is not None:
            lens[key] = fhir_number(value)
    if spec.axis is not None:
        lens["axis"] = int(spec.axis)
    if spec.duration_value is not None:
        unit = spec.duration_unit or "month"
        lens["duration"] = {
            "value": fhir_number(spec.duration_value),
            "unit": unit,
            "system": UCUM_SYSTEM,
            "code": "a" if unit == "year" else "mo",
        }
    if spec.color:
        lens["color"] = spec.color
    if spec.brand:
        lens["brand"] = spec.brand
    if spec.note:
        lens["note"] = [{"text": spec.note}]
    prisms = [
        {"amount": fhir_number(p.amount), "base": p.base}
        for p in spec.prism
        if p.amount is not None and p.base
    ]
    if prisms:
        lens["prism"] = prisms
    return lens


def build_vision_prescription(
    ctx: EncodeContext,
    prescription: Optional[VisionPrescriptionInput],
    provider: ProviderInput,
    practitioner: Optional[PractitionerInput] = None,
) -> Entry:
    """
    VisionPrescription for vision requests.

    Vision bundles carry no Practitioner resource, so the prescriber is a
    logical reference by practitioner license.
    """
    prescription = prescription or VisionPrescriptionInput()
    prescription_id = ctx.ids.allocate("vision_prescription")
    patient_id = ctx.ids.get("patient")
    written = prescription.date_written or ctx.now

    specs: List[Dict[str, Any]] = []
    if prescription.lens_specifications:
        for spec in prescription.lens_specifications:
            specs.append(_lens_specification(spec, spec.eye, spec.product_type))
    else:
        if prescription.right_eye:
            specs.append(_lens_specification(prescription.right_eye, "right", prescription.product_type))
        if prescription.left_eye:
            specs.append(_lens_specification(prescription.left_eye, "left", prescription.product_type))
    if not specs:
        specs.append(_lens_specification(LensSpecificationInput(), "right", "lens"))

    license_number = practitioner.license_number if practitioner else None
    resource = {
        "resourceType": "VisionPrescription",
        "id": prescription_id,
        "meta": {"profile": [profile_url("vision-prescription")]},
        "identifier": [
            {
                "system": f"http://{provider.nphies_id or 'provider'}.com.sa/identifiers/prescription",
                "value": prescription.prescription_number or f"RX-{prescription_id[:8]}",
            }
        ],
        "status": "active",
        "created": to_date_time(written),
        "patient": {"reference": f"Patient/{patient_id}"},
        "dateWritten": to_date_only(written),
        "prescriber": {
            "type": "Practitioner",
            "identifier": {
                "system": PRACTITIONER_LICENSE_SYSTEM,
                "value": license_number or f"PRACT-{prescription_id[:8]}",
            },
        },
        "lensSpecification": specs,
    }
    return {
        "fullUrl": ctx.full_url("VisionPrescription", prescription_id),
        "resource": resource,
    }
