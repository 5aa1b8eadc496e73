"""
Pydantic Schemas for NPHIES Encoding.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Provides the category-agnostic input model consumed by the encoders:
- Party entities (patient, provider, insurer, coverage, practitioner)
- Claim / prior-authorization metadata with diagnoses, supporting info,
  items and attachments
- Cancellation requests
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Dates arrive as ISO strings from the API layer or as temporal objects from
# the persistence layer; strings are kept verbatim so they can be sliced.
DateLike = Union[datetime, date, str]


class _InputModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# Party Schemas
# =============================================================================


class PatientInput(_InputModel):
    """Patient (or mother patient for newborn requests)."""

    patient_id: Optional[str] = None
    name: Optional[str] = None
    family_name: Optional[str] = None
    given_name: Optional[str] = None
    identifier: Optional[str] = None
    identifier_type: str = Field(
        default="national_id",
        description="national_id, iqama, passport or mrn",
    )
    gender: Optional[str] = None
    birth_date: Optional[DateLike] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    marital_status: Optional[str] = None
    occupation: Optional[str] = None


class ProviderInput(_InputModel):
    """Requesting provider organization."""

    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    nphies_id: Optional[str] = None
    provider_type: Optional[str] = None
    identifier_system: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None


class InsurerInput(_InputModel):
    """Destination payer organization."""

    insurer_id: Optional[str] = None
    insurer_name: Optional[str] = None
    nphies_id: Optional[str] = None
    address: Optional[str] = None


class CoverageInput(_InputModel):
    """Member coverage."""

    coverage_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("coverage_id", "id")
    )
    member_id: Optional[str] = None
    coverage_type: str = "EHCPOL"
    relationship: str = "self"
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    network: Optional[str] = None
    start_date: Optional[DateLike] = None
    end_date: Optional[DateLike] = None


class PractitionerInput(_InputModel):
    """Treating practitioner."""

    practitioner_id: Optional[str] = None
    name: Optional[str] = None
    family_name: Optional[str] = None
    given_name: Optional[str] = None
    license_number: Optional[str] = None
    practice_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("practice_code", "specialty_code"),
    )
    id_type: str = "MD"


class PolicyHolderInput(_InputModel):
    """Coverage policy holder (defaults to the patient)."""

    id: Optional[str] = None
    name: Optional[str] = None


# =============================================================================
# Clinical Schemas
# =============================================================================


class DiagnosisInput(_InputModel):
    """A coded diagnosis."""

    diagnosis_code: str
    diagnosis_display: Optional[str] = None
    diagnosis_system: Optional[str] = None
    diagnosis_type: str = "principal"
    on_admission: Optional[bool] = None
    condition_onset: Optional[str] = None


class AttachmentInput(_InputModel):
    """Base64 attachment."""

    binary_id: Optional[str] = None
    content_type: str = "application/pdf"
    title: Optional[str] = None
    base64_content: str = Field(
        ..., validation_alias=AliasChoices("base64_content", "data")
    )
    creation_date: Optional[DateLike] = None


class SupportingInfoInput(_InputModel):
    """A category-tagged supporting fact."""

    category: str
    code: Optional[str] = None
    code_display: Optional[str] = None
    code_system: Optional[str] = None
    code_text: Optional[str] = None
    value_string: Optional[str] = None
    value_quantity: Optional[Decimal] = None
    value_quantity_unit: Optional[str] = None
    value_boolean: Optional[bool] = None
    value_date: Optional[DateLike] = None
    value_period_start: Optional[DateLike] = None
    value_period_end: Optional[DateLike] = None
    value_reference: Optional[str] = None
    timing_date: Optional[DateLike] = None
    timing_period_start: Optional[DateLike] = None
    timing_period_end: Optional[DateLike] = None
    reason_code: Optional[str] = None
    attachment: Optional[AttachmentInput] = None


class ItemDetailInput(_InputModel):
    """Sub-item of a package item."""

    product_or_service_code: str
    product_or_service_display: Optional[str] = None
    product_or_service_system: Optional[str] = None
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    factor: Decimal = Decimal("1")
    tax: Decimal = Decimal("0")


class ItemInput(_InputModel):
    """A billable line."""

    sequence: Optional[int] = None
    product_or_service_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("product_or_service_code", "service_code"),
    )
    product_or_service_display: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("product_or_service_display", "service_display"),
    )
    product_or_service_system: Optional[str] = None
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    factor: Decimal = Decimal("1")
    tax: Decimal = Decimal("0")
    patient_share: Decimal = Decimal("0")
    currency: Optional[str] = None
    is_package: bool = False
    is_maternity: bool = False
    patient_invoice: Optional[str] = None
    serviced_date: Optional[DateLike] = None
    diagnosis_sequences: Optional[List[int]] = None
    information_sequences: Optional[List[int]] = None

    # Oral / professional sites
    tooth_number: Optional[str] = None
    tooth_surface: Optional[str] = None
    body_site: Optional[str] = None
    sub_site: Optional[str] = None

    # Pharmacy
    medication_code: Optional[str] = None
    medication_display: Optional[str] = None
    device_code: Optional[str] = None
    device_display: Optional[str] = None
    prescribed_medication_code: Optional[str] = None
    pharmacist_selection_reason: Optional[str] = None
    pharmacist_substitute: Optional[str] = None
    days_supply: Optional[int] = None
    shadow_code: Optional[str] = None
    shadow_system: Optional[str] = None
    shadow_display: Optional[str] = None

    details: List[ItemDetailInput] = Field(default_factory=list)


class PrismInput(_InputModel):
    amount: Optional[Decimal] = None
    base: Optional[str] = None


class LensSpecificationInput(_InputModel):
    """One eye of a vision prescription."""

    eye: Optional[str] = None
    product_type: Optional[str] = None
    sphere: Optional[Decimal] = None
    cylinder: Optional[Decimal] = None
    axis: Optional[int] = None
    add: Optional[Decimal] = None
    power: Optional[Decimal] = None
    back_curve: Optional[Decimal] = None
    diameter: Optional[Decimal] = None
    duration_value: Optional[Decimal] = None
    duration_unit: Optional[str] = None
    color: Optional[str] = None
    brand: Optional[str] = None
    note: Optional[str] = None
    prism: List[PrismInput] = Field(default_factory=list)


class VisionPrescriptionInput(_InputModel):
    """Vision prescription carried by vision requests."""

    prescription_number: Optional[str] = None
    date_written: Optional[DateLike] = None
    product_type: Optional[str] = None
    right_eye: Optional[LensSpecificationInput] = None
    left_eye: Optional[LensSpecificationInput] = None
    lens_specifications: List[LensSpecificationInput] = Field(default_factory=list)


# =============================================================================
# Request Schemas
# =============================================================================


class ClaimInput(_InputModel):
    """Claim / prior-authorization metadata."""

    request_number: Optional[str] = None
    claim_number: Optional[str] = None
    auth_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("auth_type", "claim_type", "authorization_type"),
    )
    use: Optional[str] = None
    priority: str = "normal"
    currency: Optional[str] = None
    sub_type: Optional[str] = None

    request_date: Optional[DateLike] = None
    service_date: Optional[DateLike] = None
    encounter_start: Optional[DateLike] = None
    encounter_end: Optional[DateLike] = None

    encounter_class: Optional[str] = None
    encounter_identifier: Optional[str] = None
    service_type: Optional[str] = None
    service_event_type: Optional[str] = None
    triage_category: Optional[str] = None
    triage_date: Optional[DateLike] = None
    emergency_arrival_code: Optional[str] = None
    emergency_service_start: Optional[DateLike] = None
    admit_source: Optional[str] = None
    admission_specialty: Optional[str] = None
    discharge_specialty: Optional[str] = None
    discharge_disposition: Optional[str] = None
    intended_length_of_stay_code: Optional[str] = None
    practice_code: Optional[str] = None

    is_newborn: bool = False
    birth_weight: Optional[Decimal] = None
    is_update: bool = False
    pre_auth_ref: Optional[str] = None
    pre_auth_ref_system: Optional[str] = None
    is_resubmission: bool = False
    related_claim_identifier: Optional[str] = None
    is_transfer: bool = False

    eligibility_response_id: Optional[str] = None
    eligibility_response_system: Optional[str] = None
    eligibility_ref: Optional[str] = None
    eligibility_offline_ref: Optional[str] = None
    eligibility_offline_date: Optional[DateLike] = None

    episode_identifier: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("episode_identifier", "episode_id"),
    )
    accounting_period_start: Optional[DateLike] = None
    authorization_offline_date: Optional[DateLike] = None
    batch_identifier: Optional[str] = None
    batch_number: Optional[int] = None
    batch_period_start: Optional[DateLike] = None
    batch_period_end: Optional[DateLike] = None

    chief_complaint: Optional[str] = None
    chief_complaint_code: Optional[str] = None
    days_supply: Optional[int] = None
    investigation_result_code: Optional[str] = None
    estimated_length_of_stay: Optional[Decimal] = None
    patient_history: Optional[str] = None
    treatment_plan: Optional[str] = None
    physical_examination: Optional[str] = None
    history_of_present_illness: Optional[str] = None

    total_amount: Optional[Decimal] = None

    diagnoses: List[DiagnosisInput] = Field(default_factory=list)
    supporting_info: List[SupportingInfoInput] = Field(default_factory=list)
    items: List[ItemInput] = Field(default_factory=list)
    attachments: List[AttachmentInput] = Field(default_factory=list)
    vision_prescription: Optional[VisionPrescriptionInput] = None


class EncodeRequest(_InputModel):
    """Everything an encoder needs for one bundle."""

    claim: ClaimInput = Field(
        ...,
        validation_alias=AliasChoices("claim", "prior_auth", "priorAuth"),
    )
    patient: PatientInput
    provider: ProviderInput = Field(default_factory=ProviderInput)
    insurer: InsurerInput = Field(default_factory=InsurerInput)
    coverage: Optional[CoverageInput] = None
    practitioner: Optional[PractitionerInput] = None
    policy_holder: Optional[PolicyHolderInput] = Field(
        default=None,
        validation_alias=AliasChoices("policy_holder", "policyHolder"),
    )
    mother_patient: Optional[PatientInput] = Field(
        default=None,
        validation_alias=AliasChoices("mother_patient", "motherPatient"),
    )

    # Root-level hints read by category inference
    auth_type: Optional[str] = None
    encounter_class: Optional[str] = None
    days_supply: Optional[int] = None
    vision_prescription: Optional[VisionPrescriptionInput] = Field(
        default=None,
        validation_alias=AliasChoices("vision_prescription", "visionPrescription"),
    )


class CancelRequestInput(_InputModel):
    """Cancellation of a previously submitted request."""

    request_number: str
    reason: Optional[str] = None
    identifier_system: Optional[str] = None
    authored_on: Optional[DateLike] = None
    is_claim: bool = False
    provider: ProviderInput = Field(default_factory=ProviderInput)
    insurer: InsurerInput = Field(default_factory=InsurerInput)
