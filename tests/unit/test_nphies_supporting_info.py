"""
Unit Tests for the NPHIES SupportingInfo Pipeline.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Tests:
- Per-category transforms (chief complaint, onset, birth weight,
  investigation result)
- Mandatory synthesis per category and request kind
- Placeholder strictness
- Contiguous sequencing and FHIR emission
"""

from decimal import Decimal

import pytest

from nphies_claims.core.enums import ClaimCategory, RequestUse
from nphies_claims.schemas.nphies import ClaimInput
from nphies_claims.services.nphies.fhir_base import EncodeContext, NphiesValidationError
from nphies_claims.services.nphies.supporting_info import (
    BIRTH_WEIGHT,
    CHIEF_COMPLAINT,
    DAYS_SUPPLY,
    INVESTIGATION_RESULT,
    LENGTH_OF_STAY,
    SupportingInfoRecord,
    build_generic_supporting_info,
    build_supporting_info,
    diagnosis_system,
)


def make_ctx(category, use, settings, clock):
    return EncodeContext.create(category, use, settings=settings, clock=clock)


def categories(records):
    return [r.category for r in records]


# =============================================================================
# Transform Tests
# =============================================================================


class TestCategoryTransforms:
    """Tests for stage 2 transforms."""

    def test_chief_complaint_free_text_moves_to_code_text(self, settings, clock):
        """Test that free-text complaints are not repeated as valueString."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(
            supporting_info=[{"category": "chief-complaint", "value_string": "Headache"}]
        )
        record = build_supporting_info(claim, ctx)[0]
        assert record.code_text == "Headache"
        assert record.value_string is None

        entry = build_generic_supporting_info(record)
        assert entry["code"] == {"text": "Headache"}
        assert "valueString" not in entry

    def test_onset_takes_principal_diagnosis(self, settings, clock):
        """Test that an uncoded onset borrows the principal diagnosis."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(
            chief_complaint="Pain",
            diagnoses=[
                {"diagnosis_code": "R10.4", "diagnosis_type": "secondary"},
                {"diagnosis_code": "K35.80", "diagnosis_type": "principal"},
            ],
            supporting_info=[{"category": "onset", "timing_date": "2025-01-10"}],
        )
        onset = [r for r in build_supporting_info(claim, ctx) if r.category == "onset"][0]
        assert onset.code == "K35.80"
        assert onset.code_system == "http://hl7.org/fhir/sid/icd-10-am"

    def test_onset_dropped_without_diagnosis(self, settings, clock):
        """Test that an uncoded onset with no diagnosis is dropped."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(chief_complaint="Pain", supporting_info=[{"category": "onset"}])
        assert "onset" not in categories(build_supporting_info(claim, ctx))

    def test_birth_weight_grams_to_kilograms(self, settings, clock):
        """Test newborn weight of 3200 g is sent as 3.2 kg."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(chief_complaint="Newborn check", is_newborn=True, birth_weight=3200)
        record = [r for r in build_supporting_info(claim, ctx) if r.category == BIRTH_WEIGHT][0]
        assert record.value_quantity == Decimal("3.2")
        assert record.value_quantity_unit == "kg"

        entry = build_generic_supporting_info(record)
        assert entry["valueQuantity"]["value"] == 3.2
        assert entry["valueQuantity"]["code"] == "kg"
        assert entry["category"]["coding"][0]["code"] == "birth-weight"

    def test_birth_weight_already_in_kilograms(self, settings, clock):
        """Test small values are taken as kilograms."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(
            chief_complaint="Newborn check",
            supporting_info=[
                {"category": "birth-weight", "value_quantity": "3.4", "value_quantity_unit": "kg"}
            ],
        )
        record = [r for r in build_supporting_info(claim, ctx) if r.category == BIRTH_WEIGHT][0]
        assert record.value_quantity == Decimal("3.4")

    def test_invalid_investigation_code_becomes_na(self, settings, clock):
        """Test unknown investigation-result codes fall back to NA."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(
            chief_complaint="Pain",
            supporting_info=[{"category": "investigation-result", "code": "XYZ"}],
        )
        record = [r for r in build_supporting_info(claim, ctx) if r.category == INVESTIGATION_RESULT][0]
        assert record.code == "NA"
        assert record.code_display == "Not applicable"
        assert any("XYZ" in w for w in ctx.warnings)


# =============================================================================
# Synthesis Tests
# =============================================================================


class TestMandatorySynthesis:
    """Tests for stage 3 synthesis."""

    def test_professional_claim_placeholders(self, settings, clock):
        """Test the clinical entries a professional claim requires."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.CLAIM, settings, clock)
        records = build_supporting_info(ClaimInput(), ctx)
        assert categories(records) == [
            CHIEF_COMPLAINT,
            INVESTIGATION_RESULT,
            "patient-history",
            "treatment-plan",
            "physical-examination",
            "history-of-present-illness",
        ]
        assert [r.sequence for r in records] == [1, 2, 3, 4, 5, 6]
        assert len(ctx.warnings) == 6

    def test_professional_preauth_only_chief_complaint(self, settings, clock):
        """Test prior authorizations do not get the claim-only entries."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        records = build_supporting_info(ClaimInput(chief_complaint="Cough"), ctx)
        assert categories(records) == [CHIEF_COMPLAINT]
        assert ctx.warnings == []

    def test_caller_entries_kept_between_synthesized(self, settings, clock):
        """Test caller entries keep their order after a synthesized chief complaint."""
        ctx = make_ctx(ClaimCategory.DENTAL, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(
            supporting_info=[
                {"category": "missingtooth", "code": "21", "timing_date": "2024-06-01"},
                {"category": "lab-test", "code": "LOINC-1", "value_string": "ok"},
            ]
        )
        records = build_supporting_info(claim, ctx)
        assert categories(records) == [CHIEF_COMPLAINT, "missing-tooth", "lab-test"]
        assert [r.sequence for r in records] == [1, 2, 3]
        assert records[0].code_text == "Periodic oral examination"

    def test_institutional_coded_default_and_length_of_stay(self, settings, clock):
        """Test institutional requests get a coded complaint and a length of stay."""
        ctx = make_ctx(ClaimCategory.INSTITUTIONAL, RequestUse.PREAUTHORIZATION, settings, clock)
        records = build_supporting_info(ClaimInput(estimated_length_of_stay=3), ctx)
        assert records[0].code == "418799008"
        stay = [r for r in records if r.category == LENGTH_OF_STAY][0]
        assert stay.value_quantity == Decimal("3")

        entry = build_generic_supporting_info(stay)
        assert entry["category"]["coding"][0]["code"] == "estimated-Length-of-Stay"
        assert entry["valueQuantity"]["code"] == "d"

    def test_pharmacy_days_supply_per_distinct_value(self, settings, clock):
        """Test one days-supply entry per distinct medication supply."""
        ctx = make_ctx(ClaimCategory.PHARMACY, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(
            items=[
                {"medication_code": "A", "days_supply": 30},
                {"medication_code": "B", "days_supply": 10},
                {"medication_code": "C", "days_supply": 30},
                {"device_code": "DEV-1"},
            ]
        )
        supply = [r.value_quantity for r in build_supporting_info(claim, ctx) if r.category == DAYS_SUPPLY]
        assert supply == [Decimal("30"), Decimal("10")]

    def test_claim_attachments_embedded(self, settings, clock):
        """Test claims carry attachments as supportingInfo."""
        ctx = make_ctx(ClaimCategory.VISION, RequestUse.CLAIM, settings, clock)
        claim = ClaimInput(
            chief_complaint="Blurred vision",
            attachments=[{"data": "SGVsbG8=", "title": "report.pdf"}],
        )
        records = build_supporting_info(claim, ctx)
        assert records[-1].category == "attachment"

        entry = build_generic_supporting_info(records[-1], ctx.now)
        assert entry["valueAttachment"] == {
            "contentType": "application/pdf",
            "title": "report.pdf",
            "creation": "2025-01-15",
            "data": "SGVsbG8=",
        }

    def test_preauth_attachments_not_embedded(self, settings, clock):
        """Test prior authorizations keep attachments out of supportingInfo."""
        ctx = make_ctx(ClaimCategory.VISION, RequestUse.PREAUTHORIZATION, settings, clock)
        claim = ClaimInput(chief_complaint="Blurred vision", attachments=[{"data": "SGVsbG8="}])
        assert "attachment" not in categories(build_supporting_info(claim, ctx))

    def test_strict_placeholders_raise(self, strict_settings, clock):
        """Test strict mode rejects synthesized entries."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, strict_settings, clock)
        with pytest.raises(NphiesValidationError) as exc_info:
            build_supporting_info(ClaimInput(), ctx)
        assert "chief-complaint" in str(exc_info.value)

    def test_strict_accepts_caller_values(self, strict_settings, clock):
        """Test strict mode allows entries derived from caller fields."""
        ctx = make_ctx(ClaimCategory.PROFESSIONAL, RequestUse.PREAUTHORIZATION, strict_settings, clock)
        records = build_supporting_info(ClaimInput(chief_complaint_code="21522001"), ctx)
        assert records[0].code == "21522001"


# =============================================================================
# Emission Tests
# =============================================================================


class TestGenericEmission:
    """Tests for Claim.supportingInfo emission."""

    def test_free_text_rejected_outside_chief_complaint(self):
        """Test free-text codes are only allowed for chief-complaint."""
        record = SupportingInfoRecord(category="lab-test", code_text="CBC normal", sequence=1)
        with pytest.raises(NphiesValidationError):
            build_generic_supporting_info(record)

    def test_timing_period_end_defaults_to_start(self):
        """Test a timing period without end repeats the start."""
        record = SupportingInfoRecord(
            category="hospitalized",
            code="32485007",
            timing_period_start="2025-01-01",
            sequence=2,
        )
        entry = build_generic_supporting_info(record)
        assert entry["timingPeriod"] == {
            "start": "2025-01-01T00:00:00.000Z",
            "end": "2025-01-01T00:00:00.000Z",
        }
        assert entry["code"]["coding"][0]["system"] == "http://snomed.info/sct"

    def test_reason_code(self):
        """Test the optional reason coding."""
        record = SupportingInfoRecord(
            category="missing-tooth", code="21", reason_code="extraction", sequence=1
        )
        entry = build_generic_supporting_info(record)
        assert entry["category"]["coding"][0]["code"] == "missingtooth"
        assert entry["reason"]["coding"][0]["code"] == "extraction"

    def test_diagnosis_system_normalized(self):
        """Test plain ICD-10 systems become ICD-10-AM."""
        assert diagnosis_system(None) == "http://hl7.org/fhir/sid/icd-10-am"
        assert diagnosis_system("http://hl7.org/fhir/sid/icd-10") == "http://hl7.org/fhir/sid/icd-10-am"
        assert diagnosis_system("http://example.org/codes") == "http://example.org/codes"
