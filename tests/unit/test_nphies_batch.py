"""
Unit Tests for NPHIES Batch Claims.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Tests:
- Batch size, insurer, provider and category constraints
- One claim bundle per claim with batch extensions stamped in order
- Batch response decoding: nested bundles, direct ClaimResponses, batch errors
- Service-level batch build and parse
"""

from copy import deepcopy

import pytest

from nphies_claims.core.enums import ClaimCategory
from nphies_claims.services.nphies.batch_encoder import (
    MAX_BATCH_SIZE,
    BatchClaimEncoder,
    default_batch_period,
    validate_batch,
)
from nphies_claims.services.nphies.encoder_base import coerce_request
from nphies_claims.services.nphies.fhir_base import NphiesValidationError
from nphies_claims.services.nphies.nphies_service import EncodeStatus, NphiesService
from nphies_claims.services.nphies.professional_encoder import ProfessionalEncoder
from nphies_claims.services.nphies.registry import build_default_registry
from nphies_claims.services.nphies.response_decoder import (
    PARSE_ERROR,
    STRUCTURE_ERROR,
    ResponseDecoder,
)

EXT = "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition/extension-"
EVENTS = "http://nphies.sa/terminology/CodeSystem/ksa-message-events"
BATCH_NAMES = ["batch-identifier", "batch-number", "batch-period"]


# =============================================================================
# Helpers
# =============================================================================


def claim_of(bundle):
    return next(e for e in bundle["entry"] if e["resource"]["resourceType"] == "Claim")


def extension_names(resource):
    return [ext["url"].rsplit("extension-", 1)[1] for ext in resource.get("extension", [])]


def extension(resource, name):
    return next(e for e in resource["extension"] if e["url"].endswith(f"extension-{name}"))


def second_claim(payload, service_date="2025-01-16"):
    other = deepcopy(payload)
    other["claim"]["request_number"] = "REQ-1002"
    other["claim"]["service_date"] = service_date
    return other


def batch_response(*resources, event="batch-response"):
    header = {"resourceType": "MessageHeader", "id": "bhdr-1", "eventCoding": {"system": EVENTS, "code": event}}
    return {
        "resourceType": "Bundle",
        "id": "batch-resp-1",
        "type": "message",
        "timestamp": "2025-01-15T11:00:00+03:00",
        "entry": [{"resource": header}] + [{"resource": r} for r in resources],
    }


def inner_claim_response(bundle):
    return next(e["resource"] for e in bundle["entry"] if e["resource"]["resourceType"] == "ClaimResponse")


@pytest.fixture
def batch_encoder(settings):
    return BatchClaimEncoder(build_default_registry(settings))


# =============================================================================
# Validation Tests
# =============================================================================


class TestValidateBatch:
    """Tests for batch constraint checks."""

    def test_valid_batch(self, professional_payload):
        """Test two claims for the same payer and provider pass."""
        requests = [coerce_request(professional_payload), coerce_request(second_claim(professional_payload))]
        assert validate_batch(requests, [ClaimCategory.PROFESSIONAL] * 2) == []

    def test_single_claim_rejected(self, professional_payload):
        """Test a batch needs at least two claims."""
        requests = [coerce_request(professional_payload)]
        assert validate_batch(requests, [ClaimCategory.PROFESSIONAL]) == [
            "Batch must contain at least 2 claims"
        ]

    def test_oversized_batch_rejected(self, professional_payload):
        """Test more than 200 claims are rejected with the count."""
        requests = [coerce_request(professional_payload)] * (MAX_BATCH_SIZE + 1)
        errors = validate_batch(requests, [ClaimCategory.PROFESSIONAL] * len(requests))
        assert errors == ["Batch cannot exceed 200 claims. Current: 201"]

    def test_mixed_insurer_rejected(self, professional_payload):
        """Test claims for different payers cannot share a batch."""
        other = second_claim(professional_payload)
        other["insurer"]["insurer_id"] = "ins-2"
        requests = [coerce_request(professional_payload), coerce_request(other)]
        errors = validate_batch(requests, [ClaimCategory.PROFESSIONAL] * 2)
        assert errors == ["All claims in a batch must be for the same insurer"]

    def test_insurer_falls_back_to_license(self, professional_payload):
        """Test the payer license identifies the insurer when no id is given."""
        first = deepcopy(professional_payload)
        first["insurer"]["insurer_id"] = None
        other = second_claim(first)
        other["insurer"]["nphies_id"] = "INS-OTHER"
        requests = [coerce_request(first), coerce_request(other)]
        errors = validate_batch(requests, [ClaimCategory.PROFESSIONAL] * 2)
        assert errors == ["All claims in a batch must be for the same insurer"]

    def test_mixed_provider_rejected(self, professional_payload):
        """Test claims from different providers cannot share a batch."""
        other = second_claim(professional_payload)
        other["provider"]["provider_id"] = "prov-2"
        requests = [coerce_request(professional_payload), coerce_request(other)]
        errors = validate_batch(requests, [ClaimCategory.PROFESSIONAL] * 2)
        assert errors == ["All claims in a batch must be from the same provider"]

    def test_mixed_category_rejected(self, professional_payload, dental_payload):
        """Test categories must match across the batch."""
        requests = [coerce_request(professional_payload), coerce_request(dental_payload)]
        errors = validate_batch(requests, [ClaimCategory.PROFESSIONAL, ClaimCategory.DENTAL])
        assert errors == ["All claims in a batch must be of the same type. Found: dental, professional"]

    def test_default_period_spans_service_dates(self, professional_payload, clock):
        """Test the default period runs from the earliest to the latest service date."""
        requests = [
            coerce_request(second_claim(professional_payload, "2025-01-20")),
            coerce_request(professional_payload),
        ]
        assert default_batch_period(requests, clock()) == ["2025-01-14", "2025-01-20"]

    def test_default_period_without_dates(self, professional_payload, clock):
        """Test claims without service dates fall back to today."""
        payload = deepcopy(professional_payload)
        payload["claim"]["service_date"] = None
        requests = [coerce_request(payload)] * 2
        assert default_batch_period(requests, clock()) == ["2025-01-15", "2025-01-15"]


# =============================================================================
# Encoder Tests
# =============================================================================


class TestBatchClaimEncoder:
    """Tests for BatchClaimEncoder.encode."""

    def test_bundle_per_claim(self, batch_encoder, professional_payload, ids, clock):
        """Test each claim gets its own single-focus claim-request bundle."""
        payloads = [professional_payload, second_claim(professional_payload)]
        batch = batch_encoder.encode(payloads, "BATCH-7", id_generator=ids, clock=clock)

        assert batch.category == ClaimCategory.PROFESSIONAL
        assert len(batch.bundles) == 2
        assert batch.bundles[0]["id"] != batch.bundles[1]["id"]
        for bundle in batch.bundles:
            header = bundle["entry"][0]["resource"]
            assert header["resourceType"] == "MessageHeader"
            assert header["eventCoding"]["code"] == "claim-request"
            assert header["focus"] == [{"reference": claim_of(bundle)["fullUrl"]}]
            assert claim_of(bundle)["resource"]["use"] == "claim"

    def test_batch_extensions_stamped(self, batch_encoder, professional_payload, ids, clock):
        """Test identifier, position and period on every claim."""
        payloads = [professional_payload, second_claim(professional_payload)]
        batch = batch_encoder.encode(payloads, "BATCH-7", id_generator=ids, clock=clock)

        claims = [claim_of(b)["resource"] for b in batch.bundles]
        for claim in claims:
            assert extension_names(claim)[-3:] == BATCH_NAMES
            assert extension(claim, "batch-identifier")["valueIdentifier"] == {
                "system": "http://riyadhclinic.com.sa/identifiers/batch",
                "value": "BATCH-7",
            }
            assert extension(claim, "batch-period")["valuePeriod"] == {
                "start": "2025-01-14",
                "end": "2025-01-16",
            }
        assert [extension(c, "batch-number")["valuePositiveInt"] for c in claims] == [1, 2]

    def test_explicit_period_start_only(self, batch_encoder, professional_payload, ids, clock):
        """Test an explicit start without an end closes the period on the start."""
        payloads = [professional_payload, second_claim(professional_payload)]
        batch = batch_encoder.encode(
            payloads, "BATCH-8", batch_period_start="2025-01-01", id_generator=ids, clock=clock
        )
        claim = claim_of(batch.bundles[1])["resource"]
        assert extension(claim, "batch-period")["valuePeriod"] == {
            "start": "2025-01-01",
            "end": "2025-01-01",
        }

    def test_preauthorization_use_overridden(self, batch_encoder, professional_payload, ids, clock):
        """Test batched requests are always encoded as claims."""
        first = deepcopy(professional_payload)
        first["claim"]["use"] = "preauthorization"
        batch = batch_encoder.encode([first, second_claim(first)], "BATCH-9", id_generator=ids, clock=clock)
        assert [claim_of(b)["resource"]["use"] for b in batch.bundles] == ["claim", "claim"]

    def test_pharmacy_batch_not_duplicated(self, batch_encoder, pharmacy_payload, ids, clock):
        """Test pharmacy claims carry the stamped batch once, not their own default."""
        payloads = [pharmacy_payload, second_claim(pharmacy_payload)]
        batch = batch_encoder.encode(payloads, "RX-BATCH", id_generator=ids, clock=clock)

        assert batch.category == ClaimCategory.PHARMACY
        for number, bundle in enumerate(batch.bundles, start=1):
            claim = claim_of(bundle)["resource"]
            names = extension_names(claim)
            assert names.count("batch-number") == 1
            assert names[-1] == "authorization-offline-date"
            assert extension(claim, "batch-identifier")["valueIdentifier"]["value"] == "RX-BATCH"
            assert extension(claim, "batch-number")["valuePositiveInt"] == number

    def test_warnings_prefixed_with_position(self, batch_encoder, professional_payload, ids, clock):
        """Test per-claim warnings name the claim they came from."""
        payloads = [professional_payload, second_claim(professional_payload)]
        batch = batch_encoder.encode(payloads, "BATCH-7", id_generator=ids, clock=clock)
        assert batch.warnings
        assert any(w.startswith("Claim 1: ") for w in batch.warnings)
        assert any(w.startswith("Claim 2: ") for w in batch.warnings)

    def test_mixed_category_raises(self, batch_encoder, professional_payload, dental_payload, ids, clock):
        """Test a constraint violation raises with every failed rule."""
        with pytest.raises(NphiesValidationError) as exc_info:
            batch_encoder.encode([professional_payload, dental_payload], "BATCH-7", id_generator=ids, clock=clock)
        assert exc_info.value.field == "claims"
        assert exc_info.value.message.startswith("Batch validation failed: ")
        assert "same type" in exc_info.value.message

    def test_explicit_category_applies_to_all(self, batch_encoder, professional_payload, ids, clock):
        """Test an explicit category bypasses inference for every claim."""
        payloads = [professional_payload, second_claim(professional_payload)]
        batch = batch_encoder.encode(payloads, "BATCH-7", category="professional", id_generator=ids, clock=clock)
        assert batch.category == ClaimCategory.PROFESSIONAL

    def test_identifier_required(self, batch_encoder, professional_payload):
        """Test an empty batch identifier is rejected."""
        with pytest.raises(NphiesValidationError) as exc_info:
            batch_encoder.encode([professional_payload, professional_payload], "")
        assert exc_info.value.field == "batch_identifier"


class TestSingleClaimBatchFields:
    """Tests for batch fields set directly on a non-pharmacy claim."""

    def test_claim_with_batch_identifier(self, settings, professional_payload, ids, clock):
        """Test a claim that names its batch emits the batch extensions."""
        professional_payload["claim"].update(batch_identifier="B-1", batch_number=3)
        bundle = ProfessionalEncoder(settings).encode(
            professional_payload, use="claim", id_generator=ids, clock=clock
        )
        claim = claim_of(bundle)["resource"]
        assert extension_names(claim)[-3:] == BATCH_NAMES
        assert extension(claim, "batch-number")["valuePositiveInt"] == 3

    def test_preauth_ignores_batch_fields(self, settings, professional_payload, ids, clock):
        """Test prior authorizations never carry batch extensions."""
        professional_payload["claim"]["batch_identifier"] = "B-1"
        bundle = ProfessionalEncoder(settings).encode(
            professional_payload, use="preauthorization", id_generator=ids, clock=clock
        )
        assert "batch-identifier" not in extension_names(claim_of(bundle)["resource"])


# =============================================================================
# Batch Response Tests
# =============================================================================


class TestDecodeBatch:
    """Tests for ResponseDecoder.decode_batch."""

    def test_nested_bundles(self, claim_response_bundle):
        """Test each nested claim bundle yields one result with its batch fields."""
        nested = deepcopy(claim_response_bundle)
        inner_claim_response(nested)["extension"] += [
            {"url": f"{EXT}batch-identifier", "valueIdentifier": {"value": "BATCH-7"}},
            {"url": f"{EXT}batch-number", "valuePositiveInt": 2},
        ]
        result = ResponseDecoder().decode_batch(batch_response(nested, deepcopy(claim_response_bundle)))

        assert result.success
        assert result.batch_id == "batch-resp-1"
        assert result.timestamp == "2025-01-15T11:00:00+03:00"
        assert len(result.claim_results) == 2
        assert result.claim_results[0].batch_identifier == "BATCH-7"
        assert result.claim_results[0].batch_number == 2
        assert result.claim_results[1].batch_number is None
        assert all(r.pre_auth_ref == "PA-123" for r in result.claim_results)

    def test_nested_bundle_without_header(self, claim_response_bundle):
        """Test nested bundles lacking a MessageHeader are still decoded."""
        nested = deepcopy(claim_response_bundle)
        nested["entry"] = nested["entry"][1:]
        result = ResponseDecoder().decode_batch(batch_response(nested))
        assert result.success
        assert result.claim_results[0].outcome == "complete"
        assert result.claim_results[0].is_nphies_generated

    def test_direct_claim_responses_flag_queued_and_pended(self, claim_response_bundle):
        """Test queued and pended claims are flagged without failing the batch."""
        queued = deepcopy(inner_claim_response(claim_response_bundle))
        queued["outcome"] = "queued"
        pended = deepcopy(inner_claim_response(claim_response_bundle))
        pended["extension"][0]["valueCodeableConcept"]["coding"][0]["code"] = "pended"
        result = ResponseDecoder().decode_batch(batch_response(queued, pended))

        assert result.success
        assert result.has_queued_claims
        assert result.has_pended_claims
        assert [r.outcome for r in result.claim_results] == ["queued", "complete"]

    def test_batch_operation_outcome_fails(self):
        """Test a batch-level error fails the batch with the payer's code."""
        outcome = {
            "resourceType": "OperationOutcome",
            "issue": [
                {
                    "severity": "error",
                    "code": "business-rule",
                    "details": {"coding": [{"code": "BV-00163", "display": "Mixed payers"}]},
                }
            ],
        }
        result = ResponseDecoder().decode_batch(batch_response(outcome))
        assert not result.success
        assert [(e.code, e.message) for e in result.errors] == [("BV-00163", "Mixed payers")]
        assert result.claim_results == ()

    def test_claim_errors_fail_batch(self, claim_response_bundle):
        """Test a nested bundle without a ClaimResponse fails the batch."""
        nested = deepcopy(claim_response_bundle)
        nested["entry"] = [e for e in nested["entry"] if e["resource"]["resourceType"] != "ClaimResponse"]
        result = ResponseDecoder().decode_batch(batch_response(nested, deepcopy(claim_response_bundle)))

        assert not result.success
        assert [(e.code, e.message) for e in result.errors] == [
            (PARSE_ERROR, "No ClaimResponse found in bundle")
        ]
        assert result.claim_results[1].success

    def test_empty_batch_response(self):
        """Test a header-only batch response is a parse error."""
        result = ResponseDecoder().decode_batch(batch_response())
        assert not result.success
        assert [(e.code, e.message) for e in result.errors] == [
            (PARSE_ERROR, "No ClaimResponse found in batch response")
        ]

    def test_claim_response_event_accepted(self, claim_response_bundle):
        """Test a batch answered with a claim-response event is accepted."""
        result = ResponseDecoder().decode_batch(
            batch_response(deepcopy(claim_response_bundle), event="claim-response")
        )
        assert result.success

    def test_unexpected_event(self, claim_response_bundle):
        """Test other events fail structural validation."""
        result = ResponseDecoder().decode_batch(
            batch_response(deepcopy(claim_response_bundle), event="priorauth-response")
        )
        assert not result.success
        assert result.errors[0].code == STRUCTURE_ERROR
        assert "priorauth-response" in result.errors[0].message

    def test_not_a_bundle(self):
        """Test non-bundle input is reported, not raised."""
        result = ResponseDecoder().decode_batch(["not", "a", "bundle"])
        assert not result.success
        assert [(e.code, e.message) for e in result.errors] == [
            (STRUCTURE_ERROR, "Response is not a FHIR Bundle")
        ]

    def test_to_dict(self, claim_response_bundle):
        """Test camelCase serialization of the batch result."""
        data = ResponseDecoder().decode_batch(batch_response(deepcopy(claim_response_bundle))).to_dict()
        assert data["batchId"] == "batch-resp-1"
        assert data["hasQueuedClaims"] is False
        assert data["claimResults"][0]["preAuthRef"] == "PA-123"


# =============================================================================
# Service Tests
# =============================================================================


class TestServiceBatch:
    """Tests for NphiesService batch operations."""

    def test_build_batch_claims(self, settings, professional_payload, ids, clock):
        """Test a successful batch build reports every bundle."""
        service = NphiesService(settings=settings)
        result = service.build_batch_claims(
            [professional_payload, second_claim(professional_payload)], "BATCH-7", id_generator=ids, clock=clock
        )
        assert result.success
        assert result.batch_identifier == "BATCH-7"
        assert result.category == ClaimCategory.PROFESSIONAL
        assert len(result.bundles) == 2

    def test_build_batch_failure_reported(self, settings, professional_payload):
        """Test constraint violations are reported as FAILED."""
        result = NphiesService(settings=settings).build_batch_claims([professional_payload], "BATCH-7")
        assert result.status == EncodeStatus.FAILED
        assert result.bundles == []
        assert "at least 2 claims" in result.errors[0]

    def test_build_batch_invalid_payload(self, settings, professional_payload):
        """Test schema errors inside a batch are reported, not raised."""
        result = NphiesService(settings=settings).build_batch_claims(
            [professional_payload, {"claim": {}}], "BATCH-7"
        )
        assert result.status == EncodeStatus.FAILED
        assert result.errors

    def test_parse_batch_response(self, settings, claim_response_bundle):
        """Test the service delegates batch decoding."""
        result = NphiesService(settings=settings).parse_batch_response(
            batch_response(deepcopy(claim_response_bundle))
        )
        assert result.success
        assert len(result.claim_results) == 1
