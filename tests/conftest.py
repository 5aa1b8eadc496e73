"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from datetime import datetime
from itertools import count

import pytest

from nphies_claims.core.config import NphiesSettings


FIXED_NOW = datetime(2025, 1, 15, 10, 30)


# =============================================================================
# Determinism
# =============================================================================


def _counter_ids(prefix: str = "id"):
    sequence = count(1)
    return lambda: f"{prefix}-{next(sequence):04d}"


@pytest.fixture
def make_ids():
    """Factory for fresh, reproducible id generators."""
    return _counter_ids


@pytest.fixture
def ids():
    """Counter-based id generator: id-0001, id-0002, ..."""
    return _counter_ids()


@pytest.fixture
def clock():
    """Clock frozen at 2025-01-15 10:30."""
    return lambda: FIXED_NOW


@pytest.fixture
def settings():
    """Settings with defaults only (no .env lookup)."""
    return NphiesSettings(_env_file=None)


@pytest.fixture
def strict_settings():
    """Settings that reject synthesized placeholder supporting info."""
    return NphiesSettings(_env_file=None, STRICT_PLACEHOLDERS=True)


# =============================================================================
# Sample Payloads
# =============================================================================


def _parties():
    return {
        "patient": {
            "patient_id": "pat-1",
            "name": "Ahmed Ali Alharbi",
            "identifier": "1012345678",
            "identifier_type": "national_id",
            "gender": "male",
            "birth_date": "1985-03-02",
        },
        "provider": {
            "provider_id": "prov-1",
            "provider_name": "Riyadh Clinic",
            "nphies_id": "PR-FHIR",
            "provider_type": "clinic",
        },
        "insurer": {
            "insurer_id": "ins-1",
            "insurer_name": "Test Payer",
            "nphies_id": "INS-FHIR",
        },
        "coverage": {
            "coverage_id": "cov-1",
            "member_id": "MEM-555",
            "plan_id": "GOLD",
            "plan_name": "Gold Plan",
            "start_date": "2024-01-01",
            "end_date": "2025-12-31",
        },
        "practitioner": {
            "practitioner_id": "pract-1",
            "name": "Sara Khan",
            "license_number": "LIC-7788",
            "practice_code": "08.00",
        },
    }


@pytest.fixture
def professional_payload():
    """Ambulatory professional request with one consultation item."""
    payload = _parties()
    payload["claim"] = {
        "request_number": "REQ-1001",
        "encounter_class": "ambulatory",
        "service_date": "2025-01-14",
        "request_date": "2025-01-14T09:00:00",
        "chief_complaint": "Sore throat",
        "diagnoses": [
            {
                "diagnosis_code": "J06.9",
                "diagnosis_display": "Acute upper respiratory infection",
            }
        ],
        "items": [
            {
                "product_or_service_code": "83620-00-00",
                "product_or_service_display": "Consultation",
                "quantity": 1,
                "unit_price": "150.00",
            }
        ],
    }
    return payload


@pytest.fixture
def institutional_payload():
    """Inpatient admission with a two-day stay."""
    payload = _parties()
    payload["claim"] = {
        "request_number": "REQ-2001",
        "encounter_class": "inpatient",
        "encounter_start": "2025-01-10T08:00:00",
        "encounter_end": "2025-01-12T14:00:00",
        "estimated_length_of_stay": 2,
        "diagnoses": [
            {"diagnosis_code": "K35.80", "diagnosis_display": "Acute appendicitis"}
        ],
        "items": [
            {
                "product_or_service_code": "30571-00-00",
                "product_or_service_display": "Appendicectomy",
                "unit_price": "4000",
                "serviced_date": "2025-01-20",
            }
        ],
    }
    return payload


@pytest.fixture
def dental_payload():
    """Dental request with a surface-coded filling."""
    payload = _parties()
    payload["practitioner"]["practice_code"] = None
    payload["claim"] = {
        "request_number": "REQ-3001",
        "auth_type": "dental",
        "service_date": "2025-01-14",
        "diagnoses": [{"diagnosis_code": "K02.1", "diagnosis_display": "Caries of dentine"}],
        "items": [
            {
                "product_or_service_code": "97511-00-00",
                "product_or_service_display": "Restoration",
                "unit_price": "250",
                "tooth_number": "11",
                "tooth_surface": "m, o",
            }
        ],
    }
    return payload


@pytest.fixture
def vision_payload():
    """Vision request carrying a spectacle prescription."""
    payload = _parties()
    payload["claim"] = {
        "request_number": "REQ-4001",
        "service_date": "2025-01-14",
        "diagnoses": [{"diagnosis_code": "H52.1", "diagnosis_display": "Myopia"}],
        "items": [
            {
                "product_or_service_code": "V2100",
                "product_or_service_display": "Spectacle lenses",
                "unit_price": "300",
            }
        ],
    }
    payload["vision_prescription"] = {
        "prescription_number": "RX-77",
        "date_written": "2025-01-13",
        "product_type": "lens",
        "right_eye": {"sphere": "-2.25", "cylinder": "-0.50", "axis": 180},
        "left_eye": {"sphere": "-2.00"},
    }
    return payload


@pytest.fixture
def pharmacy_payload():
    """Pharmacy request for one medication line (net 105)."""
    payload = _parties()
    payload["claim"] = {
        "request_number": "REQ-5001",
        "service_date": "2025-01-14",
        "days_supply": 30,
        "diagnoses": [{"diagnosis_code": "E11.9", "diagnosis_display": "Type 2 diabetes"}],
        "items": [
            {
                "medication_code": "7000000924-500-100000073665",
                "medication_display": "Metformin 500mg",
                "quantity": 1,
                "unit_price": "100",
                "tax": "5",
                "days_supply": 30,
            }
        ],
    }
    return payload


@pytest.fixture
def claim_response_bundle():
    """Approved claim-response message bundle with one adjudicated item."""
    return {
        "resourceType": "Bundle",
        "id": "resp-1",
        "meta": {
            "tag": [
                {
                    "system": "http://nphies.sa/terminology/CodeSystem/meta-tag",
                    "code": "nphies-generated",
                }
            ]
        },
        "type": "message",
        "entry": [
            {
                "fullUrl": "urn:uuid:hdr-1",
                "resource": {
                    "resourceType": "MessageHeader",
                    "id": "hdr-1",
                    "eventCoding": {
                        "system": "http://nphies.sa/terminology/CodeSystem/ksa-message-events",
                        "code": "claim-response",
                    },
                    "response": {"identifier": "req-msg-1", "code": "ok"},
                },
            },
            {
                "fullUrl": "http://payer.com/ClaimResponse/cr-1",
                "resource": {
                    "resourceType": "ClaimResponse",
                    "id": "cr-1",
                    "extension": [
                        {
                            "url": "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition/extension-adjudication-outcome",
                            "valueCodeableConcept": {
                                "coding": [
                                    {
                                        "system": "http://nphies.sa/terminology/CodeSystem/adjudication-outcome",
                                        "code": "approved",
                                    }
                                ]
                            },
                        }
                    ],
                    "identifier": [{"system": "http://payer.com/claimresponse", "value": "CR-9001"}],
                    "status": "active",
                    "type": {"coding": [{"code": "pharmacy"}]},
                    "subType": {"coding": [{"code": "op"}]},
                    "use": "claim",
                    "created": "2025-01-15T10:31:00+03:00",
                    "request": {"identifier": {"value": "REQ-5001"}},
                    "outcome": "complete",
                    "disposition": "Approved",
                    "preAuthRef": "PA-123",
                    "preAuthPeriod": {"start": "2025-01-15", "end": "2025-02-14"},
                    "insurance": [{"sequence": 1, "focal": True}],
                    "item": [
                        {
                            "itemSequence": 1,
                            "adjudication": [
                                {
                                    "category": {"coding": [{"code": "eligible"}]},
                                    "amount": {"value": 105, "currency": "SAR"},
                                },
                                {
                                    "category": {"coding": [{"code": "benefit"}]},
                                    "amount": {"value": 94.5, "currency": "SAR"},
                                },
                                {
                                    "category": {"coding": [{"code": "copay"}]},
                                    "amount": {"value": 10.5, "currency": "SAR"},
                                },
                                {
                                    "category": {"coding": [{"code": "approved-quantity"}]},
                                    "value": 1,
                                },
                            ],
                        }
                    ],
                    "total": [
                        {
                            "category": {"coding": [{"code": "eligible", "display": "Eligible"}]},
                            "amount": {"value": 105, "currency": "SAR"},
                        }
                    ],
                },
            },
            {
                "fullUrl": "http://provider.com/Patient/pat-1",
                "resource": {
                    "resourceType": "Patient",
                    "id": "pat-1",
                    "identifier": [
                        {"type": {"coding": [{"code": "NI"}]}, "value": "1012345678"}
                    ],
                    "name": [{"text": "Ahmed Ali Alharbi"}],
                    "gender": "male",
                    "birthDate": "1985-03-02",
                },
            },
            {
                "fullUrl": "http://provider.com/Organization/prov-1",
                "resource": {
                    "resourceType": "Organization",
                    "id": "prov-1",
                    "name": "Riyadh Clinic",
                    "identifier": [
                        {"system": "http://nphies.sa/license/provider-license", "value": "PR-FHIR"}
                    ],
                },
            },
            {
                "fullUrl": "http://provider.com/Organization/ins-1",
                "resource": {
                    "resourceType": "Organization",
                    "id": "ins-1",
                    "name": "Test Payer",
                    "identifier": [
                        {"system": "http://nphies.sa/license/payer-license", "value": "INS-FHIR"}
                    ],
                },
            },
        ],
    }


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
