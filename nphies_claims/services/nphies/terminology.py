"""
NPHIES Terminology Lookups.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Pure mappings from internal codes to NPHIES / HL7 codes and display text.
Unknown codes fall back to the code itself unless noted otherwise.
"""

from typing import Dict, Optional

from nphies_claims.core.enums import ClaimCategory, ClaimSubType
from nphies_claims.services.nphies.fhir_base import (
    CATEGORY_SLUGS,
    CODE_SYSTEM,
    SNOMED_SYSTEM,
)


# =============================================================================
# Encounter
# =============================================================================


ENCOUNTER_CLASS_CODES: Dict[str, str] = {
    "ambulatory": "AMB",
    "outpatient": "AMB",
    "emergency": "EMER",
    "home": "HH",
    "inpatient": "IMP",
    "daycase": "SS",
    "telemedicine": "VR",
    "virtual": "VR",
}

ENCOUNTER_CLASS_DISPLAYS: Dict[str, str] = {
    "AMB": "ambulatory",
    "EMER": "emergency",
    "HH": "home health",
    "IMP": "inpatient encounter",
    "SS": "short stay",
    "VR": "virtual",
}

SUBTYPE_BY_CLASS: Dict[str, ClaimSubType] = {
    "inpatient": ClaimSubType.INPATIENT,
    "daycase": ClaimSubType.INPATIENT,
    "emergency": ClaimSubType.EMERGENCY,
}

SERVICE_TYPE_DISPLAYS = {
    "acute-care": "Acute Care",
    "sub-acute-care": "Sub-Acute Care",
    "rehabilitation": "Rehabilitation",
    "mental-behavioral": "Mental & Behavioral",
    "geriatric-care": "Geriatric Care",
    "newborn": "Newborn",
    "family-planning": "Family Planning",
    "dental-care": "Dental Care",
    "palliative-care": "Palliative Care",
    "others": "Others",
    "unknown": "Unknown",
}

ADMIT_SOURCE_DISPLAYS = {
    "IA": "Immediate Admission",
    "EPH": "Emergency Admission by referral from private hospital",
    "EER": "Admission from hospital ER",
    "EWIS": "Elective waiting list admission insurance coverage Scheme",
    "EPPHC": "Emergency Admission by referral from private primary healthcare center",
    "EOP": "Emergency Admission from hospital outpatient",
    "PMBA": "Planned Maternity Birth Admission",
    "EGGH": "Emergency Admission by referral from general government hospital",
    "PVAMB": "Private ambulance",
    "WKIN": "Walk-in",
    "EMBA": "Emergency Maternity Birth Admission",
    "EWSS": "Elective waiting list admission self-payment Scheme",
    "Others": "Others",
    "EWGS": "Elective waiting list admission government free Scheme",
    "EIC": "Emergency Admission by insurance company",
    "EGPHC": "Emergency Admission by referral from government primary healthcare center",
    "FMLYM": "Family member",
    "AA": "Already admitted",
    "RECR": "Red crescent",
    "AAIC": "Already admitted- insurance consumed",
}

TRIAGE_CATEGORY_DISPLAYS = {
    "I": "Immediate",
    "VU": "Very Urgent",
    "U": "Urgent",
    "S": "Standard",
    "NS": "Non-Standard",
}

SERVICE_EVENT_TYPE_DISPLAYS = {
    "ICSE": "Initial client service event",
    "SCSE": "Subsequent client service event",
}

ENCOUNTER_PRIORITY_DISPLAYS = {
    "A": "ASAP",
    "EL": "elective",
    "EM": "emergency",
    "P": "preop",
    "R": "routine",
    "S": "stat",
    "UR": "urgent",
}

EMERGENCY_ARRIVAL_DISPLAYS = {
    "WKIN": "Walk-in",
    "AMBL": "Ambulance",
    "POL": "Police",
    "TRNS": "Transfer from another facility",
    "OTHR": "Other",
}

DISCHARGE_DISPOSITION_DISPLAYS = {
    "home": "Home",
    "other-hcf": "Other healthcare facility",
    "hosp": "Hospitalization",
    "long": "Long-term care",
    "aadvice": "Left against advice",
    "exp": "Expired",
    "psy": "Psychiatric hospital",
    "rehab": "Rehabilitation",
    "snf": "Skilled nursing facility",
    "oth": "Other",
}

INTENDED_LENGTH_OF_STAY_DISPLAYS = {
    "ISD": "Intended same day",
    "IO": "Intended overnight",
}


def encounter_class_code(encounter_class: Optional[str]) -> str:
    return ENCOUNTER_CLASS_CODES.get((encounter_class or "").lower(), "AMB")


def encounter_class_display(encounter_class: Optional[str]) -> str:
    return ENCOUNTER_CLASS_DISPLAYS[encounter_class_code(encounter_class)]


def claim_subtype_for_class(encounter_class: Optional[str]) -> ClaimSubType:
    """Subtype implied by an encounter class; outpatient otherwise."""
    return SUBTYPE_BY_CLASS.get((encounter_class or "").lower(), ClaimSubType.OUTPATIENT)


def claim_type_code(category: ClaimCategory) -> str:
    """claim-type code; dental is sent as 'oral'."""
    return CATEGORY_SLUGS[category]


def display_for(table: Dict[str, str], code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    return table.get(code, code)


# =============================================================================
# Parties
# =============================================================================


COVERAGE_TYPE_DISPLAYS = {
    "EHCPOL": "Extended healthcare",
    "PUBLICPOL": "Public healthcare",
    "DENTAL": "Dental",
    "VISION": "Vision",
    "MENTPRG": "Mental health program",
}

RELATIONSHIP_DISPLAYS = {
    "self": "Self",
    "spouse": "Spouse",
    "child": "Child",
    "parent": "Parent",
    "common": "Common Law Spouse",
    "other": "Other",
    "injured": "Injured Party",
}

MARITAL_STATUS_CODES = {
    "married": "M",
    "single": "S",
    "divorced": "D",
    "widowed": "W",
    "unknown": "U",
    "m": "M",
    "s": "S",
    "d": "D",
    "w": "W",
    "u": "U",
}

PATIENT_IDENTIFIER_TYPES = {
    # type: (v2-0203 code, display, system)
    "national_id": ("NI", "National Identifier", "http://nphies.sa/identifier/nationalid"),
    "iqama": ("PRC", "Permanent Resident Card", "http://nphies.sa/identifier/iqama"),
    "passport": ("PPN", "Passport Number", "http://nphies.sa/identifier/passportnumber"),
    "mrn": ("MR", "Medical Record Number", None),  # system under the provider authority
}

PROVIDER_TYPE_CODES = {
    "hospital": "1",
    "polyclinic": "2",
    "pharmacy": "3",
    "optical": "4",
    "optical_shop": "4",
    "clinic": "5",
    "dental": "5",
    "dental_clinic": "5",
    "vision": "5",
    "vision_clinic": "5",
    "1": "1",
    "2": "2",
    "3": "3",
    "4": "4",
    "5": "5",
}

PROVIDER_TYPE_DISPLAYS = {
    "1": "Hospital",
    "2": "Polyclinic",
    "3": "Pharmacy",
    "4": "Optical Shop",
    "5": "Clinic",
}

PRACTITIONER_ID_TYPE_DISPLAYS = {
    "MD": "Medical License number",
    "NPI": "National provider identifier",
    "PRN": "Provider number",
    "TAX": "Tax ID number",
    "DN": "Doctor number",
    "NIIP": "National Insurance Payor Identifier (Payor)",
}

# Specialty headings plus the sub-specialties the encoders default to
PRACTICE_CODE_DISPLAYS = {
    "01.00": "Anesthesiology Specialty",
    "02.00": "Community Medicine Specialty",
    "03.00": "Dermatology Specialty",
    "04.00": "Emergency Medicine Specialty",
    "04.01": "Adult Emergency Medicine",
    "05.00": "Ear, Nose & Throat Specialty",
    "06.00": "Family Medicine Specialty",
    "06.01": "Family Medicine",
    "07.00": "Forensic Medicine Specialty",
    "08.00": "Internal Medicine Specialty",
    "08.02": "Cardiology",
    "08.04": "Endocrinology",
    "08.05": "Gastrology/Gastroenterology",
    "08.11": "Oncology",
    "08.18": "Neurology",
    "08.26": "General Medicine",
    "09.00": "Microbiology Specialty",
    "10.00": "Obstetrics & Gynecology Specialty",
    "10.06": "Obstetrics",
    "11.00": "Ophthalmology Specialty",
    "11.11": "Optometric",
    "12.00": "Orthopedic Specialty",
    "13.00": "Pathology Specialty",
    "14.00": "Pediatric Specialty",
    "14.18": "Neonatology",
    "15.00": "Pediatrics Surgery Specialty",
    "16.00": "Physical Medicine & Rehabilitation Specialty",
    "17.00": "Psychiatry Specialty",
    "18.00": "Radiology Specialty",
    "19.00": "Surgery Specialty",
    "19.08": "General Surgery",
    "20.00": "Urology Specialty",
    "21.00": "Critical Care",
    "21.02": "Intensive Care (ICU)",
    "22.00": "Dental",
    "22.01": "Pediatric Dental",
    "22.03": "Endodontics",
    "22.05": "Orthodontics",
    "23.00": "Neurophysiology",
    "24.00": "Speech/Speech Language Pathology",
    "25.00": "Infection Control",
}


def practice_code_display(code: Optional[str]) -> str:
    return PRACTICE_CODE_DISPLAYS.get(code or "", "Healthcare Professional")


def practitioner_id_type_display(code: Optional[str]) -> str:
    return PRACTITIONER_ID_TYPE_DISPLAYS.get(code or "", "License Number")


def marital_status_code(status: Optional[str]) -> str:
    if not status:
        return "U"
    return MARITAL_STATUS_CODES.get(status.lower(), "U")


def provider_type_code(provider_type: Optional[str]) -> str:
    return PROVIDER_TYPE_CODES.get((provider_type or "").lower(), "1")


# =============================================================================
# Supporting Info
# =============================================================================


SUPPORTING_INFO_CATEGORY_CODES = {
    "estimated-length-of-stay": "estimated-Length-of-Stay",
    "missing-tooth": "missingtooth",
    "missingtooth": "missingtooth",
    "employment-impacted": "employmentImpacted",
    "employmentimpacted": "employmentImpacted",
}

SUPPORTING_INFO_CODE_SYSTEMS = {
    "chief-complaint": SNOMED_SYSTEM,
    "onset": SNOMED_SYSTEM,
    "hospitalized": SNOMED_SYSTEM,
    "investigation-result": f"{CODE_SYSTEM}/investigation-result",
}

INVESTIGATION_RESULT_DISPLAYS = {
    "INP": "Investigation(s) not performed",
    "IRA": "Investigation results attached",
    "other": "Other",
    "NA": "Not applicable",
    "IRP": "Investigation results pending",
}

UCUM_CODES = {
    "mmhg": "mm[Hg]",
    "mm[hg]": "mm[Hg]",
    "bpm": "/min",
    "/min": "/min",
    "celsius": "Cel",
    "cel": "Cel",
    "days": "d",
    "day": "d",
    "d": "d",
    "hours": "h",
    "hour": "h",
    "h": "h",
    "ml": "mL",
    "l": "L",
}


def supporting_info_category_key(category: Optional[str]) -> str:
    """Internal lower-case key for a category (used for dispatch)."""
    key = (category or "").strip().lower()
    if key in ("missingtooth",):
        return "missing-tooth"
    if key in ("employmentimpacted",):
        return "employment-impacted"
    return key


def supporting_info_category_code(category: Optional[str]) -> str:
    """NPHIES claim-information-category code."""
    key = supporting_info_category_key(category)
    return SUPPORTING_INFO_CATEGORY_CODES.get(key, key)


def supporting_info_code_system(category: Optional[str]) -> str:
    key = supporting_info_category_key(category)
    return SUPPORTING_INFO_CODE_SYSTEMS.get(key, f"{CODE_SYSTEM}/supporting-info-code")


def ucum_code(unit: Optional[str]) -> str:
    if not unit:
        return ""
    return UCUM_CODES.get(unit.lower(), unit)


# =============================================================================
# Sites
# =============================================================================


BODY_SITE_DISPLAYS = {
    "RIV": "Right eye",
    "LIV": "Left eye",
    "E3": "Upper right, eyelid",
    "E4": "Lower right, eyelid",
    "FA": "Left hand, thumb",
    "F1": "Left hand, second digit",
    "F2": "Left hand, third digit",
    "F3": "Left hand, fourth digit",
    "F4": "Left hand, fifth digit",
    "F5": "Right hand, thumb",
    "F6": "Right hand, second digit",
    "F7": "Right hand, third digit",
    "F8": "Right hand, fourth digit",
    "F9": "Right hand, fifth digit",
    "TA": "Left foot, great toe",
    "T1": "Left foot, second digit",
    "T2": "Left foot, third digit",
    "T3": "Left foot, fourth digit",
    "T4": "Left foot, fifth digit",
    "T5": "Right foot, great toe",
    "T6": "Right foot, second digit",
    "T7": "Right foot, third digit",
    "T8": "Right foot, fourth digit",
    "T9": "Right foot, fifth digit",
    "LC": "Left circumflex coronary artery",
    "LD": "Left anterior descending coronary artery",
    "LM": "Left main coronary artery",
    "RC": "Right coronary artery",
    "RI": "Ramus intermedius coronary artery",
    "LT": "Left side",
    "RT": "Right side",
}

TOOTH_SURFACE_DISPLAYS = {
    "M": "Mesial",
    "O": "Occlusal",
    "I": "Incisal",
    "D": "Distal",
    "B": "Buccal",
    "V": "Ventral",
    "L": "Lingual",
    "F": "Facial",
    "MO": "Mesioclusal",
    "DO": "Distoclusal",
    "DI": "Distoincisal",
    "MOD": "Mesioclusodistal",
}

_PERMANENT_QUADRANTS = {"1": "UPPER RIGHT", "2": "UPPER LEFT", "3": "LOWER LEFT", "4": "LOWER RIGHT"}
_DECIDUOUS_QUADRANTS = {"5": "UPPER RIGHT", "6": "UPPER LEFT", "7": "LOWER LEFT", "8": "LOWER RIGHT"}


def fdi_tooth_display(tooth_number: Optional[str]) -> str:
    """FDI two-digit notation, e.g. '11' -> 'UPPER RIGHT; PERMANENT TEETH # 1'."""
    if not tooth_number or len(tooth_number) != 2:
        return f"Tooth {tooth_number}"
    quadrant, tooth = tooth_number[0], tooth_number[1]
    if quadrant in _PERMANENT_QUADRANTS:
        return f"{_PERMANENT_QUADRANTS[quadrant]}; PERMANENT TEETH # {tooth}"
    if quadrant in _DECIDUOUS_QUADRANTS:
        return f"{_DECIDUOUS_QUADRANTS[quadrant]}; DECIDUOUS TEETH # {tooth}"
    return f"Tooth {tooth_number}"


def tooth_surface_display(surface: Optional[str]) -> Optional[str]:
    if not surface:
        return None
    return TOOTH_SURFACE_DISPLAYS.get(surface.upper(), surface)


# =============================================================================
# Pharmacy
# =============================================================================


PHARMACIST_SELECTION_REASON_DISPLAYS = {
    "patient-request": "patient request",
    "out-of-stock": "out of stock",
    "formulary-drug": "formulary drug",
    "therapeutic-alternative": "therapeutic alternative",
    "other": "other",
}

PHARMACIST_SUBSTITUTE_DISPLAYS = {
    "form-not-available": "Dosage form not available",
    "Others": "Others : specify",
    "Irreplaceable": "SFDA Irreplaceable drugs",
    "strength-not-available": "Strength not available at pharmacy store",
}


# =============================================================================
# Cancellation
# =============================================================================


CANCEL_REASON_DISPLAYS = {
    "WI": "wrong information",
    "NP": "service not performed",
    "TAS": "transaction already submitted",
    "SU": "Product/Service is unavailable",
    "resubmission": "Claim Re-submission.",
}
