"""
NPHIES FHIR Base Utilities and Models.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Provides core building blocks shared by every encoder:
- Canonical URLs and code systems
- Exceptions carrying encoding context
- Date/time and money formatting
- Per-call encode context (bundle resource id arena)
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4
import re

from nphies_claims.core.config import NphiesSettings, get_nphies_settings
from nphies_claims.core.enums import ClaimCategory, RequestUse
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]


# =============================================================================
# Canonical URLs
# =============================================================================


STRUCTURE_DEFINITION = "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition"
CODE_SYSTEM = "http://nphies.sa/terminology/CodeSystem"
HL7_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem"

PROVIDER_LICENSE_SYSTEM = "http://nphies.sa/license/provider-license"
PAYER_LICENSE_SYSTEM = "http://nphies.sa/license/payer-license"
PRACTITIONER_LICENSE_SYSTEM = "http://nphies.sa/license/practitioner-license"
UCUM_SYSTEM = "http://unitsofmeasure.org"
SNOMED_SYSTEM = "http://snomed.info/sct"
ICD10_AM_SYSTEM = "http://hl7.org/fhir/sid/icd-10-am"
PRIORAUTH_IDENTIFIER_SYSTEM = "http://nphies.sa/identifiers/priorauth"

# Claim type slug per category, used for claim-type codes and profile URLs
CATEGORY_SLUGS: Dict[ClaimCategory, str] = {
    ClaimCategory.PROFESSIONAL: "professional",
    ClaimCategory.INSTITUTIONAL: "institutional",
    ClaimCategory.DENTAL: "oral",
    ClaimCategory.VISION: "vision",
    ClaimCategory.PHARMACY: "pharmacy",
}


def profile_url(name: str) -> str:
    """Versioned NPHIES profile URL."""
    return f"{STRUCTURE_DEFINITION}/{name}|1.0.0"


def extension_url(name: str) -> str:
    return f"{STRUCTURE_DEFINITION}/extension-{name}"


def code_system(name: str) -> str:
    return f"{CODE_SYSTEM}/{name}"


def claim_profile_url(category: ClaimCategory, use: RequestUse) -> str:
    """Claim profile for a category and request kind."""
    suffix = "priorauth" if use == RequestUse.PREAUTHORIZATION else "claim"
    return profile_url(f"{CATEGORY_SLUGS[category]}-{suffix}")


# =============================================================================
# Exceptions
# =============================================================================


class NphiesValidationError(Exception):
    """Caller/input error detected while encoding."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        category: Optional[str] = None,
        item_sequence: Optional[int] = None,
    ):
        self.message = message
        self.field = field
        self.category = category
        self.item_sequence = item_sequence
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        if self.field:
            parts.append(f"Field: {self.field}")
        if self.category:
            parts.append(f"Category: {self.category}")
        if self.item_sequence is not None:
            parts.append(f"Item: {self.item_sequence}")
        return " | ".join(parts)


class NphiesDecodeError(NphiesValidationError):
    """Malformed or unexpected response bundle."""

    pass


class UnknownCategoryError(NphiesValidationError):
    """Registry asked for a category it does not hold."""

    pass


# =============================================================================
# Date Formatting
# =============================================================================


DateInput = Union[datetime, date, str, None]

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_datetime(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise NphiesValidationError(f"Invalid date/time: {value}") from e


def to_date_only(value: DateInput) -> Optional[str]:
    """
    Format as YYYY-MM-DD without timezone shifting.

    Strings already in date form, or carrying a 'T' separator, are sliced
    rather than re-parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        if "T" in value:
            return value.split("T")[0]
        if _DATE_ONLY.match(value):
            return value
        return _parse_datetime(value).date().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()


def to_date_time(value: DateInput) -> Optional[str]:
    """Format as ISO-8601 UTC with millisecond precision ('Z' suffix)."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        if _DATE_ONLY.match(value):
            return f"{value}T00:00:00.000Z"
        value = _parse_datetime(value)
    elif not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def to_date_time_with_offset(value: DateInput, offset: str = "+03:00") -> Optional[str]:
    """
    Format as YYYY-MM-DDTHH:MM:SS plus a fixed offset.

    The wall-clock fields of the input are kept; no conversion happens.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        if _DATE_ONLY.match(value):
            return f"{value}T00:00:00{offset}"
        if "T" in value:
            # Keep the wall-clock part as written
            date_part, time_part = value.split("T", 1)
            time_part = re.split(r"[Z+\-]", time_part)[0].split(".")[0]
            if len(time_part) == 5:
                time_part += ":00"
            return f"{date_part}T{time_part}{offset}"
        value = _parse_datetime(value)
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + offset


def first_of_month(value: DateInput) -> Optional[str]:
    """Accounting period date; day is always '01'."""
    day = to_date_only(value)
    if day is None:
        return None
    return f"{day[:7]}-01"


def clamp_date(value: str, start: Optional[str], end: Optional[str]) -> str:
    """Clamp a YYYY-MM-DD date into [start, end] (either bound optional)."""
    if start and value < start:
        return start
    if end and value > end:
        return end
    return value


# =============================================================================
# Money / Numbers
# =============================================================================


TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any, default: Union[str, Decimal] = "0") -> Decimal:
    """Convert caller numeric input to Decimal."""
    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise NphiesValidationError(f"Invalid numeric value: {value!r}") from e


def fhir_number(value: Decimal) -> Union[int, float]:
    """JSON number for a Decimal: int when integral, float otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def money(value: Decimal, currency: str) -> Dict[str, Any]:
    return {"value": fhir_number(round_money(value)), "currency": currency}


def coding(system: str, code: str, display: Optional[str] = None) -> Dict[str, Any]:
    """Single coding, display omitted when empty."""
    result: Dict[str, Any] = {"system": system, "code": code}
    if display:
        result["display"] = display
    return result


def codeable(system: str, code: str, display: Optional[str] = None) -> Dict[str, Any]:
    return {"coding": [coding(system, code, display)]}


# =============================================================================
# Encode Context
# =============================================================================


def default_id_generator() -> str:
    return str(uuid4())


def default_clock() -> datetime:
    return datetime.now()


BUNDLE_ROLES = (
    "claim",
    "patient",
    "provider",
    "insurer",
    "coverage",
    "encounter",
    "practitioner",
    "policy_holder",
    "mother_patient",
    "vision_prescription",
    "task",
)


@dataclass
class BundleResourceIds:
    """
    Correlation ids for one bundle.

    Ids are allocated lazily on first access of a role; a caller-supplied
    entity id wins over a generated one.
    """

    id_generator: IdGenerator
    _ids: Dict[str, str] = field(default_factory=dict)

    def allocate(self, role: str, preferred: Optional[str] = None) -> str:
        if role not in BUNDLE_ROLES:
            raise KeyError(f"Unknown bundle role: {role}")
        if role not in self._ids:
            self._ids[role] = str(preferred) if preferred else self.id_generator()
        return self._ids[role]

    def get(self, role: str) -> str:
        """Id for an already allocated role."""
        if role not in self._ids:
            raise KeyError(f"Bundle role not allocated: {role}")
        return self._ids[role]

    def has(self, role: str) -> bool:
        return role in self._ids

    def as_dict(self) -> Dict[str, str]:
        return dict(self._ids)


@dataclass
class EncodeContext:
    """
    State owned by a single encode call.

    Holds the id arena, the clock, settings and collected warnings. Created
    per call and never stored on an encoder.
    """

    category: ClaimCategory
    use: RequestUse
    settings: NphiesSettings
    id_generator: IdGenerator = default_id_generator
    clock: Clock = default_clock
    ids: BundleResourceIds = None
    warnings: List[str] = None
    _now: Optional[datetime] = None

    def __post_init__(self):
        if self.ids is None:
            self.ids = BundleResourceIds(self.id_generator)
        if self.warnings is None:
            self.warnings = []

    @classmethod
    def create(
        cls,
        category: ClaimCategory,
        use: RequestUse,
        settings: Optional[NphiesSettings] = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> "EncodeContext":
        return cls(
            category=category,
            use=use,
            settings=settings or get_nphies_settings(),
            id_generator=id_generator or default_id_generator,
            clock=clock or default_clock,
        )

    @property
    def is_claim(self) -> bool:
        return self.use == RequestUse.CLAIM

    @property
    def now(self) -> datetime:
        """Clock reading, taken once per call."""
        if self._now is None:
            self._now = self.clock()
        return self._now

    @property
    def base_url(self) -> str:
        return self.settings.PROVIDER_BASE_URL

    def full_url(self, resource_type: str, resource_id: str) -> str:
        return f"{self.base_url}/{resource_type}/{resource_id}"

    def new_id(self) -> str:
        return self.id_generator()

    def local_datetime(self, value: DateInput = None) -> str:
        """Date-time with the configured offset, 'now' when value is empty."""
        return to_date_time_with_offset(
            value if value else self.now, self.settings.TIMEZONE_OFFSET
        )

    def warn(self, message: str) -> None:
        """Record a default substitution."""
        self.warnings.append(message)
        logger.warning(f"[{self.category.value}/{self.use.value}] {message}")
