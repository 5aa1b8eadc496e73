"""
NPHIES Adjudication Response Decoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Parses priorauth-response / claim-response message bundles:
- structural validation of the response bundle
- OperationOutcome issues (BV-/IC-/RE-/GE- codes) preserved verbatim
- ClaimResponse outcome, adjudication outcome, pre-auth reference/period
- per-item adjudication with eligible/benefit/copay/approved-quantity
- totals, transfer authorization and ClaimResponse.error entries
- Patient / Coverage / Provider / Insurer snapshots for display
- batch-response bundles: one result per nested claim bundle or ClaimResponse

decode() is total: malformed input yields an error result, never an
exception.
"""

from dataclasses import dataclass, fields, is_dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from nphies_claims.core.enums import AdjudicationOutcome, MessageEvent, ResponseOutcome
from nphies_claims.services.nphies.fhir_base import (
    CODE_SYSTEM,
    PAYER_LICENSE_SYSTEM,
    PROVIDER_LICENSE_SYSTEM,
    NphiesDecodeError,
    NphiesValidationError,
    to_decimal,
)
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

STRUCTURE_ERROR = "STRUCTURE_ERROR"
PARSE_ERROR = "PARSE_ERROR"
META_TAG_SYSTEM = f"{CODE_SYSTEM}/meta-tag"
DEFAULT_EXPECTED_EVENTS = (
    MessageEvent.PRIORAUTH_RESPONSE.value,
    MessageEvent.CLAIM_RESPONSE.value,
)
BATCH_EXPECTED_EVENTS = (
    MessageEvent.BATCH_RESPONSE.value,
    MessageEvent.CLAIM_RESPONSE.value,
)


# =============================================================================
# Result Models
# =============================================================================


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return {_camel(f.name): _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dict with camelCase keys."""
        return _jsonable(self)


@dataclass(frozen=True)
class ResponseIssue(_Serializable):
    """An exchange error, from OperationOutcome or ClaimResponse.error."""

    code: Optional[str]
    message: Optional[str] = None
    severity: Optional[str] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class ValidationReport(_Serializable):
    """Structural check of a response bundle."""

    valid: bool
    errors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PeriodInfo(_Serializable):
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass(frozen=True)
class AdjudicationEntry(_Serializable):
    """One category -> amount/value pair of an item adjudication."""

    category: Optional[str]
    category_display: Optional[str] = None
    amount: Optional[Decimal] = None
    value: Optional[Decimal] = None
    currency: Optional[str] = None
    reason: Optional[str] = None
    reason_display: Optional[str] = None


@dataclass(frozen=True)
class ItemResult(_Serializable):
    """Adjudication of one submitted item."""

    item_sequence: Optional[int]
    outcome: Optional[str] = None
    adjudication: Tuple[AdjudicationEntry, ...] = ()
    eligible_amount: Optional[Decimal] = None
    benefit_amount: Optional[Decimal] = None
    copay_amount: Optional[Decimal] = None
    approved_quantity: Optional[Decimal] = None


@dataclass(frozen=True)
class TotalEntry(_Serializable):
    category: Optional[str]
    category_display: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class TransferInfo(_Serializable):
    """Transfer authorization granted with the response."""

    auth_number: str
    provider: Optional[str] = None
    period: Optional[PeriodInfo] = None


@dataclass(frozen=True)
class PatientSnapshot(_Serializable):
    id: Optional[str]
    name: Optional[str] = None
    identifier: Optional[str] = None
    identifier_type: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[str] = None


@dataclass(frozen=True)
class CoverageSnapshot(_Serializable):
    id: Optional[str]
    member_id: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    type_code: Optional[str] = None
    relationship: Optional[str] = None
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    plan_name: Optional[str] = None
    plan_value: Optional[str] = None


@dataclass(frozen=True)
class OrganizationSnapshot(_Serializable):
    id: Optional[str]
    name: Optional[str] = None
    nphies_id: Optional[str] = None


@dataclass(frozen=True)
class AdjudicationResult(_Serializable):
    """Decoded adjudication response."""

    success: bool
    outcome: str
    adjudication_outcome: Optional[str] = None
    disposition: Optional[str] = None
    pre_auth_ref: Optional[str] = None
    pre_auth_period: Optional[PeriodInfo] = None
    response_id: Optional[str] = None
    response_code: Optional[str] = None
    is_nphies_generated: bool = False
    message_header_id: Optional[str] = None

    # ClaimResponse metadata
    status: Optional[str] = None
    use: Optional[str] = None
    created: Optional[str] = None
    type: Optional[str] = None
    sub_type: Optional[str] = None
    insurance_sequence: Optional[int] = None
    insurance_focal: Optional[bool] = None
    original_request_identifier: Optional[str] = None
    batch_identifier: Optional[str] = None
    batch_number: Optional[int] = None

    # Results
    item_results: Tuple[ItemResult, ...] = ()
    totals: Tuple[TotalEntry, ...] = ()
    transfer: Optional[TransferInfo] = None
    errors: Tuple[ResponseIssue, ...] = ()

    # Snapshots
    patient: Optional[PatientSnapshot] = None
    coverage: Optional[CoverageSnapshot] = None
    provider: Optional[OrganizationSnapshot] = None
    insurer: Optional[OrganizationSnapshot] = None


@dataclass(frozen=True)
class BatchAdjudicationResult(_Serializable):
    """Decoded batch response: one result per claim in the batch."""

    success: bool
    batch_id: Optional[str] = None
    timestamp: Optional[str] = None
    claim_results: Tuple[AdjudicationResult, ...] = ()
    errors: Tuple[ResponseIssue, ...] = ()
    has_queued_claims: bool = False
    has_pended_claims: bool = False


# =============================================================================
# Small accessors
# =============================================================================


def _first(values: Any) -> Dict[str, Any]:
    if isinstance(values, list) and values and isinstance(values[0], dict):
        return values[0]
    return {}


def _first_coding(concept: Any) -> Dict[str, Any]:
    if not isinstance(concept, dict):
        return {}
    return _first(concept.get("coding"))


def _resources(bundle: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return [
        entry["resource"]
        for entry in bundle.get("entry") or []
        if isinstance(entry, dict) and isinstance(entry.get("resource"), dict)
    ]


def _find(resources: Iterable[Dict[str, Any]], resource_type: str) -> Optional[Dict[str, Any]]:
    return next((r for r in resources if r.get("resourceType") == resource_type), None)


def _find_extension(resource: Mapping[str, Any], name: str) -> Optional[Dict[str, Any]]:
    for ext in resource.get("extension") or []:
        if isinstance(ext, dict) and name in (ext.get("url") or ""):
            return ext
    return None


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return to_decimal(value)
    except NphiesValidationError as e:
        raise NphiesDecodeError(f"Invalid amount in response: {value!r}") from e


def _period(value: Any) -> Optional[PeriodInfo]:
    if not isinstance(value, dict):
        return None
    return PeriodInfo(start=value.get("start"), end=value.get("end"))


def _error_expression(coding: Mapping[str, Any]) -> Optional[str]:
    ext = _find_extension(coding, "error-expression")
    return ext.get("valueString") if ext else None


def _organization_with(
    resources: Sequence[Dict[str, Any]], license_system: str
) -> Optional[Dict[str, Any]]:
    for resource in resources:
        if resource.get("resourceType") != "Organization":
            continue
        for identifier in resource.get("identifier") or []:
            if license_system in (identifier.get("system") or ""):
                return resource
    return None


# =============================================================================
# Structural validation
# =============================================================================


def validate_response_bundle(
    bundle: Any,
    expected_events: Sequence[str] = DEFAULT_EXPECTED_EVENTS,
    require_payload: bool = True,
) -> ValidationReport:
    """
    Check that a response is a well-formed message bundle.

    require_payload also demands a ClaimResponse or OperationOutcome entry.
    """
    if not bundle:
        return ValidationReport(False, ("Response is empty",))
    if not isinstance(bundle, Mapping) or bundle.get("resourceType") != "Bundle":
        return ValidationReport(False, ("Response is not a FHIR Bundle",))

    errors: List[str] = []
    if bundle.get("type") != "message":
        errors.append('Bundle type is not "message"')
    entries = bundle.get("entry")
    if not isinstance(entries, list) or not entries:
        errors.append("Bundle has no entries")
        return ValidationReport(False, tuple(errors))

    first = entries[0].get("resource") if isinstance(entries[0], dict) else None
    if not isinstance(first, dict) or first.get("resourceType") != "MessageHeader":
        errors.append("First entry must be MessageHeader")
        event = None
    else:
        event = (first.get("eventCoding") or {}).get("code")
    if event not in expected_events:
        errors.append(f"Expected one of {', '.join(expected_events)} events, got: {event}")

    resources = _resources(bundle)
    payload_types = ("ClaimResponse", "OperationOutcome")
    if require_payload and not any(r.get("resourceType") in payload_types for r in resources):
        errors.append("Bundle must contain ClaimResponse or OperationOutcome")

    return ValidationReport(not errors, tuple(errors))


# =============================================================================
# Decoder
# =============================================================================


class ResponseDecoder:
    """
    Adjudication response decoder.

    Usage:
        decoder = ResponseDecoder()
        result = decoder.decode(response_bundle)
        if result.success:
            print(result.pre_auth_ref, result.item_results)
    """

    def __init__(self, expected_events: Optional[Sequence[str]] = None):
        self.expected_events = tuple(expected_events or DEFAULT_EXPECTED_EVENTS)

    def decode(self, payload: Any) -> AdjudicationResult:
        """Decode a response bundle (or bare ClaimResponse); never raises."""
        try:
            return self._decode(payload)
        except NphiesDecodeError as e:
            logger.warning(f"Undecodable adjudication response: {e}")
            return self._parse_error(str(e))
        except Exception as e:
            logger.exception(f"Failed to decode adjudication response: {e}")
            return self._parse_error(str(e))

    @staticmethod
    def _parse_error(message: str) -> AdjudicationResult:
        return AdjudicationResult(
            success=False,
            outcome=ResponseOutcome.ERROR.value,
            errors=(ResponseIssue(code=PARSE_ERROR, message=message),),
        )

    def _decode(self, payload: Any) -> AdjudicationResult:
        bundle = self.wrap_claim_response(payload)
        resources = _resources(bundle) if isinstance(bundle, Mapping) else []
        snapshots = self._snapshots(resources)
        is_generated = self._is_nphies_generated(bundle)

        report = validate_response_bundle(bundle, self.expected_events, require_payload=False)
        if not report.valid:
            logger.warning(f"Response bundle failed structural validation: {report.errors}")
            return AdjudicationResult(
                success=False,
                outcome=ResponseOutcome.ERROR.value,
                is_nphies_generated=is_generated,
                errors=tuple(ResponseIssue(code=STRUCTURE_ERROR, message=e) for e in report.errors),
                **snapshots,
            )

        header = _find(resources, "MessageHeader") or {}
        outcome_resource = _find(resources, "OperationOutcome")
        if outcome_resource is not None:
            issues = self._operation_outcome_issues(outcome_resource)
            if any(i.severity in ("error", "fatal") for i in issues):
                return AdjudicationResult(
                    success=False,
                    outcome=ResponseOutcome.ERROR.value,
                    is_nphies_generated=is_generated,
                    response_code=(header.get("response") or {}).get("code"),
                    message_header_id=header.get("id"),
                    errors=issues,
                    **snapshots,
                )

        claim_response = _find(resources, "ClaimResponse")
        if claim_response is None:
            raise NphiesDecodeError("No ClaimResponse found in bundle")

        return self._claim_response_result(claim_response, header, is_generated, snapshots)

    # -------------------------------------------------------------------------
    # Batch responses
    # -------------------------------------------------------------------------

    def decode_batch(self, payload: Any) -> BatchAdjudicationResult:
        """
        Decode a batch response bundle; never raises.

        Each nested Bundle entry and each direct ClaimResponse entry yields one
        claim result. The batch succeeds when neither the batch nor any claim
        carries an error; queued and pended claims are flagged, not failed.
        """
        try:
            return self._decode_batch(payload)
        except Exception as e:
            logger.exception(f"Failed to decode batch response: {e}")
            return BatchAdjudicationResult(
                success=False, errors=(ResponseIssue(code=PARSE_ERROR, message=str(e)),)
            )

    def _decode_batch(self, payload: Any) -> BatchAdjudicationResult:
        report = validate_response_bundle(payload, BATCH_EXPECTED_EVENTS, require_payload=False)
        if not report.valid:
            logger.warning(f"Batch response failed structural validation: {report.errors}")
            return BatchAdjudicationResult(
                success=False,
                batch_id=payload.get("id") if isinstance(payload, Mapping) else None,
                errors=tuple(ResponseIssue(code=STRUCTURE_ERROR, message=e) for e in report.errors),
            )

        errors: List[ResponseIssue] = []
        results: List[AdjudicationResult] = []
        for resource in _resources(payload):
            resource_type = resource.get("resourceType")
            if resource_type == "OperationOutcome":
                issues = self._operation_outcome_issues(resource)
                errors.extend(i for i in issues if i.severity in ("error", "fatal"))
            elif resource_type == "Bundle":
                results.append(self.decode(self._with_header(resource)))
            elif resource_type == "ClaimResponse":
                results.append(self.decode(resource))

        if not results and not errors:
            errors.append(ResponseIssue(code=PARSE_ERROR, message="No ClaimResponse found in batch response"))
        for result in results:
            errors.extend(result.errors)

        batch = BatchAdjudicationResult(
            success=not errors,
            batch_id=payload.get("id"),
            timestamp=payload.get("timestamp"),
            claim_results=tuple(results),
            errors=tuple(errors),
            has_queued_claims=any(r.outcome == ResponseOutcome.QUEUED.value for r in results),
            has_pended_claims=any(
                r.adjudication_outcome == AdjudicationOutcome.PENDED.value for r in results
            ),
        )
        logger.info(
            f"Decoded batch response {batch.batch_id}: {len(results)} claims, "
            f"{len(errors)} errors"
        )
        return batch

    def _with_header(self, bundle: Mapping[str, Any]) -> Mapping[str, Any]:
        """Nested claim bundles may omit their MessageHeader; add a claim-response one."""
        resources = _resources(bundle)
        if resources and resources[0].get("resourceType") == "MessageHeader":
            return bundle
        wrapped = self._message_bundle(MessageEvent.CLAIM_RESPONSE, resources)
        if bundle.get("meta"):
            wrapped["meta"] = bundle["meta"]
        return wrapped

    # -------------------------------------------------------------------------
    # Bundle helpers
    # -------------------------------------------------------------------------

    def wrap_claim_response(self, payload: Any) -> Any:
        """Wrap a bare ClaimResponse into a synthetic message bundle."""
        if not isinstance(payload, Mapping) or payload.get("resourceType") != "ClaimResponse":
            return payload
        event = (
            MessageEvent.CLAIM_RESPONSE
            if payload.get("use") == "claim"
            else MessageEvent.PRIORAUTH_RESPONSE
        )
        return self._message_bundle(event, [dict(payload)])

    @staticmethod
    def _message_bundle(event: MessageEvent, resources: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        header = {
            "resourceType": "MessageHeader",
            "eventCoding": {"system": f"{CODE_SYSTEM}/ksa-message-events", "code": event.value},
        }
        return {
            "resourceType": "Bundle",
            "type": "message",
            "entry": [{"resource": header}] + [{"resource": r} for r in resources],
        }

    @staticmethod
    def _is_nphies_generated(bundle: Any) -> bool:
        if not isinstance(bundle, Mapping):
            return False
        tags = (bundle.get("meta") or {}).get("tag") or []
        return any(
            t.get("system") == META_TAG_SYSTEM and t.get("code") == "nphies-generated"
            for t in tags
            if isinstance(t, dict)
        )

    @staticmethod
    def _operation_outcome_issues(resource: Mapping[str, Any]) -> Tuple[ResponseIssue, ...]:
        issues = []
        for issue in resource.get("issue") or []:
            details = issue.get("details") or {}
            coding = _first_coding(details)
            location = _error_expression(coding) if coding else None
            if location is None and issue.get("location"):
                location = ", ".join(issue["location"])
            issues.append(
                ResponseIssue(
                    code=coding.get("code") or issue.get("code"),
                    message=coding.get("display") or details.get("text") or issue.get("diagnostics"),
                    severity=issue.get("severity"),
                    location=location,
                )
            )
        return tuple(issues)

    # -------------------------------------------------------------------------
    # ClaimResponse
    # -------------------------------------------------------------------------

    @staticmethod
    def _adjudication_outcome(resource: Mapping[str, Any]) -> Optional[str]:
        ext = _find_extension(resource, "extension-adjudication-outcome")
        if ext is None:
            return None
        return _first_coding(ext.get("valueCodeableConcept")).get("code")

    def _item_result(self, item: Mapping[str, Any]) -> ItemResult:
        entries = []
        for adj in item.get("adjudication") or []:
            category = _first_coding(adj.get("category"))
            reason = _first_coding(adj.get("reason"))
            amount = adj.get("amount") or {}
            entries.append(
                AdjudicationEntry(
                    category=category.get("code"),
                    category_display=category.get("display"),
                    amount=_optional_decimal(amount.get("value")),
                    value=_optional_decimal(adj.get("value")),
                    currency=amount.get("currency"),
                    reason=reason.get("code"),
                    reason_display=reason.get("display"),
                )
            )
        by_category = {e.category: e for e in reversed(entries)}

        def amount_of(category: str) -> Optional[Decimal]:
            entry = by_category.get(category)
            return entry.amount if entry else None

        approved = by_category.get("approved-quantity")
        return ItemResult(
            item_sequence=item.get("itemSequence"),
            outcome=self._adjudication_outcome(item),
            adjudication=tuple(entries),
            eligible_amount=amount_of("eligible"),
            benefit_amount=amount_of("benefit"),
            copay_amount=amount_of("copay"),
            approved_quantity=approved.value if approved else None,
        )

    @staticmethod
    def _totals(resource: Mapping[str, Any]) -> Tuple[TotalEntry, ...]:
        totals = []
        for total in resource.get("total") or []:
            category = _first_coding(total.get("category"))
            amount = total.get("amount") or {}
            totals.append(
                TotalEntry(
                    category=category.get("code"),
                    category_display=category.get("display"),
                    amount=_optional_decimal(amount.get("value")),
                    currency=amount.get("currency"),
                )
            )
        return tuple(totals)

    @staticmethod
    def _transfer(resource: Mapping[str, Any]) -> Optional[TransferInfo]:
        number = _find_extension(resource, "extension-transferAuthorizationNumber")
        if not number or not number.get("valueString"):
            return None
        provider = _find_extension(resource, "extension-transferAuthorizationProvider")
        period = _find_extension(resource, "extension-transferAuthorizationPeriod")
        provider_value = None
        if provider:
            provider_value = ((provider.get("valueReference") or {}).get("identifier") or {}).get("value")
        return TransferInfo(
            auth_number=number["valueString"],
            provider=provider_value,
            period=_period(period.get("valuePeriod")) if period else None,
        )

    @staticmethod
    def _claim_response_errors(resource: Mapping[str, Any]) -> Tuple[ResponseIssue, ...]:
        errors = []
        for error in resource.get("error") or []:
            coding = _first_coding(error.get("code"))
            errors.append(
                ResponseIssue(
                    code=coding.get("code"),
                    message=coding.get("display"),
                    location=_error_expression(coding) if coding else None,
                )
            )
        return tuple(errors)

    def _claim_response_result(
        self,
        resource: Mapping[str, Any],
        header: Mapping[str, Any],
        is_generated: bool,
        snapshots: Dict[str, Any],
    ) -> AdjudicationResult:
        outcome = resource.get("outcome") or ResponseOutcome.COMPLETE.value
        adjudication_outcome = self._adjudication_outcome(resource)
        errors = self._claim_response_errors(resource)
        success = (
            outcome in (ResponseOutcome.COMPLETE.value, ResponseOutcome.PARTIAL.value)
            and adjudication_outcome != AdjudicationOutcome.REJECTED.value
            and not errors
        )
        insurance = _first(resource.get("insurance"))
        identifier = _first(resource.get("identifier"))
        batch_identifier = _find_extension(resource, "extension-batch-identifier")
        batch_number = _find_extension(resource, "extension-batch-number")
        result = AdjudicationResult(
            success=success,
            outcome=outcome,
            adjudication_outcome=adjudication_outcome,
            disposition=resource.get("disposition"),
            pre_auth_ref=resource.get("preAuthRef"),
            pre_auth_period=_period(resource.get("preAuthPeriod")),
            response_id=identifier.get("value") or resource.get("id"),
            response_code=(header.get("response") or {}).get("code"),
            is_nphies_generated=is_generated,
            message_header_id=header.get("id"),
            status=resource.get("status"),
            use=resource.get("use"),
            created=resource.get("created"),
            type=_first_coding(resource.get("type")).get("code"),
            sub_type=_first_coding(resource.get("subType")).get("code"),
            insurance_sequence=insurance.get("sequence"),
            insurance_focal=insurance.get("focal"),
            original_request_identifier=((resource.get("request") or {}).get("identifier") or {}).get("value"),
            batch_identifier=((batch_identifier or {}).get("valueIdentifier") or {}).get("value"),
            batch_number=(batch_number or {}).get("valuePositiveInt"),
            item_results=tuple(self._item_result(i) for i in resource.get("item") or []),
            totals=self._totals(resource),
            transfer=self._transfer(resource),
            errors=errors,
            **snapshots,
        )
        logger.info(
            f"Decoded ClaimResponse outcome={outcome} adjudication={adjudication_outcome} "
            f"success={success}"
        )
        return result

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    @staticmethod
    def _patient(resource: Optional[Mapping[str, Any]]) -> Optional[PatientSnapshot]:
        if resource is None:
            return None
        name = _first(resource.get("name"))
        text = name.get("text") or " ".join(
            part for part in [" ".join(name.get("given") or []), name.get("family")] if part
        )
        identifier = _first(resource.get("identifier"))
        return PatientSnapshot(
            id=resource.get("id"),
            name=text or None,
            identifier=identifier.get("value"),
            identifier_type=_first_coding(identifier.get("type")).get("code"),
            gender=resource.get("gender"),
            birth_date=resource.get("birthDate"),
        )

    @staticmethod
    def _coverage(resource: Optional[Mapping[str, Any]]) -> Optional[CoverageSnapshot]:
        if resource is None:
            return None
        type_coding = _first_coding(resource.get("type"))
        period = resource.get("period") or {}
        plan = next(
            (
                c
                for c in resource.get("class") or []
                if _first_coding(c.get("type")).get("code") == "plan"
            ),
            {},
        )
        return CoverageSnapshot(
            id=resource.get("id"),
            member_id=_first(resource.get("identifier")).get("value"),
            status=resource.get("status"),
            type=type_coding.get("display"),
            type_code=type_coding.get("code"),
            relationship=_first_coding(resource.get("relationship")).get("code"),
            period_start=period.get("start"),
            period_end=period.get("end"),
            plan_name=plan.get("name"),
            plan_value=plan.get("value"),
        )

    @staticmethod
    def _organization(
        resource: Optional[Mapping[str, Any]], license_system: str
    ) -> Optional[OrganizationSnapshot]:
        if resource is None:
            return None
        nphies_id = next(
            (
                i.get("value")
                for i in resource.get("identifier") or []
                if license_system in (i.get("system") or "")
            ),
            None,
        )
        return OrganizationSnapshot(id=resource.get("id"), name=resource.get("name"), nphies_id=nphies_id)

    def _snapshots(self, resources: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        if not resources:
            return {}
        return {
            "patient": self._patient(_find(resources, "Patient")),
            "coverage": self._coverage(_find(resources, "Coverage")),
            "provider": self._organization(
                _organization_with(resources, PROVIDER_LICENSE_SYSTEM), PROVIDER_LICENSE_SYSTEM
            ),
            "insurer": self._organization(
                _organization_with(resources, PAYER_LICENSE_SYSTEM), PAYER_LICENSE_SYSTEM
            ),
        }
