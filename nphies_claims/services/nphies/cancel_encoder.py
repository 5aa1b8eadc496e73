"""
NPHIES Cancel Request Encoder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Builds the cancel-request message bundle: MessageHeader, Task (intent
order, code cancel), Provider and Insurer organizations. The Task points at
the original request by identifier and carries a task-reason-code.
"""

from typing import Any, Dict, Mapping, Optional, Tuple, Union

from nphies_claims.core.config import NphiesSettings
from nphies_claims.core.enums import CancelReason, ClaimCategory, MessageEvent, RequestUse
from nphies_claims.schemas.nphies import CancelRequestInput
from nphies_claims.services.nphies import terminology
from nphies_claims.services.nphies.encoder_base import reference
from nphies_claims.services.nphies.fhir_base import (
    Clock,
    EncodeContext,
    IdGenerator,
    code_system,
    codeable,
    profile_url,
    to_date_only,
    to_date_time,
)
from nphies_claims.services.nphies.resources import (
    build_insurer_org,
    build_message_header,
    build_provider_org,
    provider_identifier_system,
)
from nphies_claims.utils.logging import get_logger

logger = get_logger(__name__)

CancelPayload = Union[CancelRequestInput, Mapping[str, Any]]

# Checked in order; the first group with a matching keyword wins.
_REASON_KEYWORDS = (
    (CancelReason.WRONG_INFORMATION, ("wrong", "incorrect", "error")),
    (CancelReason.NOT_PERFORMED, ("not performed", "not done", "cancelled")),
    (CancelReason.ALREADY_SUBMITTED, ("already", "duplicate", "submitted")),
    (CancelReason.SERVICE_UNAVAILABLE, ("unavailable", "not available")),
    (CancelReason.RESUBMISSION, ("resubmit", "re-submit", "resubmission")),
)


def map_cancel_reason(text: Optional[str]) -> Tuple[str, str]:
    """
    Map a reason code or free text to a task-reason-code.

    Returns:
        (code, display); NP when nothing matches
    """
    value = (text or "").strip().lower()
    for reason in CancelReason:
        if value == reason.value.lower():
            return reason.value, terminology.CANCEL_REASON_DISPLAYS[reason.value]
    for reason, keywords in _REASON_KEYWORDS:
        if any(keyword in value for keyword in keywords):
            return reason.value, terminology.CANCEL_REASON_DISPLAYS[reason.value]
    default = CancelReason.NOT_PERFORMED.value
    return default, terminology.CANCEL_REASON_DISPLAYS[default]


class CancelEncoder:
    """
    Cancel-request bundle encoder.

    Usage:
        encoder = CancelEncoder()
        bundle = encoder.encode({"request_number": "REQ-1", "reason": "duplicate"})
    """

    def __init__(self, settings: Optional[NphiesSettings] = None):
        self.settings = settings

    def encode(
        self,
        payload: CancelPayload,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
    ) -> Dict[str, Any]:
        request = (
            payload
            if isinstance(payload, CancelRequestInput)
            else CancelRequestInput.model_validate(payload)
        )
        # category only labels log lines for a Task bundle
        ctx = EncodeContext.create(
            ClaimCategory.PROFESSIONAL,
            RequestUse.CLAIM if request.is_claim else RequestUse.PREAUTHORIZATION,
            settings=self.settings,
            id_generator=id_generator,
            clock=clock,
        )
        ctx.ids.allocate("task")
        ctx.ids.allocate("provider", request.provider.provider_id)
        ctx.ids.allocate("insurer", request.insurer.insurer_id)

        task = self.build_task(request, ctx)
        header = build_message_header(
            ctx,
            request.provider,
            request.insurer,
            MessageEvent.CANCEL_REQUEST.value,
            task["fullUrl"],
        )
        bundle = {
            "resourceType": "Bundle",
            "id": ctx.new_id(),
            "meta": {"profile": [profile_url("bundle")]},
            "type": "message",
            "timestamp": to_date_time(ctx.now),
            "entry": [
                header,
                task,
                build_provider_org(ctx, request.provider),
                build_insurer_org(ctx, request.insurer),
            ],
        }
        logger.info(
            f"Encoded cancel-request for {request.request_number} "
            f"reason={task['resource']['reasonCode']['coding'][0]['code']}"
        )
        return bundle

    def build_task(self, request: CancelRequestInput, ctx: EncodeContext) -> Dict[str, Any]:
        task_id = ctx.ids.get("task")
        system = (request.identifier_system or "").rstrip("/") or provider_identifier_system(
            request.provider
        )
        authored = to_date_only(request.authored_on or ctx.now)
        code, display = map_cancel_reason(request.reason)
        resource = {
            "resourceType": "Task",
            "id": task_id,
            "meta": {"profile": [profile_url("task")]},
            "identifier": [
                {"system": f"{system}/task", "value": f"Cancel_{request.request_number}"}
            ],
            "status": "requested",
            "intent": "order",
            "priority": "routine",
            "code": codeable(code_system("task-code"), "cancel"),
            "focus": {
                "type": "Claim",
                "identifier": {
                    "system": f"{system}/{'claim' if request.is_claim else 'authorization'}",
                    "value": request.request_number,
                },
            },
            "authoredOn": authored,
            "lastModified": authored,
            "requester": reference("Organization", ctx.ids.get("provider")),
            "owner": reference("Organization", ctx.ids.get("insurer")),
            "reasonCode": codeable(code_system("task-reason-code"), code, display),
        }
        return {"fullUrl": ctx.full_url("Task", task_id), "resource": resource}
