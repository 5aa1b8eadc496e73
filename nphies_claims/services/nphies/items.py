"""
NPHIES Claim Item Builder.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Builds Claim.item entries and the claim total:
- net = quantity x unitPrice x factor + tax (Decimal arithmetic)
- nets are rounded half-up to 2 dp when computed; totals sum rounded nets
- package items net to the sum of their detail nets
- shared item extensions (package, patient share, payer share, maternity,
  tax, patient invoice)

Category encoders supply the product coding, sites and any category
extensions; this module owns the arithmetic and the item skeleton.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from nphies_claims.schemas.nphies import ItemDetailInput, ItemInput
from nphies_claims.services.nphies.fhir_base import (
    EncodeContext,
    NphiesValidationError,
    clamp_date,
    code_system,
    coding,
    extension_url,
    fhir_number,
    money,
    round_money,
    to_date_only,
)


# =============================================================================
# Arithmetic
# =============================================================================


def compute_net(
    quantity: Decimal,
    unit_price: Decimal,
    factor: Decimal = Decimal("1"),
    tax: Decimal = Decimal("0"),
) -> Decimal:
    """net = quantity x unitPrice x factor + tax, rounded to the emitted precision"""
    return round_money(quantity * unit_price * factor + tax)


def detail_net(detail: ItemDetailInput) -> Decimal:
    return compute_net(detail.quantity, detail.unit_price, detail.factor, detail.tax)


def item_net(item: ItemInput, sequence: Optional[int] = None) -> Decimal:
    """
    Net for an item.

    Raises:
        NphiesValidationError: package item without details
    """
    if item.is_package:
        if not item.details:
            raise NphiesValidationError(
                "Package item requires at least one detail",
                field="items.details",
                item_sequence=sequence,
            )
        return sum((detail_net(d) for d in item.details), Decimal("0"))
    return compute_net(item.quantity, item.unit_price, item.factor, item.tax)


def compute_total(nets: Sequence[Decimal], fallback: Optional[Decimal] = None) -> Decimal:
    """Claim total: sum of item nets, or the caller total when there are no items."""
    if nets:
        return round_money(sum(nets, Decimal("0")))
    return round_money(fallback if fallback is not None else Decimal("0"))


# =============================================================================
# Item parts supplied by encoders
# =============================================================================


@dataclass
class ItemParts:
    """Category-specific pieces of one item."""

    product: Dict[str, Any]
    extensions: List[Dict[str, Any]] = field(default_factory=list)
    body_site: Optional[Dict[str, Any]] = None
    sub_site: Optional[List[Dict[str, Any]]] = None
    information_sequence: Optional[List[int]] = None
    care_team: bool = True


def product_or_service(
    system: str,
    code: str,
    display: Optional[str] = None,
    shadow_system: Optional[str] = None,
    shadow_code: Optional[str] = None,
    shadow_display: Optional[str] = None,
) -> Dict[str, Any]:
    """productOrService with an optional shadow-billing coding."""
    codings = [coding(system, code, display)]
    if shadow_code and shadow_system:
        codings.append(coding(shadow_system, shadow_code, shadow_display))
    return {"coding": codings}


def _money_extension(name: str, value: Decimal, currency: str) -> Dict[str, Any]:
    return {"url": extension_url(name), "valueMoney": money(value, currency)}


def _bool_extension(name: str, value: bool) -> Dict[str, Any]:
    return {"url": extension_url(name), "valueBoolean": value}


def serviced_date(
    ctx: EncodeContext, item: ItemInput, period: Optional[Dict[str, str]]
) -> str:
    """Item date, clamped into the encounter period when there is one."""
    start = to_date_only(period.get("start")) if period else None
    end = to_date_only(period.get("end")) if period else None
    value = to_date_only(item.serviced_date) or start or to_date_only(ctx.now)
    return clamp_date(value, start, end)


def patient_invoice(ctx: EncodeContext, item: ItemInput, request_number: str) -> str:
    return item.patient_invoice or f"Invc-{ctx.now.strftime('%Y%m%d')}/{request_number}"


def _detail_entries(
    item: ItemInput, default_system: str, currency: str
) -> List[Dict[str, Any]]:
    details = []
    for index, detail in enumerate(item.details, start=1):
        entry: Dict[str, Any] = {
            "sequence": index,
            "productOrService": {
                "coding": [
                    coding(
                        detail.product_or_service_system or default_system,
                        detail.product_or_service_code,
                        detail.product_or_service_display,
                    )
                ]
            },
            "quantity": {"value": fhir_number(detail.quantity)},
            "unitPrice": money(detail.unit_price, currency),
        }
        if detail.factor != 1:
            entry["factor"] = fhir_number(detail.factor)
        entry["net"] = money(detail_net(detail), currency)
        details.append(entry)
    return details


# =============================================================================
# Item Builder
# =============================================================================


def build_item(
    ctx: EncodeContext,
    item: ItemInput,
    sequence: int,
    parts: ItemParts,
    *,
    currency: str,
    provider_system: str,
    request_number: str,
    diagnosis_sequences: Sequence[int],
    information_sequences: Sequence[int],
    encounter_period: Optional[Dict[str, str]] = None,
) -> Tuple[Dict[str, Any], Decimal]:
    """
    Build one Claim.item.

    Returns:
        (item entry, net) so the caller can total without re-parsing JSON
    """
    currency = item.currency or currency
    net = item_net(item, sequence)

    extensions = [
        _bool_extension("package", item.is_package),
        _money_extension("patient-share", item.patient_share, currency),
    ]
    if not ctx.is_claim:
        extensions.append(
            _money_extension("payer-share", net - item.patient_share, currency)
        )
    extensions.extend(parts.extensions)
    extensions.append(_bool_extension("maternity", item.is_maternity))
    extensions.append(_money_extension("tax", item.tax, currency))
    if ctx.is_claim:
        extensions.append(
            {
                "url": extension_url("patientInvoice"),
                "valueIdentifier": {
                    "system": f"{provider_system}/patientInvoice",
                    "value": patient_invoice(ctx, item, request_number),
                },
            }
        )

    entry: Dict[str, Any] = {"extension": extensions, "sequence": sequence}
    if parts.care_team:
        entry["careTeamSequence"] = [1]
    entry["diagnosisSequence"] = list(item.diagnosis_sequences or diagnosis_sequences or [1])
    info = (
        parts.information_sequence
        if parts.information_sequence is not None
        else list(item.information_sequences or information_sequences)
    )
    if info:
        entry["informationSequence"] = info
    entry["productOrService"] = parts.product
    entry["servicedDate"] = serviced_date(ctx, item, encounter_period)
    if parts.body_site:
        entry["bodySite"] = parts.body_site
    if parts.sub_site:
        entry["subSite"] = parts.sub_site
    entry["quantity"] = {"value": fhir_number(item.quantity)}
    entry["unitPrice"] = money(item.unit_price, currency)
    if item.factor != 1:
        entry["factor"] = fhir_number(item.factor)
    entry["net"] = money(net, currency)
    if item.is_package:
        product_system = parts.product["coding"][0]["system"]
        entry["detail"] = _detail_entries(item, product_system, currency)
    return entry, net


def procedure_system() -> str:
    return code_system("procedures")


def require_product_code(ctx: EncodeContext, item: ItemInput, sequence: int) -> str:
    if not item.product_or_service_code:
        raise NphiesValidationError(
            "Item is missing productOrService code",
            field="items.product_or_service_code",
            category=ctx.category.value,
            item_sequence=sequence,
        )
    return item.product_or_service_code
