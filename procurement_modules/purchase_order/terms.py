"""
Maritime contract text for purchase orders.

Pure builders: the vessel snapshot and quote terms go in, fixed text comes
out.  The text is stored on the order and never regenerated.
"""

from __future__ import annotations

from decimal import Decimal

from procurement_kernel.domain.collaborators import GeoPosition, VesselSnapshot
from procurement_modules.purchase_order.config import PurchaseOrderConfig


def _pct(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _coordinate(value: Decimal, positive: str, negative: str) -> str:
    hemisphere = positive if value >= 0 else negative
    return f"{abs(value):.4f}°{hemisphere}"


def _position_line(position: GeoPosition) -> list[str]:
    lines = [
        "- Last known position: "
        f"{_coordinate(position.latitude, 'N', 'S')}, {_coordinate(position.longitude, 'E', 'W')}"
    ]
    if position.updated_at is not None:
        lines.append(f"- Position updated: {position.updated_at.date().isoformat()}")
    return lines


def build_payment_terms(
    config: PurchaseOrderConfig,
    currency: str,
    negotiated_terms: str | None = None,
) -> str:
    base = negotiated_terms or config.default_payment_terms
    return "\n".join([
        base,
        "",
        "MARITIME PAYMENT CONDITIONS:",
        "- Payment subject to satisfactory delivery and inspection by vessel crew",
        "- All banking charges outside seller's country for buyer's account",
        f"- Payment to be made in {currency}",
        f"- Late payment charges: {_pct(config.late_payment_rate_pct)}% per month on overdue amounts",
        f"- Retention: {_pct(config.retention_pct)}% of invoice value held for "
        f"{config.retention_days} days post-delivery for warranty claims",
    ])


def build_delivery_terms(
    config: PurchaseOrderConfig,
    vessel: VesselSnapshot,
    instructions: str | None = None,
) -> str:
    lines = [
        config.delivery_terms,
        "",
        "VESSEL DELIVERY REQUIREMENTS:",
        f"- Vessel: {vessel.name} (IMO: {vessel.imo_number})",
    ]
    if vessel.current_voyage:
        lines.append(f"- Current voyage: {vessel.current_voyage}")
    if vessel.eta is not None:
        lines.append(f"- ETA: {vessel.eta.date().isoformat()}")
    if vessel.position is not None:
        lines.extend(_position_line(vessel.position))
    lines.extend([
        "- Delivery coordination required with Master/Chief Engineer minimum 24 hours prior",
        "- All goods to be properly packaged for maritime transport",
        "- Delivery receipt to be signed by authorized vessel representative",
        f"- {config.inspection_terms}",
        f"- Incoterms: {config.incoterms}",
    ])
    text = "\n".join(lines)
    if instructions:
        text += f"\n\nADDITIONAL INSTRUCTIONS:\n{instructions}"
    return text


def build_delivery_address(vessel: VesselSnapshot) -> str:
    lines = [f"M/V {vessel.name} (IMO: {vessel.imo_number})"]
    if vessel.destination_port:
        lines.append(f"Port of {vessel.destination_port}")
    if vessel.port_agent:
        lines.extend(["", f"Port Agent: {vessel.port_agent}"])
    lines.extend([
        "",
        "Note: Final delivery location to be confirmed 24-48 hours prior to delivery "
        "based on vessel's actual position and berth assignment.",
    ])
    return "\n".join(lines)


def build_notes(
    config: PurchaseOrderConfig,
    special_terms: str | None = None,
    notes: str | None = None,
) -> str:
    text = "\n".join([
        "MARITIME PURCHASE ORDER",
        "",
        "Generated from approved quote for vessel operations.",
        "",
        "IMPORTANT MARITIME CONDITIONS:",
        config.warranty_terms,
        "",
        "FORCE MAJEURE:",
        config.force_majeure,
        "",
        "DISPUTE RESOLUTION:",
        config.dispute_resolution,
    ])
    if special_terms:
        text += f"\n\nSPECIAL TERMS:\n{special_terms}"
    if notes:
        text += f"\n\nADDITIONAL NOTES:\n{notes}"
    return text
