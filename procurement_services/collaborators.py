"""
procurement_services.collaborators -- In-memory collaborator implementations.

Responsibility:
    Process-local stand-ins for the organization directory, vessel
    registry, vendor directory, vendor notifier, exchange-rate source and
    vessel budgets.  Used by tests, local runs and the default app factory.

Architecture position:
    Services.  Implements the ``Protocol`` contracts declared in
    ``procurement_kernel.domain.collaborators``.

Failure modes:
    - ``RecordingNotifier`` raises ExternalServiceError for vendors listed
      in ``failing_vendors``; services turn that into a warning.
    - ``StaticExchangeRates`` raises ExternalServiceError when
      ``unavailable`` is set and returns None for unknown pairs.
    - ``StaticBudgets`` behaves the same way for budget lookups.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from procurement_kernel.domain.collaborators import (
    Collaborators,
    Principal,
    VendorCandidate,
    VesselSnapshot,
)
from procurement_kernel.domain.roles import Role
from procurement_kernel.exceptions import ExternalServiceError
from procurement_kernel.logging_config import get_logger

logger = get_logger("services.collaborators")


class InMemoryDirectory:
    def __init__(self, principals: Iterable[Principal] = ()):
        self._principals = {p.user_id: p for p in principals}

    def add(self, principal: Principal) -> None:
        self._principals[principal.user_id] = principal

    def principal(self, user_id: str) -> Principal | None:
        return self._principals.get(user_id)

    def users_with_role(self, role: Role, vessel_id: str) -> list[Principal]:
        return sorted(
            (p for p in self._principals.values() if p.role is role and p.serves(vessel_id)),
            key=lambda p: p.user_id,
        )


class InMemoryVesselRegistry:
    def __init__(self, vessels: Iterable[VesselSnapshot] = ()):
        self._vessels = {v.vessel_id: v for v in vessels}

    def add(self, vessel: VesselSnapshot) -> None:
        self._vessels[vessel.vessel_id] = vessel

    def vessel(self, vessel_id: str) -> VesselSnapshot | None:
        return self._vessels.get(vessel_id)


class InMemoryVendorDirectory:
    """Returns active vendors that serve the vessel and cover a category."""

    def __init__(self, vendors: Iterable[VendorCandidate] = ()):
        self._vendors = {v.vendor_id: v for v in vendors}

    def add(self, vendor: VendorCandidate) -> None:
        self._vendors[vendor.vendor_id] = vendor

    def candidates(self, vessel_id: str, categories: frozenset[str]) -> list[VendorCandidate]:
        return [
            v for v in self._vendors.values()
            if v.is_active and v.serves(vessel_id) and v.covers(categories)
        ]


class RecordingNotifier:
    """Keeps every message it was asked to send."""

    def __init__(self, failing_vendors: Iterable[str] = ()):
        self.failing_vendors = set(failing_vendors)
        self.rfqs_sent: list[tuple[str, Any]] = []
        self.purchase_orders_sent: list[tuple[str, Any]] = []

    def _check(self, vendor_id: str) -> None:
        if vendor_id in self.failing_vendors:
            logger.warning("vendor_notification_refused", extra={"vendor_id": vendor_id})
            raise ExternalServiceError("vendor_notifier", f"vendor {vendor_id} unreachable")

    def send_rfq(self, vendor: VendorCandidate, rfq: Any) -> None:
        self._check(vendor.vendor_id)
        self.rfqs_sent.append((vendor.vendor_id, rfq))

    def send_purchase_order(self, vendor_id: str, purchase_order: Any) -> None:
        self._check(vendor_id)
        self.purchase_orders_sent.append((vendor_id, purchase_order))


class StaticExchangeRates:
    """Fixed rates keyed by ``(from_currency, to_currency)``."""

    def __init__(self, rates: Mapping[tuple[str, str], Decimal] | None = None):
        self._rates = dict(rates or {})
        self.unavailable = False

    def rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        if self.unavailable:
            raise ExternalServiceError("exchange_rates", "rate source unavailable")
        return self._rates.get((from_currency, to_currency))


class StaticBudgets:
    """Remaining vessel budgets keyed by ``(vessel_id, currency, period)``."""

    def __init__(self, budgets: Mapping[tuple[str, str, str], Decimal] | None = None):
        self._budgets = dict(budgets or {})
        self.unavailable = False

    def set(self, vessel_id: str, currency: str, period: str, amount: Decimal) -> None:
        self._budgets[(vessel_id, currency, period)] = amount

    def remaining(self, vessel_id: str, currency: str, period: str) -> Decimal | None:
        if self.unavailable:
            raise ExternalServiceError("budgets", "budget source unavailable")
        return self._budgets.get((vessel_id, currency, period))


def in_memory_collaborators(
    principals: Iterable[Principal] = (),
    vessels: Iterable[VesselSnapshot] = (),
    vendors: Iterable[VendorCandidate] = (),
    rates: Mapping[tuple[str, str], Decimal] | None = None,
    budgets: Mapping[tuple[str, str, str], Decimal] | None = None,
) -> Collaborators:
    return Collaborators(
        directory=InMemoryDirectory(principals),
        vessels=InMemoryVesselRegistry(vessels),
        vendors=InMemoryVendorDirectory(vendors),
        notifier=RecordingNotifier(),
        exchange_rates=StaticExchangeRates(rates),
        budgets=StaticBudgets(budgets),
    )
