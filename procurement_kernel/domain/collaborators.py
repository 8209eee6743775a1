"""
External collaborator contracts (``procurement_kernel.domain.collaborators``).

Responsibility
--------------
Value objects and ``Protocol`` interfaces for the services the workflow
calls but does not own: the organization directory, vessel registry,
vendor directory, vendor notifier, exchange-rate source and vessel
budgets.  In-memory
implementations live in ``procurement_services.collaborators``.

Failure modes
-------------
* Implementations raise ``ExternalServiceError`` when the remote side
  fails.  Callers decide whether that is fatal or a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from procurement_kernel.domain.roles import FLEET_ROLES, Role


@dataclass(frozen=True)
class Principal:
    """A user as the organization directory knows them."""

    user_id: str
    role: Role
    name: str = ""
    vessel_ids: frozenset[str] = frozenset()

    def serves(self, vessel_id: str) -> bool:
        """Fleet-wide roles serve every vessel."""
        return self.role in FLEET_ROLES or vessel_id in self.vessel_ids


@dataclass(frozen=True)
class GeoPosition:
    latitude: Decimal
    longitude: Decimal
    updated_at: datetime | None = None


@dataclass(frozen=True)
class VesselSnapshot:
    """Point-in-time vessel context embedded into purchase orders."""

    vessel_id: str
    name: str
    imo_number: str
    position: GeoPosition | None = None
    current_voyage: str | None = None
    eta: datetime | None = None
    destination_port: str | None = None
    port_agent: str | None = None


@dataclass(frozen=True)
class VendorCandidate:
    vendor_id: str
    name: str
    rating: Decimal = Decimal("0")
    avg_response_hours: Decimal = Decimal("0")
    categories: frozenset[str] = frozenset()
    vessel_ids: frozenset[str] = frozenset()
    serves_all_vessels: bool = True
    is_active: bool = True
    email: str | None = None

    def serves(self, vessel_id: str) -> bool:
        return self.serves_all_vessels or vessel_id in self.vessel_ids

    def covers(self, categories: frozenset[str]) -> bool:
        return not categories or bool(self.categories & categories)


class OrganizationDirectory(Protocol):
    def principal(self, user_id: str) -> Principal | None:
        ...

    def users_with_role(self, role: Role, vessel_id: str) -> list[Principal]:
        """Holders of ``role`` who serve ``vessel_id`` (fleet-wide users included)."""
        ...


class VesselRegistry(Protocol):
    def vessel(self, vessel_id: str) -> VesselSnapshot | None:
        ...


class VendorDirectory(Protocol):
    def candidates(self, vessel_id: str, categories: frozenset[str]) -> list[VendorCandidate]:
        ...


class VendorNotifier(Protocol):
    def send_rfq(self, vendor: VendorCandidate, rfq: Any) -> None:
        ...

    def send_purchase_order(self, vendor_id: str, purchase_order: Any) -> None:
        ...


class ExchangeRateProvider(Protocol):
    def rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        ...


class BudgetProvider(Protocol):
    def remaining(self, vessel_id: str, currency: str, period: str) -> Decimal | None:
        """Unspent vessel budget for ``period`` (``YYYY-Qn``); None when no budget is set."""
        ...


@dataclass(frozen=True)
class Collaborators:
    """The injected set, handed to the service container and the app factory."""

    directory: OrganizationDirectory
    vessels: VesselRegistry
    vendors: VendorDirectory
    notifier: VendorNotifier
    exchange_rates: ExchangeRateProvider
    budgets: BudgetProvider | None = None
