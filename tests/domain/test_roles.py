"""Role capabilities, the approval hierarchy and the deterministic clock."""

from datetime import datetime, timedelta, timezone

import pytest

from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.domain.collaborators import Principal, VendorCandidate
from procurement_kernel.domain.roles import (
    APPROVAL_HIERARCHY,
    FLEET_ROLES,
    ROLE_CAPABILITIES,
    SYSTEM_ACTOR,
    Actor,
    Capability,
    Role,
    hierarchy_rank,
    is_captain_capable,
)


class TestCapabilities:

    def test_only_captain_overrides(self):
        holders = {r for r in Role if Capability.EMERGENCY_OVERRIDE in ROLE_CAPABILITIES[r]}
        assert holders == {Role.CAPTAIN}
        assert is_captain_capable(Role.CAPTAIN)
        assert not is_captain_capable(Role.ADMIN)

    def test_hierarchy_roles_all_approve(self):
        for role in APPROVAL_HIERARCHY:
            assert Capability.APPROVE_REQUISITIONS in ROLE_CAPABILITIES[role]

    def test_admin_cannot_approve_requisitions(self):
        assert not Actor("admin-1", Role.ADMIN).can(Capability.APPROVE_REQUISITIONS)
        assert Actor("admin-1", Role.ADMIN).can(Capability.MANAGE_DELEGATIONS)

    def test_procurement_cannot_release_money(self):
        pm = Actor("pm-1", Role.PROCUREMENT_MANAGER)
        assert pm.can(Capability.GENERATE_PURCHASE_ORDER)
        assert not pm.can(Capability.APPROVE_PURCHASE_ORDER)
        assert not pm.can(Capability.MATCH_INVOICE)
        assert not pm.can(Capability.APPROVE_PAYMENT)

    def test_crew_capabilities(self):
        assert ROLE_CAPABILITIES[Role.CREW] == {
            Capability.CREATE_REQUISITION,
            Capability.CONFIRM_RECEIPT,
            Capability.VIEW_AUDIT_TRAIL,
        }

    def test_system_actor(self):
        assert SYSTEM_ACTOR.user_id == "system"
        assert SYSTEM_ACTOR.can(Capability.APPROVE_REQUISITIONS)
        assert not SYSTEM_ACTOR.can(Capability.CREATE_REQUISITION)

    def test_hierarchy_rank(self):
        assert hierarchy_rank(Role.SUPERINTENDENT) < hierarchy_rank(Role.PROCUREMENT_MANAGER)
        assert hierarchy_rank(Role.PROCUREMENT_MANAGER) < hierarchy_rank(Role.FINANCE_TEAM)
        assert hierarchy_rank(Role.CAPTAIN) == -1


class TestAssignments:

    def test_fleet_roles_serve_every_vessel(self):
        for role in FLEET_ROLES:
            assert Principal("u", role).serves("any-vessel")

    def test_vessel_roles_need_assignment(self):
        crew = Principal("crew-1", Role.CREW, vessel_ids=frozenset({"v1"}))
        assert crew.serves("v1")
        assert not crew.serves("v2")

    def test_vendor_coverage(self):
        vendor = VendorCandidate(
            "v", "Vendor", categories=frozenset({"ENGINE"}),
            vessel_ids=frozenset({"v1"}), serves_all_vessels=False,
        )
        assert vendor.covers(frozenset({"ENGINE", "DECK"}))
        assert vendor.covers(frozenset())
        assert not vendor.covers(frozenset({"DECK"}))
        assert not vendor.serves("v2")


class TestDeterministicClock:

    def test_frozen_until_advanced(self):
        start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.now() == clock.now() == start
        clock.advance(hours=2)
        assert clock.now() == start + timedelta(hours=2)
        assert clock.tick() == start + timedelta(hours=2, seconds=1)

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2024, 3, 1))

    def test_set_time_resets_offset(self):
        clock = DeterministicClock(datetime(2024, 3, 1, tzinfo=timezone.utc))
        clock.advance(days=3)
        target = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target
