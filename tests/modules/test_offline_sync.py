"""Tests for OfflineSyncReconciler: idempotent upsert of buffered requisitions."""

from datetime import timedelta

import pytest

from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.exceptions import AuthorizationError, ValidationError
from procurement_modules.requisition.models import RequisitionStatus
from tests.factories import CREW, FINANCE, NOW, SUPERINTENDENT, make_draft, make_line

RAISED_AT = NOW - timedelta(days=3)


def _offline_draft(*lines, offline_id="atl-tablet-0042", **fields):
    fields.setdefault("offline_timestamp", RAISED_AT)
    return make_draft(*lines, offline_id=offline_id, **fields)


class TestFirstSync:

    def test_created_and_submitted(self, container):
        result = container.offline_sync.sync(_offline_draft(), CREW)

        assert result.created is True
        assert result.submission is not None
        assert result.requisition.status is RequisitionStatus.PENDING_APPROVAL
        assert result.requisition.created_offline is True
        assert result.requisition.offline_id == "atl-tablet-0042"
        assert result.requisition.offline_timestamp == RAISED_AT
        assert result.warnings == ()

    def test_minor_spend_auto_approved(self, container):
        result = container.offline_sync.sync(_offline_draft(make_line("1", "120")), CREW)
        assert result.requisition.status is RequisitionStatus.APPROVED

    def test_creation_audited_as_offline(self, container):
        result = container.offline_sync.sync(_offline_draft(), CREW)
        trail = container.requisitions.audit_trail(result.requisition.id, CREW)

        assert [e.action for e in trail] == [AuditAction.CREATED, AuditAction.SUBMITTED]
        assert trail[0].payload["createdOffline"] is True
        assert trail[0].payload["offlineId"] == "atl-tablet-0042"

    def test_delivery_date_checked_against_offline_time(self, container):
        # In the past for the shore clock, but not when the crew raised it.
        draft = _offline_draft(delivery_date=NOW - timedelta(days=1))
        result = container.offline_sync.sync(draft, CREW)
        assert result.created is True

    def test_delivery_date_before_offline_time_rejected(self, container):
        draft = _offline_draft(delivery_date=RAISED_AT - timedelta(days=1))
        with pytest.raises(ValidationError) as exc_info:
            container.offline_sync.sync(draft, CREW)
        assert exc_info.value.field == "delivery_date"


class TestResync:

    def test_second_sync_returns_stored_requisition(self, container):
        first = container.offline_sync.sync(_offline_draft(), CREW)
        audit_size = len(container.store.audit)

        second = container.offline_sync.sync(_offline_draft(), CREW)

        assert second.created is False
        assert second.submission is None
        assert second.warnings == ()
        assert second.requisition.id == first.requisition.id
        assert second.requisition.version == first.requisition.version
        assert len(container.store.audit) == audit_size

    def test_resync_ignores_changed_payload(self, container):
        first = container.offline_sync.sync(_offline_draft(), CREW)
        second = container.offline_sync.sync(_offline_draft(make_line("9", "900")), CREW)
        assert second.requisition.total_amount == first.requisition.total_amount

    def test_distinct_ids_create_distinct_requisitions(self, container):
        a = container.offline_sync.sync(_offline_draft(offline_id="tablet-a"), CREW)
        b = container.offline_sync.sync(_offline_draft(offline_id="tablet-b"), CREW)

        assert a.requisition.id != b.requisition.id
        assert a.requisition.requisition_number != b.requisition.requisition_number

    def test_resync_after_approval_reports_current_state(self, container):
        first = container.offline_sync.sync(_offline_draft(), CREW)
        approver = first.submission.requirement.authorized_approvers[0]
        assert approver.user_id == SUPERINTENDENT.user_id
        container.requisitions.approve(first.requisition.id, SUPERINTENDENT)

        again = container.offline_sync.sync(_offline_draft(), CREW)
        assert again.requisition.status is RequisitionStatus.APPROVED


class TestRejectedSync:

    @pytest.mark.parametrize("offline_id", [None, "", "   "])
    def test_offline_id_required(self, container, offline_id):
        with pytest.raises(ValidationError) as exc_info:
            container.offline_sync.sync(_offline_draft(offline_id=offline_id), CREW)
        assert exc_info.value.field == "offline_id"

    def test_offline_timestamp_required(self, container):
        with pytest.raises(ValidationError) as exc_info:
            container.offline_sync.sync(_offline_draft(offline_timestamp=None), CREW)
        assert exc_info.value.field == "offline_timestamp"

    def test_invalid_draft_persists_nothing(self, container):
        draft = _offline_draft(make_line("0", "100"))
        with pytest.raises(ValidationError):
            container.offline_sync.sync(draft, CREW)

        assert container.store.audit == []
        retry = container.offline_sync.sync(_offline_draft(), CREW)
        assert retry.created is True

    def test_role_without_create_capability(self, container):
        with pytest.raises(AuthorizationError):
            container.offline_sync.sync(_offline_draft(), FINANCE)
