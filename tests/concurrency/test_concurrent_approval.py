"""
Race tests: several threads act on the same aggregate at once.

Each scenario runs on the in-memory store and on a SQLite file database.
A barrier releases all workers together; the assertions only depend on
the outcome set, never on which thread wins.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from procurement_kernel.exceptions import ConcurrencyConflict, InvalidStateTransition
from procurement_modules.requisition.models import RequisitionStatus
from tests.factories import CREW, NOW, SUPERINTENDENT, WorkflowDriver, make_draft

pytestmark = pytest.mark.concurrency

WORKERS = 5


@pytest.fixture(params=["memory", "sqlite"])
def backend(request):
    """(container, workflow) on each storage backend."""
    if request.param == "sqlite":
        request.applymarker(pytest.mark.sqlite)
        container = request.getfixturevalue("sqlite_container")
    else:
        container = request.getfixturevalue("container")
    return container, WorkflowDriver(container, request.getfixturevalue("clock"))


def _race(action, workers=WORKERS):
    """Run ``action`` on ``workers`` threads released together; collect outcomes."""
    barrier = Barrier(workers)

    def run():
        barrier.wait()
        try:
            return action()
        except (ConcurrencyConflict, InvalidStateTransition) as exc:
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(run) for _ in range(workers)]
        return [f.result() for f in futures]


def _kinds(outcomes):
    return Counter(
        type(o).__name__ if isinstance(o, Exception) else "ok" for o in outcomes
    )


class TestApprovalRace:

    def test_one_approval_wins_the_version(self, backend):
        container, workflow = backend
        pending = workflow.submit().requisition
        assert pending.version == 2

        outcomes = _race(
            lambda: container.requisitions.approve(pending.id, SUPERINTENDENT, expected_version=2)
        )

        kinds = _kinds(outcomes)
        assert kinds["ok"] == 1
        assert kinds["ConcurrencyConflict"] == WORKERS - 1
        stored = container.requisitions.get(pending.id)
        assert stored.status is RequisitionStatus.APPROVED
        assert stored.version == 3
        assert len(stored.approvals) == 1

    def test_unversioned_racers_get_conflicts(self, backend):
        container, workflow = backend
        pending = workflow.submit().requisition

        outcomes = _race(lambda: container.requisitions.approve(pending.id, SUPERINTENDENT))

        kinds = _kinds(outcomes)
        assert kinds["ok"] == 1
        assert kinds["ConcurrencyConflict"] == WORKERS - 1
        assert kinds["InvalidStateTransition"] == 0
        assert len(container.requisitions.get(pending.id).approvals) == 1

    def test_approve_and_reject_race(self, backend):
        container, workflow = backend
        pending = workflow.submit().requisition
        barrier = Barrier(2)

        def decide(action):
            barrier.wait()
            try:
                return action()
            except ConcurrencyConflict as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            approval = pool.submit(decide, lambda: container.requisitions.approve(pending.id, SUPERINTENDENT))
            rejection = pool.submit(
                decide, lambda: container.requisitions.reject(pending.id, SUPERINTENDENT, "Over budget"),
            )
            outcomes = [approval.result(), rejection.result()]

        kinds = _kinds(outcomes)
        assert kinds["ok"] == 1
        assert kinds["ConcurrencyConflict"] == 1
        assert len(container.requisitions.get(pending.id).approvals) == 1

    def test_losers_leave_no_audit(self, backend):
        container, workflow = backend
        pending = workflow.submit().requisition

        _race(lambda: container.requisitions.approve(pending.id, SUPERINTENDENT, expected_version=2))

        trail = container.requisitions.audit_trail(pending.id, CREW)
        assert [e.action.value for e in trail].count("APPROVED") == 1
        assert container.verify_audit_chain() is True


class TestSequenceRace:

    def test_numbers_unique_under_contention(self, backend):
        container, _ = backend

        outcomes = _race(lambda: container.requisitions.create(make_draft(), CREW), workers=8)

        numbers = sorted(r.requisition_number for r in outcomes)
        assert numbers == [f"ATL-2024-{n:04d}" for n in range(1, 9)]
        assert container.verify_audit_chain() is True


class TestOfflineSyncRace:

    def test_same_offline_id_lands_once(self, backend):
        container, _ = backend
        draft = make_draft(offline_id="atl-tablet-0099", offline_timestamp=NOW)

        outcomes = _race(lambda: container.offline_sync.sync(draft, CREW))

        assert sum(1 for o in outcomes if o.created) == 1
        assert len({o.requisition.id for o in outcomes}) == 1
        assert container.verify_audit_chain() is True
