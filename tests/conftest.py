"""
Pytest fixtures for the procurement workflow test suite.

Provides:
- Structured logging configured once per session, and a capture fixture
- A deterministic clock pinned to ``tests.factories.NOW``
- An in-memory service container over the shared fleet
- A SQLite-backed container on a per-test database file
- ``workflow`` drivers that push a requisition to a given stage

Environment Variables:
- None.  SQLite databases are created under pytest's ``tmp_path``.
"""

import json
import logging
from io import StringIO

import pytest

from procurement_config.settings import ProcurementSettings
from procurement_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
)
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_services.container import ServiceContainer
from tests.factories import NOW, WorkflowDriver, build_collaborators


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging once for the whole run."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture procurement logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit()
            logs = captured_logs()
            assert any(r["message"] == "requisition_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(NOW)


@pytest.fixture
def collaborators():
    return build_collaborators()


@pytest.fixture
def settings():
    return ProcurementSettings.with_defaults()


@pytest.fixture
def container(collaborators, settings, clock):
    return ServiceContainer.in_memory(collaborators, settings, clock=clock)


@pytest.fixture
def workflow(container, clock):
    return WorkflowDriver(container, clock)


# =============================================================================
# SQLite
# =============================================================================


@pytest.fixture
def sqlite_engine(tmp_path):
    engine = create_engine_from_url(f"sqlite:///{tmp_path / 'procurement.db'}")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def sqlite_container(sqlite_engine, collaborators, settings, clock):
    return ServiceContainer.sql(
        create_session_factory(sqlite_engine), collaborators, settings, clock,
    )


@pytest.fixture
def sqlite_workflow(sqlite_container, clock):
    return WorkflowDriver(sqlite_container, clock)
