"""Tests for YAML configuration loading and the typed settings it produces."""

from decimal import Decimal

import pytest
import yaml

from procurement_config import ProcurementSettings, load_settings
from procurement_config.loader import DEFAULT_CONFIG_PATH, compute_checksum, load_yaml_file
from procurement_engines.approval_authority import BudgetScope
from procurement_kernel.domain.roles import Role
from procurement_kernel.domain.values import UrgencyLevel
from procurement_modules.invoice.config import InvoiceConfig
from procurement_modules.purchase_order.config import PurchaseOrderConfig
from procurement_modules.requisition.config import RequisitionConfig
from procurement_modules.requisition.models import RequisitionStatus
from procurement_modules.rfq.config import RfqConfig
from procurement_services.container import ServiceContainer
from tests.factories import WorkflowDriver, make_line


@pytest.fixture
def write_set(tmp_path):
    """Write a YAML document to a temp file and return its path."""

    def _write(content, name="procurement.yaml"):
        path = tmp_path / name
        path.write_text(content if isinstance(content, str) else yaml.safe_dump(content))
        return path

    return _write


class TestPackagedSet:

    def test_matches_module_defaults(self):
        settings = load_settings(environ={})

        assert settings.requisition == RequisitionConfig()
        assert settings.rfq == RfqConfig()
        assert settings.purchase_order == PurchaseOrderConfig()
        assert settings.invoice == InvoiceConfig()

    def test_identified_and_fingerprinted(self):
        settings = load_settings(environ={})

        assert settings.config_id == "fleet-default"
        assert settings.checksum == compute_checksum(load_yaml_file(DEFAULT_CONFIG_PATH))
        assert len(settings.checksum) == 64

    def test_checksum_stable(self):
        assert load_settings(environ={}).checksum == load_settings(environ={}).checksum

    def test_thresholds_parsed(self):
        thresholds = load_settings(environ={}).requisition.approval_thresholds

        assert [t.role for t in thresholds] == [
            Role.SUPERINTENDENT, Role.PROCUREMENT_MANAGER, Role.FINANCE_TEAM,
        ]
        assert thresholds[-1].max_amount is None
        assert thresholds[0].min_amount == Decimal("500")
        assert [t.budget_scope for t in thresholds] == [
            BudgetScope.VESSEL, BudgetScope.FLEET, BudgetScope.COMPANY,
        ]

    def test_defaults_without_file(self):
        settings = ProcurementSettings.with_defaults()
        assert settings.config_id == "defaults"
        assert settings.checksum is None


class TestResolution:

    def test_environment_selects_file(self, write_set):
        path = write_set({"config_id": "north-sea"})
        settings = load_settings(environ={"PROCUREMENT_CONFIG_PATH": str(path)})
        assert settings.config_id == "north-sea"

    def test_explicit_path_wins(self, write_set):
        explicit = write_set({"config_id": "explicit"}, "a.yaml")
        from_env = write_set({"config_id": "from-env"}, "b.yaml")

        settings = load_settings(explicit, environ={"PROCUREMENT_CONFIG_PATH": str(from_env)})
        assert settings.config_id == "explicit"

    def test_database_url_from_environment(self, write_set):
        path = write_set({"database_url": "sqlite:///file.db"})
        settings = load_settings(
            path, environ={"DATABASE_URL": "postgresql+psycopg2://fleet@db/procurement"},
        )
        assert settings.database_url == "postgresql+psycopg2://fleet@db/procurement"

    def test_partial_set_falls_back(self, write_set):
        path = write_set({"rfq": {"max_vendors": 3}, "log_level": "debug"})
        settings = load_settings(path, environ={})

        assert settings.rfq.max_vendors == 3
        assert settings.rfq.response_window(UrgencyLevel.EMERGENCY) == 24
        assert settings.requisition == RequisitionConfig()
        assert settings.log_level == "DEBUG"
        assert settings.config_id == "unnamed"

    def test_empty_file_is_all_defaults(self, write_set):
        settings = load_settings(write_set(""), environ={})
        assert settings.invoice == InvoiceConfig()


class TestInvalidSets:

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})

    def test_malformed_yaml(self, write_set):
        with pytest.raises(yaml.YAMLError):
            load_settings(write_set("rfq: [unclosed"), environ={})

    def test_root_must_be_mapping(self, write_set):
        with pytest.raises(ValueError):
            load_settings(write_set("- just\n- a list\n"), environ={})

    @pytest.mark.parametrize("document", [
        {"invoice": {"match_tolerance": "1.5"}},
        {"rfq": {"max_vendors": 0}},
        {"requisition": {"approval_thresholds": [
            {"level": 1, "min_amount": "0", "max_amount": None, "role": "CREW"},
        ]}},
        {"requisition": {"safety_floor_role": "BOSUN"}},
        {"requisition": {"approval_thresholds": [
            {"level": 1, "min_amount": "500", "max_amount": None, "role": "SUPERINTENDENT", "budget_scope": "PORT"},
        ]}},
    ])
    def test_rejected_values(self, write_set, document):
        with pytest.raises(ValueError):
            settings = load_settings(write_set(document), environ={})
            settings.requisition.approval_policy


class TestSettingsDriveServices:

    def test_raised_minor_spend_limit(self, write_set, collaborators, clock):
        path = write_set({
            "requisition": {
                "minor_spend_limit": "5000",
                "approval_thresholds": [
                    {"level": 1, "min_amount": "5000", "max_amount": None, "role": "SUPERINTENDENT"},
                ],
            },
        })
        container = ServiceContainer.in_memory(collaborators, load_settings(path, environ={}), clock)

        result = WorkflowDriver(container, clock).submit()

        assert result.auto_approved is True
        assert result.requisition.status is RequisitionStatus.APPROVED

    def test_minor_spend_property_at_1000(self, collaborators, clock):
        settings = ProcurementSettings(requisition=RequisitionConfig(minor_spend_limit=Decimal("1000")))
        container = ServiceContainer.in_memory(collaborators, settings, clock)

        result = WorkflowDriver(container, clock).submit(make_line("1", "750"))

        assert result.auto_approved is True
        assert result.requisition.total_amount == Decimal("750")

    def test_narrower_vendor_fan_out(self, write_set, collaborators, clock):
        path = write_set({"rfq": {"max_vendors": 2}})
        container = ServiceContainer.in_memory(collaborators, load_settings(path, environ={}), clock)

        issued = WorkflowDriver(container, clock).rfq()
        assert issued.rfq.vendor_ids == ("vendor-alpha", "vendor-bravo")
