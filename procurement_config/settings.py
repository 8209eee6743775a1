"""
Procurement Settings (``procurement_config.settings``).

Responsibility
--------------
Aggregate the per-module configuration schemas plus process settings
(database URL, log level) into one object handed to the service
container and the app factory.

Architecture position
---------------------
**Config layer** -- sits above ``procurement_modules`` config schemas and
below ``procurement_services`` / ``procurement_api``.

Invariants enforced
-------------------
* Environment overrides are applied in one place: ``PROCUREMENT_CONFIG_PATH``
  selects the YAML set, ``DATABASE_URL`` replaces its database URL.
* Sections absent from the YAML fall back to each module's defaults.

Failure modes
-------------
* ``FileNotFoundError`` / ``yaml.YAMLError`` from the loader.
* ``ValueError`` from a module config that rejects a value.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Self

from procurement_config.loader import DEFAULT_CONFIG_PATH, compute_checksum, load_yaml_file
from procurement_kernel.logging_config import get_logger
from procurement_modules.invoice.config import InvoiceConfig
from procurement_modules.purchase_order.config import PurchaseOrderConfig
from procurement_modules.requisition.config import RequisitionConfig
from procurement_modules.rfq.config import RfqConfig

logger = get_logger("config.settings")

CONFIG_PATH_ENV = "PROCUREMENT_CONFIG_PATH"
DATABASE_URL_ENV = "DATABASE_URL"


@dataclass
class ProcurementSettings:
    requisition: RequisitionConfig = field(default_factory=RequisitionConfig)
    rfq: RfqConfig = field(default_factory=RfqConfig)
    purchase_order: PurchaseOrderConfig = field(default_factory=PurchaseOrderConfig)
    invoice: InvoiceConfig = field(default_factory=InvoiceConfig)
    database_url: str = "sqlite:///procurement.db"
    log_level: str = "INFO"
    config_id: str = "defaults"
    checksum: str | None = None

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("procurement_settings_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Build settings from a parsed YAML set."""
        logger.info(
            "procurement_settings_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(
            requisition=RequisitionConfig.from_dict(data.get("requisition") or {}),
            rfq=RfqConfig.from_dict(data.get("rfq") or {}),
            purchase_order=PurchaseOrderConfig.from_dict(data.get("purchase_order") or {}),
            invoice=InvoiceConfig.from_dict(data.get("invoice") or {}),
            database_url=data.get("database_url", "sqlite:///procurement.db"),
            log_level=str(data.get("log_level", "INFO")).upper(),
            config_id=str(data.get("config_id", "unnamed")),
            checksum=compute_checksum(data),
        )


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProcurementSettings:
    """
    Load the active configuration set.

    Resolution order for the file: explicit ``path``, then
    ``PROCUREMENT_CONFIG_PATH``, then the packaged default set.
    ``DATABASE_URL`` in the environment wins over the file's value.
    """
    env = os.environ if environ is None else environ
    config_path = Path(path or env.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    settings = ProcurementSettings.from_dict(load_yaml_file(config_path))
    if env.get(DATABASE_URL_ENV):
        settings.database_url = env[DATABASE_URL_ENV]

    logger.info(
        "procurement_config_loaded",
        extra={
            "config_path": str(config_path),
            "config_id": settings.config_id,
            "checksum": settings.checksum,
            "database_dialect": settings.database_url.split(":", 1)[0],
        },
    )
    return settings
