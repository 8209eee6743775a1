"""
procurement_config -- YAML-driven settings for the procurement workflow.

``load_settings()`` is the public entry point; it reads the default set
(or ``PROCUREMENT_CONFIG_PATH``) and returns ``ProcurementSettings``.
"""

from procurement_config.settings import ProcurementSettings, load_settings

__all__ = ["ProcurementSettings", "load_settings"]
