"""
Configuration Loader (``procurement_config.loader``).

Responsibility
--------------
Read a YAML configuration set from disk and fingerprint it.  Parsing into
typed module configs happens in ``procurement_config.settings``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel,
modules or services.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A document that is not a mapping  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` identifies the exact configuration a process ran
with; the settings layer logs it at startup.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SETS_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = DEFAULT_SETS_DIR / "default.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top-level document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root in {path} must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
