"""Database layer: declarative base, portable column types, engine and sessions."""

from procurement_kernel.db.base import Base, DecimalType, UTCDateTime, VersionedBase
from procurement_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)

__all__ = [
    "Base",
    "DecimalType",
    "UTCDateTime",
    "VersionedBase",
    "create_engine_from_url",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
]
