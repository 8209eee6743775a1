"""
Shared helpers for module services (``procurement_modules._helpers``).

Responsibility
--------------
Capability checks, required-text validation and the started / committed /
failed logging envelope every public service method runs inside.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from ``procurement_kernel`` only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from procurement_kernel.domain.roles import Actor, Capability
from procurement_kernel.exceptions import (
    AuthorizationError,
    ProcurementError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext


def require_capability(actor: Actor, capability: Capability, action: str) -> None:
    if not actor.can(capability):
        raise AuthorizationError(
            actor.user_id,
            action,
            f"role {actor.role.value} lacks {capability.value}",
        )


def require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field=field, value=value)
    return value.strip()


@contextmanager
def logged_operation(
    logger: logging.Logger,
    operation: str,
    actor: Actor,
    requisition_id: str | None = None,
    **fields: Any,
) -> Iterator[None]:
    """
    Bind log context and emit ``<operation>_started`` / ``<operation>_failed``.

    Expected workflow errors log at WARNING, anything else at ERROR.  The
    exception always propagates.
    """
    extra = {"operation": operation, **fields}
    with LogContext.bind(actor_id=actor.user_id, requisition_id=requisition_id):
        logger.info(f"{operation}_started", extra=extra)
        try:
            yield
        except ProcurementError as exc:
            logger.warning(
                f"{operation}_failed",
                exc_info=True,
                extra={**extra, "error_code": exc.code},
            )
            raise
        except Exception:
            logger.error(f"{operation}_failed", exc_info=True, extra=extra)
            raise
