"""Kernel services: audit trail logging and sequence allocation."""

from procurement_kernel.services.auditor_service import AuditTrailLogger
from procurement_kernel.services.sequence_service import SequenceService

__all__ = ["AuditTrailLogger", "SequenceService"]
