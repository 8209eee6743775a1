"""Kernel ORM models."""

from procurement_kernel.models.audit_event import AuditEntryModel

__all__ = ["AuditEntryModel"]
