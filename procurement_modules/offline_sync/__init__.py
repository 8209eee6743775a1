"""Reconciliation of requisitions raised while a vessel was offline."""

from procurement_modules.offline_sync.models import OfflineSyncResult
from procurement_modules.offline_sync.service import OfflineSyncReconciler

__all__ = ["OfflineSyncReconciler", "OfflineSyncResult"]
