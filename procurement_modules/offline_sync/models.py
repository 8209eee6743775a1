"""Offline sync result."""

from __future__ import annotations

from dataclasses import dataclass

from procurement_modules.requisition.models import Requisition, SubmissionResult


@dataclass(frozen=True)
class OfflineSyncResult:
    """
    ``created`` is False when the offline id had already been synced; the
    stored requisition is returned untouched and ``submission`` is None.
    """

    requisition: Requisition
    created: bool
    submission: SubmissionResult | None = None

    @property
    def warnings(self) -> tuple[str, ...]:
        return self.submission.warnings if self.submission else ()
