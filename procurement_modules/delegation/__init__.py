"""Delegation of approval authority."""

from procurement_modules.delegation.models import Delegation, DelegationRequest
from procurement_modules.delegation.service import DelegationService

__all__ = ["Delegation", "DelegationRequest", "DelegationService"]
