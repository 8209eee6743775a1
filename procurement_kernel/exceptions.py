"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Workflow callers (the HTTP layer, vendor integrations, the offline sync
client) must react differently to "you may retry" and "you may never
retry".  Parsing message strings for that decision is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.approve(requisition_id, actor)
    except Exception as e:
        if "modified" in str(e):  # FRAGILE - message might change
            reload_and_retry()

Example - RIGHT way (what this module enables):
    try:
        service.approve(requisition_id, actor)
    except ConcurrencyConflict as e:  # Typed catch
        log.info("lost race on %s v%s", e.entity_id, e.expected_version)
        api_response(409, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProcurementError:

    ProcurementError (base)
    |
    +-- ValidationError
    |
    +-- WorkflowError
    |   +-- InvalidStateTransition
    |   +-- NotFoundError
    |   +-- DuplicateEntityError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflict
    |
    +-- AccessError
    |   +-- AuthenticationError
    |   +-- AuthorizationError
    |
    +-- SourcingError
    |   +-- NoEligibleVendors
    |   +-- QuoteAlreadySelected
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ExternalServiceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | HTTP | When Raised
-------------|---------------------------|------|-------------------------------------
Validation   | VALIDATION_FAILED         | 400  | Malformed input, nothing persisted
Workflow     | INVALID_STATE_TRANSITION  | 400  | Operation illegal for current status
             | NOT_FOUND                 | 404  | Entity id does not exist
             | DUPLICATE_ENTITY          | 409  | Unique key already taken
Concurrency  | CONCURRENCY_CONFLICT      | 409  | Lost optimistic race (re-read, retry)
Access       | NOT_AUTHENTICATED         | 401  | No usable actor identity
             | NOT_AUTHORIZED            | 403  | Actor lacks capability or authority
Sourcing     | NO_ELIGIBLE_VENDORS       | 422  | Vendor directory yielded nobody
             | QUOTE_ALREADY_SELECTED    | 409  | RFQ already awarded
Audit        | AUDIT_CHAIN_BROKEN        | 500  | Hash chain validation failed
External     | EXTERNAL_SERVICE_FAILED   | 502  | Collaborator call failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RETRY ONLY CONCURRENCY ERRORS, AND ONLY AFTER RE-READING:

    except ConcurrencyConflict:
        requisition = service.get(requisition_id)
        if requisition.status is RequisitionStatus.PENDING_APPROVAL:
            service.approve(..., expected_version=requisition.version)

2. IDEMPOTENT DEDUPE (DuplicateEntityError is success for upserts):

    except DuplicateEntityError as e:
        return repository.get_by_offline_id(e.key)

3. BEST-EFFORT SIDE EFFECTS (ExternalServiceError becomes a warning):

    try:
        notifier.send_purchase_order(vendor_id, po)
    except ExternalServiceError as e:
        warnings.append(f"{e.service}: {e}")

===============================================================================
"""

from typing import Any


class ProcurementError(Exception):
    """
    Base exception for all procurement workflow errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "PROCUREMENT_ERROR"

    def details(self) -> dict[str, Any]:
        """Structured attributes for API payloads."""
        return {
            k: v for k, v in vars(self).items()
            if not k.startswith("_")
        }


# Validation


class ValidationError(ProcurementError):
    """Input rejected before any persistence."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


# Workflow


class WorkflowError(ProcurementError):
    """Base exception for lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateTransition(WorkflowError):
    """Operation is not legal for the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Entity with given ID was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class DuplicateEntityError(WorkflowError):
    """A unique key is already taken (idempotency keys, one PO per quote)."""

    code: str = "DUPLICATE_ENTITY"

    def __init__(self, entity_type: str, key_name: str, key: str):
        self.entity_type = entity_type
        self.key_name = key_name
        self.key = key
        super().__init__(f"{entity_type} with {key_name}={key} already exists")


# Concurrency


class ConcurrencyError(ProcurementError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflict(ConcurrencyError):
    """Optimistic compare-and-swap lost: the stored version moved."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


# Access


class AccessError(ProcurementError):
    """Base exception for identity and authority errors."""

    code: str = "ACCESS_ERROR"


class AuthenticationError(AccessError):
    """No usable actor identity was supplied."""

    code: str = "NOT_AUTHENTICATED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Not authenticated: {reason}")


class AuthorizationError(AccessError):
    """Actor lacks the capability, resolved authority, or delegation."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, action: str, reason: str):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {action}: {reason}")


# Sourcing


class SourcingError(ProcurementError):
    """Base exception for RFQ and quote errors."""

    code: str = "SOURCING_ERROR"


class NoEligibleVendors(SourcingError):
    """Vendor directory produced no candidate for the requisition."""

    code: str = "NO_ELIGIBLE_VENDORS"

    def __init__(self, requisition_id: str, categories: tuple[str, ...] = ()):
        self.requisition_id = requisition_id
        self.categories = list(categories)
        super().__init__(
            f"No eligible vendors for requisition {requisition_id}"
            + (f" (categories: {', '.join(categories)})" if categories else "")
        )


class QuoteAlreadySelected(SourcingError):
    """The RFQ already has a selected quote."""

    code: str = "QUOTE_ALREADY_SELECTED"

    def __init__(self, rfq_id: str, selected_quote_id: str | None):
        self.rfq_id = rfq_id
        self.selected_quote_id = selected_quote_id
        super().__init__(
            f"RFQ {rfq_id} already awarded to quote {selected_quote_id}"
        )


# Audit


class AuditError(ProcurementError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_entry_id: str, expected_hash: str, actual_hash: str):
        self.audit_entry_id = audit_entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# External collaborators


class ExternalServiceError(ProcurementError):
    """A collaborator (vendor notifier, rate source, registry) failed."""

    code: str = "EXTERNAL_SERVICE_FAILED"

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} failed: {reason}")
