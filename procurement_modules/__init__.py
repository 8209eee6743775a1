"""
Procurement Modules.

Workflow layers over the kernel and engines.  Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas
- ORM models and repositories
- A service that owns its unit of work per operation

Modules:
- Requisition: creation, approval routing, emergency override
- Delegation: time-bounded grants of approval authority
- RFQ: vendor invitations, quotes, selection
- Purchase order: generation, approval, delivery and receipt
- Invoice: three-way matching and payment approval
- Offline sync: reconciliation of requisitions raised without a shore link
"""
