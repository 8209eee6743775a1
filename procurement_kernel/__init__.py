"""
Procurement Kernel

Shared foundation for the vessel procurement workflow:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Injectable clock and closed role/capability model
- Append-only, hash-chained audit trail
- Unit-of-work scoped persistence with optimistic concurrency
"""

__version__ = "0.1.0"
