"""
Module ORM Registry (``procurement_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
holds its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``procurement_kernel.db.engine.create_tables`` and ``drop_tables``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``procurement_modules.*.orm`` module.

    Idempotent; repeated calls are harmless.
    """
    import procurement_kernel.models  # noqa: F401
    import procurement_kernel.services.sequence_service  # noqa: F401  # sequence_counters
    # fmt: off
    import procurement_modules.requisition.orm  # noqa: F401
    import procurement_modules.delegation.orm  # noqa: F401
    import procurement_modules.rfq.orm  # noqa: F401
    import procurement_modules.purchase_order.orm  # noqa: F401
    import procurement_modules.invoice.orm  # noqa: F401
    # fmt: on
