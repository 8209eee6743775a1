"""
procurement_services -- Unit of work, collaborator implementations and
the service container.

Dependency direction:
    procurement_services/ -> procurement_modules/  (allowed)
    procurement_services/ -> procurement_kernel/   (allowed)
    procurement_modules/  -> procurement_services/ (type checking only)

Import submodules directly; this package init stays import-free so that
module services can name ``procurement_services.unit_of_work`` under
``TYPE_CHECKING`` without a cycle.
"""
