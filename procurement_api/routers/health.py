"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from procurement_api.dependencies import get_container
from procurement_kernel import __version__
from procurement_services.container import ServiceContainer

router = APIRouter(tags=["Health"])


@router.get("/health")
def health(container: ServiceContainer = Depends(get_container)) -> dict[str, str]:
    return {
        "status": "ok",
        "version": __version__,
        "configId": container.settings.config_id,
    }
