"""HTTP API for the procurement workflow."""

from procurement_api.app import create_app

__all__ = ["create_app"]
