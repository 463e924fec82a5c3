"""HTTP API for the VectorSheet chat core."""

from vectorsheet.api.server import create_app

__all__ = ["create_app"]
