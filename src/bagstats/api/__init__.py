"""HTTP API exports."""

from .app import create_api_app
from .state import ServiceState

__all__ = ["ServiceState", "create_api_app"]
