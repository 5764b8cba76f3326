"""HTTP control surface for the load generator."""

from .http_server import ControlHttpServer
from .router import ControlRouter, RouteResult

__all__ = [
    "ControlHttpServer",
    "ControlRouter",
    "RouteResult",
]
