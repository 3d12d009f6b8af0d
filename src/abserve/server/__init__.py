"""HTTP side: request routing and the listener."""

from abserve.server.router import VirtualResourceHandler, build_app
from abserve.server.runner import HttpServer

__all__ = ["HttpServer", "VirtualResourceHandler", "build_app"]
