"""Cache and serve a single resource from memory over HTTP."""

__version__ = "0.0.1"

__all__ = ["__version__"]
