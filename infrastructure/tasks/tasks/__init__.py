"""Job modules; importing the package registers their tasks."""
from . import orders  # noqa: F401

__all__ = ["orders"]
