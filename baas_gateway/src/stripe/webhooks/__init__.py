from .base import HANDLERS, dispatch

__all__ = ["HANDLERS", "dispatch"]
