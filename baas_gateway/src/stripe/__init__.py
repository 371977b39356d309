"""Stripe payments proxy.

Keep this __init__ lightweight: importing it must not validate Stripe settings.
Import the router from ``.routes`` where needed.
"""

__all__ = []
