"""Dispatch domain API package."""

from dispatch.api.routes import order_router, store_router

__all__ = ["order_router", "store_router"]
