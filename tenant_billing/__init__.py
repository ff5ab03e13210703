"""Subscription lifecycle and usage-limit engine for multi-tenant storefronts."""

__version__ = "1.0.0"
