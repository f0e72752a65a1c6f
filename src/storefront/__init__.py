"""Storefront cart and pricing reconciliation client."""

__version__ = "0.1.0"
