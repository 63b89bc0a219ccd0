"""
Storefront Orders Service

Variant availability, cart validation, checkout and order lifecycle for a
single-vendor online store.
"""

__version__ = "1.0.0"
