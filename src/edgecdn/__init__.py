"""
Edge/origin file delivery.

The edge tier serves clients from a bounded, TTL-limited in-memory cache and
falls back to the origin tier, which holds file metadata and bytes.
"""

__version__ = "0.1.0"
