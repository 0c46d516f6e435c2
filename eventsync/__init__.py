"""
Event listing ingestion for Blissbase.

Collects events from independent source adapters, normalizes them into one
canonical shape and reconciles the result against the Postgres store.
"""

__version__ = "0.1.0"
