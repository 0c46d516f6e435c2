"""
Source adapters.

Every adapter implements ``SourceAdapter``: it crawls one website and
returns ``NormalizedEvent`` records for the pipeline.
"""

from .base_adapter import AdapterContext, SourceAdapter
from .jsonld_adapter import JsonLdAdapter

__all__ = ["AdapterContext", "SourceAdapter", "JsonLdAdapter"]
