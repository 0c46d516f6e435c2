"""
Ingestion layer.

Source adapters scrape events; the pipeline normalizes, deduplicates,
enriches and reconciles them before they are upserted into Postgres.

Key Components:
- SourceAdapter: contract every source implements (adapters/)
- SourceRegistry: static name → adapter mapping loaded from sources.yaml
- IngestionOrchestrator: runs the sources and the pipeline stages
"""
