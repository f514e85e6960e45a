# backend/enrichment/__init__.py

from .enricher import DealEnricher

__all__ = ["DealEnricher"]
