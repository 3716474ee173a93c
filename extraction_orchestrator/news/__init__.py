"""
News Module
===========

External news sources for the extraction orchestrator:
- Source adapters that retrieve and parse feeds
- Mappers that normalize feed entries into article fields
- The fetch pipeline that fans out over the active source registry
"""
