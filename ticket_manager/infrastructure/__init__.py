"""
Infrastructure Layer
====================

Technical concerns shared by the ticket module:
- database: engines and per-provider connection configs
- cache: cache-aside backends and key building
- storage: attachment files on disk
"""
