"""
Persistence adapters.

Services depend on the repository helpers (or on get_session for multi-row
transactions) instead of building queries inline.
"""
