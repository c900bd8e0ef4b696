# =============================================================================
# barberpro/__init__.py
# BarberPro Offline Sync Core
# =============================================================================
"""
Offline-first data layer for the BarberPro CRM.

Local SQLite mirror + durable operation queue + Supabase reconciliation.
See ``barberpro.offline`` for the consumer-facing API.
"""

__version__ = "0.1.0"
