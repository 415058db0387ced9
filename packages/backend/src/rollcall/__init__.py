"""Rollcall — attendance tracking for workers, establishments and departments.

The backend serves dashboard data from a process-wide query cache and keeps
that cache coherent with PostgreSQL row-change notifications, so every open
dashboard refetches what changed (and only that).
"""

__version__ = "0.1.0"
