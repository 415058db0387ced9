"""Query result caching for dashboard reads."""
