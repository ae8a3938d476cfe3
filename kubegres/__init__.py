"""Blocking-operation bookkeeping, operation logging and resource state loading for a PostgreSQL cluster operator."""

__version__ = "0.1.0"