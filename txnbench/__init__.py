"""Optimistic in-memory transactions, TPC-C record keys and a versioned ordered index."""

__version__ = "0.1.0"