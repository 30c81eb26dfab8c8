"""Cryptocurrency portfolio tracking API: records, import/export, prices and analytics."""

__version__ = "1.0.0"