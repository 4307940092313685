"""Aggregates lifecycle events from the bus into persisted, scrapeable counters."""

__version__ = "0.1.0"
