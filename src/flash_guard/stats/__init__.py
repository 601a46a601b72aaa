"""
Stats Module
============

Single-writer aggregator for the cumulative counters.
"""

from flash_guard.stats.aggregator import StatsAggregator

__all__ = ["StatsAggregator"]
