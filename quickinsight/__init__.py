"""
QuickInsight
============

Natural-language analytics over an embedded DuckDB table:
query-type routing, injection-safe metric/filter compilation and
RFM-based customer segmentation.
"""

__version__ = "1.0.0"
