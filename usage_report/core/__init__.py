"""
Core modules for Usage Report.

This package contains the pure aggregation engine: record validation,
per-user/per-repository grouping, free quota ratios and multi-month trends.
"""
