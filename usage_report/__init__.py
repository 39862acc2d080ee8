"""
Usage Report.

Aggregates organization usage-billing exports by user and repository.
"""

__version__ = "0.1.0"
