"""
Job extraction pipeline.

Turns fetched HTML into ParsedJob records: JSON-LD JobPosting parsing,
shared text/salary/section heuristics and the plugin dispatch entry point.
"""

__version__ = "1.0.0"
