"""
sentrybridge: Structured-log to error-tracking sink.

Turns error-level log events into batched, sampled, breadcrumb-enriched
error events, and lower-level events into breadcrumbs attached to them.
"""

__version__ = "0.1.0"
