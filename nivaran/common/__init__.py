"""
Common utilities for the escalation service.

Provides shared functionality:
- Exception hierarchy
- Resilience patterns (retry, timeout)
"""
