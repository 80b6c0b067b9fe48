"""
Nivaran Escalation — emergency escalation notifier for high-risk assessments.
"""

__version__ = "1.0.0"
