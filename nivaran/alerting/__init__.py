"""
Nivaran Emergency Escalation.

Components:
- schemas: risk events, contacts, channel attempts, escalation records
- extractor: assessment answers → risk factors
- templates: channel renderings of the alert message
- providers: per-channel delivery backends (network and device-local)
- channels: ordered provider chains with fallback
- notifier: operator-facing summary port
- dedup: optional per-subject cooldown
- orchestrator: fan-out, aggregation, ledger append
"""
