"""Persistence for the delivery ledger (async SQLAlchemy)."""
