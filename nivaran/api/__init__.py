"""Operator HTTP surface (FastAPI)."""
