"""Sync engine services: matching, reconciliation, ingestion and submission."""
