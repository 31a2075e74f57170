"""Webhook ingestion and status-reconciliation pipeline."""
