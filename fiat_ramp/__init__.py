"""Fiat on/off-ramp relay: Onramper webhook ingestion and KYC status reconciliation."""

__version__ = "0.1.0"
