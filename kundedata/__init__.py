"""Kundedata: lead-capture forms, email automation and invoicing."""

__version__ = "0.1.0"
