"""Notification scheduling and recurring-delivery engine for the CSR donation platform."""

__version__ = "0.1.0"
