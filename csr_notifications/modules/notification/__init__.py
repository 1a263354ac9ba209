"""Notification scheduling, recurrence and digest module."""
