"""Notification infrastructure layer.

Repositories, ORM models and rendering engines backing the notification
domain, plus the wiring that assembles the application services.
"""
