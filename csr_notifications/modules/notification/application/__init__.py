"""Notification Application Layer.

Use cases of the scheduling engine: recurrence expansion, due processing,
rescheduling and digest generation, exposed through the scheduling and
digest facades.
"""
