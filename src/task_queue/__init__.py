"""Durable task queue: worker pool, retry policy, scheduled promotion and notifications."""

__version__ = "0.1.0"
