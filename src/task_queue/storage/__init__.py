"""Persistence layer for the task store."""
