"""Shared helpers for neorg-task-sync."""
