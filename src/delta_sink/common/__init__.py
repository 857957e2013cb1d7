"""Shared helpers for the delta sink: metrics and class logging."""
