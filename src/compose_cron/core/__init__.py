"""Shared plumbing: errors, logging, settings and durations."""
