"""
Test support utilities for compose-cron tests.

Helpers that don't fit as pytest fixtures but are shared across test
packages: an in-memory container runtime and container builders.
"""

from tests._support.fakes import FakeRuntime, make_container

__all__ = ["FakeRuntime", "make_container"]
